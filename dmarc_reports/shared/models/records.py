"""
DMARC Record Models

Closed enumerations for the DMARC tokens the worker understands and the
flat, storage-ready row produced for every well-formed report record.
Field aliases are the column names expected by the reporting sink.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Alignment(str, Enum):
    """DKIM/SPF identifier alignment mode (adkim/aspf)."""

    RELAXED = "relaxed"
    STRICT = "strict"


class Disposition(str, Enum):
    """Requested (p/sp) or applied (policy_evaluated) policy action."""

    NONE = "none"
    QUARANTINE = "quarantine"
    REJECT = "reject"


class DmarcResult(str, Enum):
    """Aligned DKIM/SPF evaluation result."""

    PASS = "pass"
    FAIL = "fail"


class PolicyOverride(str, Enum):
    """Reason the receiver did not apply the published policy."""

    FORWARDED = "forwarded"
    SAMPLED_OUT = "sampled_out"
    TRUSTED_FORWARDER = "trusted_forwarder"
    MAILING_LIST = "mailing_list"
    LOCAL_POLICY = "local_policy"
    OTHER = "other"


# Reports carry the single-letter tag values from the DMARC DNS record.
ALIGNMENT_TOKENS: dict[str, Alignment] = {
    "r": Alignment.RELAXED,
    "s": Alignment.STRICT,
    "relaxed": Alignment.RELAXED,
    "strict": Alignment.STRICT,
}


class NormalizedRecordRow(BaseModel):
    """
    One report record flattened together with its report metadata and
    published policy.

    Rows are only built for records that carry row, identifiers and
    row.policy_evaluated; every other field has a typed default.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # report_metadata
    report_id: str = Field(default="", alias="reportMetadataReportId")
    org_name: str = Field(default="", alias="reportMetadataOrgName")
    date_range_begin: int = Field(default=0, alias="reportMetadataDateRangeBegin")
    date_range_end: int = Field(default=0, alias="reportMetadataDateRangeEnd")
    error: str = Field(default="", alias="reportMetadataError")

    # policy_published
    policy_domain: str = Field(default="", alias="policyPublishedDomain")
    policy_adkim: Alignment = Field(
        default=Alignment.RELAXED, alias="policyPublishedADKIM"
    )
    policy_aspf: Alignment = Field(
        default=Alignment.RELAXED, alias="policyPublishedASPF"
    )
    policy_p: Disposition = Field(default=Disposition.NONE, alias="policyPublishedP")
    policy_sp: Disposition = Field(default=Disposition.NONE, alias="policyPublishedSP")
    policy_pct: int = Field(default=100, alias="policyPublishedPct")

    # record.row
    source_ip: str = Field(default="", alias="recordRowSourceIP")
    count: int = Field(default=0, alias="recordRowCount")
    evaluated_dkim: DmarcResult = Field(
        default=DmarcResult.FAIL, alias="recordRowPolicyEvaluatedDKIM"
    )
    evaluated_spf: DmarcResult = Field(
        default=DmarcResult.FAIL, alias="recordRowPolicyEvaluatedSPF"
    )
    evaluated_disposition: Disposition = Field(
        default=Disposition.NONE, alias="recordRowPolicyEvaluatedDisposition"
    )
    evaluated_reason_type: PolicyOverride = Field(
        default=PolicyOverride.OTHER, alias="recordRowPolicyEvaluatedReasonType"
    )

    # record.identifiers
    envelope_to: str = Field(default="", alias="recordIdentifiersEnvelopeTo")
    header_from: str = Field(default="", alias="recordIdentifiersHeaderFrom")

    def to_sink_dict(self) -> dict[str, Any]:
        """Serialize with the sink's column names and plain enum values."""
        return self.model_dump(mode="json", by_alias=True)
