"""
DMARC Report Mapper

Parses DMARC aggregate report XML (RFC 7489 appendix C) into a generic tree
and flattens each <record> into a NormalizedRecordRow.

A report is rejected as a whole only when <report_metadata>,
<policy_published> or <record> is missing. Individual records lacking
<row>, <identifiers> or <row><policy_evaluated> are skipped.
"""

import json
import re
from enum import Enum
from typing import Any, Mapping, TypeVar
from xml.parsers.expat import ExpatError

import structlog
import xmltodict

from dmarc_reports.shared.exceptions import (
    InvalidReportStructureError,
    ReportParseError,
)
from dmarc_reports.shared.models.records import (
    ALIGNMENT_TOKENS,
    Alignment,
    Disposition,
    DmarcResult,
    NormalizedRecordRow,
    PolicyOverride,
)

log = structlog.get_logger()

E = TypeVar("E", bound=Enum)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# ---------------------------------------------------------------------------
# Total value parsers
# ---------------------------------------------------------------------------


def _first(value: Any) -> Any:
    """Repeated elements parse to a list; keep the first."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _scalar(value: Any) -> Any:
    """Reduce an xmltodict node to its scalar text where possible."""
    value = _first(value)
    if isinstance(value, Mapping):
        value = value.get("#text")
    return value


def _text(value: Any) -> str:
    value = _scalar(value)
    if value is None:
        return ""
    return str(value).strip()


def parse_int(raw: Any, default: int) -> int:
    """
    Parse the leading integer of a value, returning `default` on failure.

    "1700000000" -> 1700000000, " 42abc" -> 42, "abc" / None -> default.
    """
    match = _LEADING_INT.match(_text(raw))
    if not match:
        return default
    try:
        return int(match.group(1))
    except ValueError:
        # Past the interpreter's int digit limit.
        return default


def parse_enum(
    raw: Any,
    enum_cls: type[E],
    default: E,
    aliases: Mapping[str, E] | None = None,
) -> E:
    """
    Map a report token onto a closed enumeration.

    Unknown, empty or missing tokens resolve to `default`; never raises.
    """
    token = _text(raw).lower()
    if not token:
        return default
    if aliases and token in aliases:
        return aliases[token]
    try:
        return enum_cls(token)
    except ValueError:
        return default


def _child(node: Any, key: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(key)
    return None


def _serialize_error(error: Any) -> str:
    if not error:
        return ""
    return json.dumps(error, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Parsing and mapping
# ---------------------------------------------------------------------------


def parse_report(xml_text: str) -> dict[str, Any]:
    """
    Parse report XML into a nested dict (no schema validation).

    Raises:
        ReportParseError: If the text is not well-formed XML
    """
    try:
        return xmltodict.parse(xml_text)
    except ExpatError as e:
        raise ReportParseError(str(e)) from e


def normalize_records(records_source: Any) -> list[Any]:
    """A single <record> parses to a node, several to a list; always return a list."""
    if isinstance(records_source, list):
        return records_source
    return [records_source]


def map_record(
    record: Any,
    report_metadata: Mapping[str, Any],
    policy_published: Mapping[str, Any],
) -> NormalizedRecordRow | None:
    """
    Flatten one <record>.

    Returns:
        NormalizedRecordRow, or None when row, identifiers or
        row.policy_evaluated is missing
    """
    row = _child(record, "row")
    identifiers = _child(record, "identifiers")
    policy_evaluated = _child(row, "policy_evaluated")

    if not isinstance(row, Mapping) or not isinstance(identifiers, Mapping):
        return None
    if not isinstance(policy_evaluated, Mapping):
        return None

    date_range = _child(report_metadata, "date_range")
    reason = _first(_child(policy_evaluated, "reason"))

    return NormalizedRecordRow(
        report_id=_text(_child(report_metadata, "report_id")).replace("-", "_"),
        org_name=_text(_child(report_metadata, "org_name")),
        date_range_begin=parse_int(_child(date_range, "begin"), 0),
        date_range_end=parse_int(_child(date_range, "end"), 0),
        error=_serialize_error(_child(report_metadata, "error")),
        policy_domain=_text(_child(policy_published, "domain")),
        policy_adkim=parse_enum(
            _child(policy_published, "adkim"),
            Alignment,
            Alignment.RELAXED,
            ALIGNMENT_TOKENS,
        ),
        policy_aspf=parse_enum(
            _child(policy_published, "aspf"),
            Alignment,
            Alignment.RELAXED,
            ALIGNMENT_TOKENS,
        ),
        policy_p=parse_enum(_child(policy_published, "p"), Disposition, Disposition.NONE),
        policy_sp=parse_enum(_child(policy_published, "sp"), Disposition, Disposition.NONE),
        policy_pct=parse_int(_child(policy_published, "pct"), 100),
        source_ip=_text(_child(row, "source_ip")),
        count=parse_int(_child(row, "count"), 0),
        evaluated_dkim=parse_enum(
            _child(policy_evaluated, "dkim"), DmarcResult, DmarcResult.FAIL
        ),
        evaluated_spf=parse_enum(
            _child(policy_evaluated, "spf"), DmarcResult, DmarcResult.FAIL
        ),
        evaluated_disposition=parse_enum(
            _child(policy_evaluated, "disposition"), Disposition, Disposition.NONE
        ),
        evaluated_reason_type=parse_enum(
            _child(reason, "type"), PolicyOverride, PolicyOverride.OTHER
        ),
        envelope_to=_text(_child(identifiers, "envelope_to")),
        header_from=_text(_child(identifiers, "header_from")),
    )


def map_report(report: Mapping[str, Any]) -> list[NormalizedRecordRow]:
    """
    Validate a parsed report and flatten its records.

    Args:
        report: Tree returned by parse_report()

    Returns:
        Rows for every well-formed record (possibly empty)

    Raises:
        InvalidReportStructureError: If a mandatory section is missing
    """
    feedback = _child(report, "feedback")
    report_metadata = _child(feedback, "report_metadata")
    policy_published = _child(feedback, "policy_published")
    records_source = _child(feedback, "record")

    sections = {
        "report_metadata": report_metadata,
        "policy_published": policy_published,
        "record": records_source,
    }
    missing = [
        name
        for name, section in sections.items()
        if not section or (name != "record" and not isinstance(section, Mapping))
    ]
    if missing:
        log.warning("invalid_report_structure", missing_sections=missing)
        raise InvalidReportStructureError(missing)

    records = normalize_records(records_source)

    log.info(
        "mapping_report",
        org_name=_text(_child(report_metadata, "org_name")),
        report_id=_text(_child(report_metadata, "report_id")),
        domain=_text(_child(policy_published, "domain")),
        record_count=len(records),
    )

    rows: list[NormalizedRecordRow] = []
    for index, record in enumerate(records):
        mapped = map_record(record, report_metadata, policy_published)
        if mapped is None:
            log.warning(
                "record_skipped",
                index=index,
                reason="missing row, identifiers or row.policy_evaluated",
            )
            continue
        rows.append(mapped)

    log.info("report_mapped", row_count=len(rows), skipped=len(records) - len(rows))
    return rows


def get_report_rows(xml_text: str) -> list[NormalizedRecordRow]:
    """Parse report XML and return its normalized rows."""
    return map_report(parse_report(xml_text))
