"""
Delivery Payload Models

Pydantic models for the JSON document POSTed to the reporting sink and for
the sink's response. Serialized keys are camelCase per the sink contract.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dmarc_reports.shared.models.records import NormalizedRecordRow


class _SinkModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmailInfo(_SinkModel):
    """Summary of the inbound email."""

    from_address: str = Field(..., alias="from", description="Sender address")
    to: list[str] = Field(default_factory=list, description="Recipient addresses")
    subject: str = Field(..., description="Sanitized subject line")
    date: str = Field(..., description="ISO-8601 date of the email")
    message_id: str = Field(..., description="Message-ID header")


class AttachmentSummary(_SinkModel):
    """
    First attachment of the email.

    `content` is base64 on the initial request and null on the degraded retry.
    """

    filename: str
    mime_type: str
    content: str | None = None
    size: int = Field(..., ge=0)


class WorkerInfo(_SinkModel):
    """Identifies the sending worker build."""

    version: str
    source: str
    is_retry: bool | None = None


class DeliveryPayload(_SinkModel):
    """Body of the POST to the reporting sink."""

    email_info: EmailInfo
    attachment: AttachmentSummary | None = None
    dmarc_records: list[NormalizedRecordRow] = Field(default_factory=list)
    processed_at: str
    worker_info: WorkerInfo

    def to_json_dict(self) -> dict[str, Any]:
        """
        Serialize for the wire.

        The attachment key is left out entirely when there is no attachment,
        and isRetry only appears on retry payloads.
        """
        exclude: dict[str, Any] = {}
        if self.attachment is None:
            exclude["attachment"] = True
        if self.worker_info.is_retry is None:
            exclude["worker_info"] = {"is_retry"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude or None)


class SinkResponse(BaseModel):
    """JSON body returned by the sink on a 2xx response."""

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    message: str | None = None
    error: str | None = None
