# Shared Models
"""
Pydantic models for normalized DMARC rows and the sink delivery payload.
"""

from dmarc_reports.shared.models.records import (
    ALIGNMENT_TOKENS,
    Alignment,
    Disposition,
    DmarcResult,
    NormalizedRecordRow,
    PolicyOverride,
)
from dmarc_reports.shared.models.email import AttachmentData, ParsedEmail
from dmarc_reports.shared.models.payload import (
    AttachmentSummary,
    DeliveryPayload,
    EmailInfo,
    SinkResponse,
    WorkerInfo,
)

__all__ = [
    # DMARC records
    "ALIGNMENT_TOKENS",
    "Alignment",
    "Disposition",
    "DmarcResult",
    "NormalizedRecordRow",
    "PolicyOverride",
    # Inbound email
    "AttachmentData",
    "ParsedEmail",
    # Delivery payload
    "AttachmentSummary",
    "DeliveryPayload",
    "EmailInfo",
    "SinkResponse",
    "WorkerInfo",
]
