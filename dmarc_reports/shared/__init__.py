# Shared Infrastructure for the DMARC Report Worker
"""
Shared infrastructure components for the DMARC report worker.

This package provides:
- Pydantic models for normalized DMARC rows and the sink payload
- The reporting sink client
- Configuration management
- Custom exceptions
"""

from dmarc_reports.shared.config import Settings, SinkConfig, get_settings
from dmarc_reports.shared.exceptions import (
    ArchiveEmptyError,
    AttachmentError,
    CorruptArchiveError,
    DecompressionError,
    DeliveryError,
    DeliveryRetryFailedError,
    DmarcWorkerError,
    InvalidReportStructureError,
    MissingRawContentError,
    NoXmlEntryError,
    ReportParseError,
    SinkHTTPError,
    SinkNetworkError,
    SinkTimeoutError,
    UnsupportedAttachmentFormatError,
)

__all__ = [
    # Exceptions
    "DmarcWorkerError",
    "MissingRawContentError",
    "AttachmentError",
    "UnsupportedAttachmentFormatError",
    "DecompressionError",
    "CorruptArchiveError",
    "ArchiveEmptyError",
    "NoXmlEntryError",
    "ReportParseError",
    "InvalidReportStructureError",
    "DeliveryError",
    "SinkTimeoutError",
    "SinkNetworkError",
    "SinkHTTPError",
    "DeliveryRetryFailedError",
    # Config
    "Settings",
    "SinkConfig",
    "get_settings",
]
