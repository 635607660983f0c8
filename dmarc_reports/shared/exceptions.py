"""
Custom Exceptions for the DMARC Report Worker

All exceptions carry the context needed for structured logging.
Attachment-stage errors demote an email to "attachment present, not a DMARC
report"; delivery-stage errors are logged and never abort email processing.
"""

from typing import Any


class DmarcWorkerError(Exception):
    """Base exception for the DMARC report worker."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class MissingRawContentError(DmarcWorkerError):
    """Inbound notification carried no raw message content."""

    def __init__(self, message_id: str | None = None) -> None:
        self.message_id = message_id
        super().__init__(
            "Message raw content is missing",
            message_id=message_id,
        )


# ---------------------------------------------------------------------------
# Attachment stage
# ---------------------------------------------------------------------------


class AttachmentError(DmarcWorkerError):
    """Attachment could not be turned into DMARC report rows."""


class UnsupportedAttachmentFormatError(AttachmentError):
    """Neither the MIME type nor the filename identifies a report container."""

    def __init__(self, mime_type: str | None, filename: str | None) -> None:
        self.mime_type = mime_type
        self.filename = filename
        super().__init__(
            f"Unsupported attachment type for DMARC report: {mime_type} "
            f"(filename: {filename})"
        )


class DecompressionError(AttachmentError):
    """Gzip/zlib stream could not be inflated."""

    def __init__(self, error_message: str) -> None:
        self.error_message = error_message
        super().__init__(f"Failed to decompress attachment: {error_message}")


class CorruptArchiveError(AttachmentError):
    """Attachment claimed to be a zip archive but could not be opened."""

    def __init__(self, error_message: str) -> None:
        self.error_message = error_message
        super().__init__(f"Failed to open ZIP archive: {error_message}")


class ArchiveEmptyError(AttachmentError):
    """Zip archive has no entries."""

    def __init__(self) -> None:
        super().__init__("ZIP file is empty")


class NoXmlEntryError(AttachmentError):
    """Zip archive has entries but none of them is an .xml file."""

    def __init__(self, entry_names: list[str]) -> None:
        self.entry_names = entry_names
        super().__init__(
            "No .xml file found in ZIP archive",
            entry_names=entry_names,
        )


class ReportParseError(AttachmentError):
    """Decoded attachment is not well-formed XML."""

    def __init__(self, error_message: str) -> None:
        self.error_message = error_message
        super().__init__(f"Failed to parse report XML: {error_message}")


class InvalidReportStructureError(AttachmentError):
    """Report is missing one of the mandatory feedback sections."""

    def __init__(self, missing_sections: list[str]) -> None:
        self.missing_sections = missing_sections
        super().__init__(
            "Invalid DMARC XML structure",
            missing_sections=missing_sections,
        )


# ---------------------------------------------------------------------------
# Delivery stage
# ---------------------------------------------------------------------------


class DeliveryError(DmarcWorkerError):
    """Sending the payload to the reporting sink failed."""


class SinkTimeoutError(DeliveryError):
    """Sink did not answer before the request deadline."""

    def __init__(self, timeout_seconds: float | None) -> None:
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is None:
            super().__init__("Request timeout (no deadline configured)")
        else:
            super().__init__(f"Request timeout after {timeout_seconds:g} seconds")


class SinkNetworkError(DeliveryError):
    """Transport-level failure talking to the sink."""

    def __init__(self, error_message: str) -> None:
        self.error_message = error_message
        super().__init__(f"Network error: {error_message}")


class SinkHTTPError(DeliveryError):
    """Sink answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(message)


class DeliveryRetryFailedError(DeliveryError):
    """The single degraded retry failed as well."""

    def __init__(
        self,
        original_error: DeliveryError,
        retry_error: DeliveryError,
    ) -> None:
        self.original_error = original_error
        self.retry_error = retry_error
        super().__init__(
            f"Retry failed: {retry_error.message}",
            original_error=original_error.message,
        )
