"""
Attachment Format Resolver

Decides how a DMARC report attachment is packaged from its declared MIME
type, falling back to the filename suffix when the MIME type is missing or
misleading (application/octet-stream is common).
"""

import mimetypes
from enum import Enum

import structlog

log = structlog.get_logger()


class AttachmentFormat(str, Enum):
    """Container formats a DMARC aggregate report is delivered in."""

    PLAIN_XML = "xml"
    GZIP = "gz"
    ZIP = "zip"
    UNSUPPORTED = "unsupported"


# MIME type -> file extension. Checked before the mimetypes registry, which
# has no entries for the gzip types.
MIME_EXTENSIONS: dict[str, str] = {
    "application/gzip": "gz",
    "application/x-gzip": "gz",
    "application/x-gzip-compressed": "gz",
    "application/gzip-compressed": "gz",
    "application/zip": "zip",
    "application/x-zip": "zip",
    "application/x-zip-compressed": "zip",
    "application/zip-compressed": "zip",
    "application/xml": "xml",
    "text/xml": "xml",
}

_EXTENSION_FORMATS: dict[str, AttachmentFormat] = {
    "gz": AttachmentFormat.GZIP,
    "zip": AttachmentFormat.ZIP,
    "xml": AttachmentFormat.PLAIN_XML,
}

# Fallback when the MIME type says nothing useful; checked in this order.
_FILENAME_SUFFIXES: tuple[tuple[str, AttachmentFormat], ...] = (
    (".xml", AttachmentFormat.PLAIN_XML),
    (".zip", AttachmentFormat.ZIP),
    (".gz", AttachmentFormat.GZIP),
)


def extension_for_mime_type(mime_type: str | None) -> str:
    """
    Map a MIME type to its canonical file extension (without the dot).

    Parameters such as "; charset=utf-8" are ignored. Returns "" when the
    type is unknown.
    """
    if not mime_type:
        return ""

    normalized = mime_type.split(";", 1)[0].strip().lower()
    if normalized in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[normalized]

    guessed = mimetypes.guess_extension(normalized)
    return guessed.lstrip(".") if guessed else ""


def resolve_format(mime_type: str | None, filename: str | None) -> AttachmentFormat:
    """
    Resolve the decode strategy for an attachment.

    Args:
        mime_type: Declared Content-Type of the attachment (may be wrong)
        filename: Attachment filename (may be empty)

    Returns:
        AttachmentFormat; UNSUPPORTED when neither input identifies a format
    """
    extension = extension_for_mime_type(mime_type)
    fmt = _EXTENSION_FORMATS.get(extension)
    if fmt is not None:
        log.debug("attachment_format_from_mime_type", mime_type=mime_type, format=fmt.value)
        return fmt

    lowered = (filename or "").lower()
    for suffix, suffix_format in _FILENAME_SUFFIXES:
        if lowered.endswith(suffix):
            log.debug(
                "attachment_format_from_filename",
                mime_type=mime_type,
                filename=filename,
                format=suffix_format.value,
            )
            return suffix_format

    log.info(
        "attachment_format_unsupported",
        mime_type=mime_type,
        detected_extension=extension or None,
        filename=filename,
    )
    return AttachmentFormat.UNSUPPORTED
