"""
Email Parser Module

Parses raw inbound MIME messages into the sender/recipient summary and the
attachment list the DMARC pipeline works on.
"""

import email
from email.message import EmailMessage
from email.policy import default as default_policy
from email.utils import getaddresses, parseaddr, parsedate_to_datetime

import structlog

from dmarc_reports.shared.models.email import AttachmentData, ParsedEmail

log = structlog.get_logger()


def _extract_address(header_value: str | None) -> str:
    """
    Bare address of a single-mailbox header.

    "Google <noreply-dmarc-support@google.com>" -> "noreply-dmarc-support@google.com"
    """
    if not header_value:
        return ""

    _, address = parseaddr(str(header_value))
    return address.strip()


def _extract_addresses(header_value: str | None) -> list[str]:
    """Bare addresses of a mailbox-list header (To, Cc)."""
    if not header_value:
        return []

    return [
        address.strip()
        for _, address in getaddresses([str(header_value)])
        if address.strip()
    ]


def _normalize_date(header_value: str | None) -> str | None:
    """Convert an RFC 5322 Date header to ISO-8601, keeping it as-is if unparseable."""
    if not header_value:
        return None

    try:
        return parsedate_to_datetime(str(header_value)).isoformat()
    except (TypeError, ValueError, IndexError):
        log.debug("unparseable_date_header", date=str(header_value))
        return str(header_value)


def _is_attachment(part: EmailMessage) -> bool:
    if part.is_multipart():
        return False

    content_disposition = str(part.get("Content-Disposition", "")).lower()
    if "attachment" in content_disposition:
        return True

    # Named parts count too; report senders are not consistent about
    # Content-Disposition.
    return bool(part.get_filename())


def _extract_attachments(msg: EmailMessage) -> list[AttachmentData]:
    """
    Extract attachments from email message in MIME order.

    No MIME type filtering happens here; the format resolver decides later
    whether the first attachment is a report.
    """
    attachments = []

    # A single-part message can itself be the report (body is the gzip file).
    parts = msg.walk() if msg.is_multipart() else [msg]

    for part in parts:
        if not _is_attachment(part):
            continue

        filename = part.get_filename() or ""
        content_type = part.get_content_type()

        payload = part.get_payload(decode=True)
        if not payload:
            log.debug("skipping_empty_attachment", filename=filename)
            continue

        attachments.append(
            AttachmentData(
                filename=filename,
                content=payload,
                content_type=content_type,
                size_bytes=len(payload),
            )
        )

        log.debug(
            "extracted_attachment",
            filename=filename,
            content_type=content_type,
            size_bytes=len(payload),
        )

    return attachments


def extract_email(raw_email: str | bytes) -> ParsedEmail:
    """
    Parse raw email content (MIME format) into structured result.

    Args:
        raw_email: Raw email content as string or bytes

    Returns:
        ParsedEmail with parsed fields; parse problems are listed in
        parse_errors rather than raised
    """
    raw_bytes = raw_email.encode("utf-8") if isinstance(raw_email, str) else raw_email

    try:
        msg = email.message_from_bytes(raw_bytes, policy=default_policy)
    except Exception as e:
        log.error("email_parse_failed", error=str(e))
        return ParsedEmail(
            from_address="",
            subject="",
            message_id="",
            parse_errors=[f"Failed to parse email: {e}"],
        )

    parse_errors: list[str] = []

    from_address = _extract_address(msg.get("From", ""))
    if not from_address:
        parse_errors.append("Missing From header")

    attachments = _extract_attachments(msg)

    return ParsedEmail(
        from_address=from_address,
        subject=str(msg.get("Subject", "") or ""),
        message_id=str(msg.get("Message-ID", "") or ""),
        date=_normalize_date(msg.get("Date")),
        to_addresses=_extract_addresses(msg.get("To", "")),
        attachments=attachments,
        parse_errors=parse_errors,
    )
