"""
ProcessDmarcEmail Lambda Handler

Main entry point for processing inbound emails that may carry a DMARC
aggregate report. Parses SNS→SES notifications and forwards email metadata
plus normalized report rows to the reporting sink.

Trigger: SNS topic subscribed to SES inbound email rule
Output: HTTP POST to the reporting sink

Flow:
1. Parse SNS notification
2. Extract raw email (embedded or from S3)
3. Parse MIME headers and attachments
4. Resolve, decode and map the first attachment as a DMARC report
5. Deliver to the sink (one degraded retry on transient failure)

Attachment failures only demote the email to "attachment_only" and delivery
failures are logged; neither stops the email from being processed.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import boto3
import structlog
from botocore.exceptions import ClientError

from dmarc_reports.shared.config import get_settings
from dmarc_reports.shared.exceptions import (
    AttachmentError,
    DeliveryError,
    DmarcWorkerError,
    MissingRawContentError,
)
from dmarc_reports.shared.models.email import AttachmentData, ParsedEmail
from dmarc_reports.shared.models.records import NormalizedRecordRow
from dmarc_reports.shared.tools.sink import DeliveryResult, SinkClient, sanitize_text
from lambdas.process_dmarc_email.decoder import decode_attachment
from lambdas.process_dmarc_email.email_parser import extract_email
from lambdas.process_dmarc_email.format_resolver import resolve_format
from lambdas.process_dmarc_email.report_mapper import get_report_rows

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()


class EmailType(str, Enum):
    """How an inbound email was classified."""

    REGULAR = "regular"
    DMARC_REPORT = "dmarc_report"
    ATTACHMENT_ONLY = "attachment_only"


@dataclass
class AttachmentAnalysis:
    """Outcome of trying to read the first attachment as a DMARC report."""

    email_type: EmailType
    rows: list[NormalizedRecordRow] = field(default_factory=list)
    error: str | None = None


@dataclass
class ProcessingOutcome:
    """Everything the handler reports back for one email."""

    email: ParsedEmail
    analysis: AttachmentAnalysis
    delivery: DeliveryResult | None = None
    delivery_error: str | None = None

    def to_body(self) -> dict[str, Any]:
        return {
            "status": "processed",
            "message_id": self.email.message_id,
            "email_type": self.analysis.email_type.value,
            "record_count": len(self.analysis.rows),
            "attachment_error": self.analysis.error,
            "delivered": bool(self.delivery and self.delivery.success),
            "delivery_retried": bool(self.delivery and self.delivery.retried),
            "delivery_error": self.delivery_error,
        }


def _get_s3_client():
    """Get S3 client with optional endpoint override for local dev."""
    return boto3.client("s3", **get_settings().s3_config)


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Fetch raw email content from S3.

    Used when SES stores emails in S3 rather than embedding in SNS.

    Raises:
        ClientError: If S3 get fails
    """
    log.info("fetching_email_from_s3", bucket=bucket, key=key)

    client = _get_s3_client()

    try:
        response = client.get_object(Bucket=bucket, Key=key)
        content = response["Body"].read()
    except ClientError as e:
        log.error("s3_fetch_failed", bucket=bucket, key=key, error=str(e))
        raise

    log.debug("email_fetched_from_s3", bucket=bucket, key=key, size_bytes=len(content))
    return content


def _extract_s3_reference(sns_message: dict) -> tuple[str, str] | None:
    """
    Extract S3 bucket/key from SES action if email is stored in S3.

    Returns:
        Tuple of (bucket, key) or None if embedded
    """
    receipt = sns_message.get("receipt", {})
    action = receipt.get("action", {})

    if action.get("type") == "S3":
        return action.get("bucketName"), action.get(
            "objectKey", action.get("objectKeyPrefix", "")
        )

    return None


def _decode_embedded_content(content: str) -> bytes:
    """SES embeds MIME either verbatim or base64 encoded."""
    # Header lines always contain ':', which is outside the base64 alphabet.
    compact = "".join(content.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        return content.encode("utf-8")


def get_raw_email(sns_message: dict[str, Any]) -> bytes:
    """
    Get the raw MIME bytes referenced by an SES notification.

    Raises:
        MissingRawContentError: If neither embedded content nor an S3
            location is available
        ClientError: If the S3 fetch fails
    """
    s3_ref = _extract_s3_reference(sns_message)
    if s3_ref and s3_ref[0] and s3_ref[1]:
        bucket, key = s3_ref
        log.info("email_stored_in_s3", bucket=bucket, key=key)
        raw_email = fetch_email_from_s3(bucket, key)
    else:
        content = sns_message.get("content") or ""
        raw_email = _decode_embedded_content(content) if content else b""

    if not raw_email:
        raise MissingRawContentError(
            message_id=sns_message.get("mail", {}).get("messageId"),
        )

    return raw_email


def analyze_attachment(attachment: AttachmentData | None) -> AttachmentAnalysis:
    """
    Try to read an attachment as a DMARC aggregate report.

    Never raises for attachment problems: an attachment that cannot be
    resolved, decoded or mapped yields EmailType.ATTACHMENT_ONLY.
    """
    if attachment is None:
        log.info("no_attachments_found")
        return AttachmentAnalysis(email_type=EmailType.REGULAR)

    log.info(
        "analyzing_attachment",
        filename=sanitize_text(attachment.filename, "unnamed"),
        mime_type=attachment.content_type or "unknown",
        size_bytes=attachment.size_bytes,
    )

    try:
        fmt = resolve_format(attachment.content_type, attachment.filename)
        xml_text = decode_attachment(
            attachment.content,
            fmt,
            mime_type=attachment.content_type,
            filename=attachment.filename,
        )
        rows = get_report_rows(xml_text)
    except AttachmentError as e:
        log.info(
            "attachment_not_dmarc_report",
            error=str(e),
            error_type=type(e).__name__,
        )
        return AttachmentAnalysis(email_type=EmailType.ATTACHMENT_ONLY, error=str(e))

    log.info("dmarc_report_parsed", format=fmt.value, row_count=len(rows))
    return AttachmentAnalysis(email_type=EmailType.DMARC_REPORT, rows=rows)


def process_email(
    raw_email: bytes | str,
    client: SinkClient | None = None,
) -> ProcessingOutcome:
    """
    Run the full pipeline for one raw email.

    Args:
        raw_email: Raw MIME message
        client: Sink client; built from settings when omitted

    Returns:
        ProcessingOutcome. Delivery failures are recorded, not raised.
    """
    parsed = extract_email(raw_email)

    log.info(
        "email_parsed",
        from_address=parsed.from_address or "unknown",
        subject=sanitize_text(parsed.subject, "No subject"),
        message_id=parsed.message_id or None,
        attachment_count=len(parsed.attachments),
        parse_errors=parsed.parse_errors,
    )

    attachment = parsed.first_attachment
    if len(parsed.attachments) > 1:
        log.info("ignoring_extra_attachments", ignored=len(parsed.attachments) - 1)

    analysis = analyze_attachment(attachment)
    outcome = ProcessingOutcome(email=parsed, analysis=analysis)

    sink = client or SinkClient(get_settings().sink_config)
    try:
        outcome.delivery = sink.deliver(parsed, attachment, analysis.rows)
    except DeliveryError as e:
        log.error(
            "sink_delivery_abandoned",
            error=str(e),
            error_type=type(e).__name__,
            message_id=parsed.message_id or None,
        )
        outcome.delivery_error = str(e)

    log.info(
        "email_processed",
        email_type=analysis.email_type.value,
        record_count=len(analysis.rows),
        delivered=bool(outcome.delivery and outcome.delivery.success),
    )

    return outcome


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for processing inbound emails.

    Never raises: every failure is logged and reported in the response.

    Args:
        event: SNS event containing SES notification
        context: Lambda context

    Returns:
        Response dict with processing status
    """
    request_id = getattr(context, "aws_request_id", "local")

    log.info(
        "processing_inbound_email",
        request_id=request_id,
        event_keys=list(event.keys()),
    )

    try:
        # Handle SNS Records format (Lambda trigger)
        if "Records" in event:
            response: dict[str, Any] = {
                "statusCode": 200,
                "body": json.dumps({"status": "skipped", "reason": "No records"}),
            }
            for record in event["Records"]:
                response = _process_sns_record(record, request_id)
            return response

        # Handle direct SNS message (for testing)
        if "Message" in event:
            return _process_sns_message(json.loads(event["Message"]), request_id)

        # Handle raw SES notification (for testing)
        if "mail" in event or "content" in event or "receipt" in event:
            return _process_sns_message(event, request_id)

        log.error("unknown_event_format", event_keys=list(event.keys()))
        return {
            "statusCode": 400,
            "body": json.dumps({"error": "Unknown event format"}),
        }

    except Exception as e:
        log.error("lambda_handler_failed", error=str(e), exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"error": str(e)}),
        }


def _process_sns_record(record: dict[str, Any], request_id: str) -> dict[str, Any]:
    """Process a single SNS record from Lambda event."""
    sns_data = record.get("Sns", {})
    message = sns_data.get("Message", "{}")

    try:
        sns_message = json.loads(message)
    except json.JSONDecodeError as e:
        log.error("sns_message_parse_failed", error=str(e))
        return {
            "statusCode": 400,
            "body": json.dumps({"error": "Invalid SNS message JSON"}),
        }

    return _process_sns_message(sns_message, request_id)


def _process_sns_message(
    sns_message: dict[str, Any], request_id: str
) -> dict[str, Any]:
    """
    Process SES notification from SNS.

    Handles both embedded content and S3 reference modes.
    """
    notification_type = sns_message.get("notificationType")

    # Handle bounce/complaint notifications
    if notification_type in ("Bounce", "Complaint"):
        log.info(
            "received_delivery_notification",
            type=notification_type,
            message_id=sns_message.get("mail", {}).get("messageId"),
        )
        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "status": "skipped",
                    "reason": f"{notification_type} notification - not an inbound email",
                }
            ),
        }

    try:
        raw_email = get_raw_email(sns_message)
    except DmarcWorkerError as e:
        log.error("raw_email_unavailable", request_id=request_id, error=str(e))
        return {
            "statusCode": 500,
            "body": json.dumps({"error": str(e), "error_type": type(e).__name__}),
        }
    except ClientError as e:
        log.error("raw_email_fetch_failed", request_id=request_id, error=str(e))
        return {
            "statusCode": 500,
            "body": json.dumps({"error": f"Failed to fetch email from S3: {e}"}),
        }

    log.info("raw_email_loaded", request_id=request_id, size_bytes=len(raw_email))

    outcome = process_email(raw_email)

    return {
        "statusCode": 200,
        "body": json.dumps(outcome.to_body()),
    }
