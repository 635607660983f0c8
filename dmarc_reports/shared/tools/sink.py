"""
Reporting Sink Client

Delivers email metadata, the first attachment and normalized DMARC rows to
the external reporting sink as JSON over HTTP.

Delivery protocol:
1. POST the full payload under a hard wall-clock deadline
2. 2xx: read {success, message?, error?}; success=false is a soft failure
3. Non-2xx / timeout / network error: classify as retryable or fatal
4. Retryable: send one degraded payload (no attachment bytes), never more
"""

import base64
import json
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

import requests
import structlog
from pydantic import ValidationError

from dmarc_reports.shared.config import SinkConfig
from dmarc_reports.shared.exceptions import (
    DeliveryError,
    DeliveryRetryFailedError,
    SinkHTTPError,
    SinkNetworkError,
    SinkTimeoutError,
)
from dmarc_reports.shared.models.email import AttachmentData, ParsedEmail
from dmarc_reports.shared.models.payload import (
    AttachmentSummary,
    DeliveryPayload,
    EmailInfo,
    SinkResponse,
    WorkerInfo,
)
from dmarc_reports.shared.models.records import NormalizedRecordRow

log = structlog.get_logger()

RETRYABLE_MARKERS = ("timeout", "network", "connection", "502", "503", "504")

MAX_TEXT_LENGTH = 200

_CONTROL_CHARS = re.compile(r"[\u0000-\u001f\u007f-\u009f]")

# status -> (reason, explanation)
_STATUS_DESCRIPTIONS: dict[int, tuple[str, str]] = {
    400: ("Bad Request", "Invalid data format"),
    401: ("Unauthorized", "Authentication required"),
    403: ("Forbidden", "Access denied"),
    404: ("Not Found", "Sink endpoint not found"),
    413: ("Payload Too Large", "Request body too large"),
    429: ("Too Many Requests", "Rate limit exceeded"),
    500: ("Internal Server Error", "Sink error"),
    502: ("Bad Gateway", "Sink service unavailable"),
    503: ("Service Unavailable", "Sink service temporarily unavailable"),
    504: ("Gateway Timeout", "Sink timeout"),
}


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a delivery that reached the sink and got a 2xx answer."""

    success: bool
    status_code: int
    retried: bool = False
    message: str | None = None
    error: str | None = None


def sanitize_text(value: str | None, fallback: str = "unknown") -> str:
    """
    Make a header-derived string safe for logs and the sink.

    - Removes C0/C1 control characters
    - Replaces U+FFFD with '?'
    - Truncates to 200 characters (plus '...')
    """
    if not value:
        return fallback

    cleaned = _CONTROL_CHARS.sub("", value).replace("\ufffd", "?").strip()
    if not cleaned:
        return fallback

    if len(cleaned) > MAX_TEXT_LENGTH:
        cleaned = cleaned[:MAX_TEXT_LENGTH] + "..."

    return cleaned


def describe_http_error(status_code: int, body: str) -> str:
    """Build a status-coded error message for a non-2xx sink response."""
    description = _STATUS_DESCRIPTIONS.get(status_code)
    if description is None:
        return f"HTTP Error {status_code}: {body}"
    reason, explanation = description
    return f"{reason} ({status_code}): {explanation} - {body}"


def is_retryable(error: BaseException) -> bool:
    """A failure is retryable when its text mentions a transient condition."""
    text = str(error).lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_base64(content: bytes | str) -> str:
    raw = content.encode("utf-8") if isinstance(content, str) else content
    return base64.b64encode(raw).decode("ascii")


def _build_email_info(email: ParsedEmail, subject_prefix: str = "") -> EmailInfo:
    return EmailInfo(
        from_address=email.from_address or "unknown",
        to=[address for address in email.to_addresses if address],
        subject=f"{subject_prefix}{sanitize_text(email.subject, 'No subject')}",
        date=email.date or _utc_now_iso(),
        message_id=email.message_id or "unknown",
    )


def build_payload(
    email: ParsedEmail,
    attachment: AttachmentData | None,
    rows: Iterable[NormalizedRecordRow],
    config: SinkConfig,
) -> DeliveryPayload:
    """
    Build the full delivery payload.

    The attachment content is base64 encoded and its reported size is the
    length of that base64 text.
    """
    attachment_summary = None
    if attachment is not None:
        content_base64 = _to_base64(attachment.content)
        attachment_summary = AttachmentSummary(
            filename=sanitize_text(attachment.filename, "unnamed"),
            mime_type=attachment.content_type or "application/octet-stream",
            content=content_base64,
            size=len(content_base64),
        )

    return DeliveryPayload(
        email_info=_build_email_info(email),
        attachment=attachment_summary,
        dmarc_records=list(rows),
        processed_at=_utc_now_iso(),
        worker_info=WorkerInfo(
            version=config.worker_version,
            source=config.worker_source,
        ),
    )


def build_retry_payload(
    email: ParsedEmail,
    attachment: AttachmentData | None,
    rows: Iterable[NormalizedRecordRow],
    config: SinkConfig,
) -> DeliveryPayload:
    """
    Build the degraded payload sent on retry.

    Attachment bytes are dropped (content=null, size=raw size), the subject
    is prefixed with [RETRY] and the version tag gets a -retry suffix.
    """
    attachment_summary = None
    if attachment is not None:
        attachment_summary = AttachmentSummary(
            filename=sanitize_text(attachment.filename, "unnamed"),
            mime_type=attachment.content_type or "application/octet-stream",
            content=None,
            size=attachment.size_bytes,
        )

    return DeliveryPayload(
        email_info=_build_email_info(email, subject_prefix="[RETRY] "),
        attachment=attachment_summary,
        dmarc_records=list(rows),
        processed_at=_utc_now_iso(),
        worker_info=WorkerInfo(
            version=f"{config.worker_version}-retry",
            source=config.worker_source,
            is_retry=True,
        ),
    )


class SinkClient:
    """
    HTTP client for the reporting sink.

    Usage:
        client = SinkClient(get_settings().sink_config)
        result = client.deliver(email, email.first_attachment, rows)
    """

    def __init__(self, config: SinkConfig):
        self._config = config

    @property
    def config(self) -> SinkConfig:
        return self._config

    def deliver(
        self,
        email: ParsedEmail,
        attachment: AttachmentData | None,
        rows: list[NormalizedRecordRow],
    ) -> DeliveryResult:
        """
        Deliver one email's data to the sink.

        Returns:
            DeliveryResult for any 2xx answer (including success=false)

        Raises:
            DeliveryError: Non-retryable failure of the initial request
            DeliveryRetryFailedError: Retryable failure whose retry failed too
        """
        payload = build_payload(email, attachment, rows, self._config)

        log.info(
            "sink_delivery_started",
            url=self._config.url,
            record_count=len(rows),
            has_attachment=attachment is not None,
        )

        try:
            return self._send(
                payload,
                headers={"User-Agent": self._config.user_agent},
                timeout=self._config.timeout_seconds,
            )
        except DeliveryError as e:
            log.error("sink_delivery_failed", error=str(e), error_type=type(e).__name__)

            if not is_retryable(e):
                raise

            return self._retry(email, attachment, rows, original_error=e)

    def _retry(
        self,
        email: ParsedEmail,
        attachment: AttachmentData | None,
        rows: list[NormalizedRecordRow],
        original_error: DeliveryError,
    ) -> DeliveryResult:
        log.info("sink_retry_started", original_error=str(original_error))

        retry_payload = build_retry_payload(email, attachment, rows, self._config)

        try:
            result = self._send(
                retry_payload,
                headers={
                    "User-Agent": self._config.retry_user_agent,
                    "X-Is-Retry": "true",
                },
                timeout=self._config.retry_timeout_seconds,
            )
        except DeliveryError as retry_error:
            log.error("sink_retry_failed", error=str(retry_error))
            raise DeliveryRetryFailedError(original_error, retry_error) from retry_error

        log.info("sink_retry_succeeded", success=result.success)

        return DeliveryResult(
            success=result.success,
            status_code=result.status_code,
            retried=True,
            message=result.message,
            error=result.error,
        )

    def _send(
        self,
        payload: DeliveryPayload,
        headers: dict[str, str],
        timeout: float | None,
    ) -> DeliveryResult:
        """POST one payload and interpret the response."""
        body = json.dumps(payload.to_json_dict())

        if len(body) > self._config.payload_warn_bytes:
            log.warning(
                "sink_payload_large",
                size_mb=round(len(body) / 1024 / 1024, 2),
            )

        request_headers = {"Content-Type": "application/json", **headers}

        try:
            response = self._post(body.encode("utf-8"), request_headers, timeout)
        except requests.Timeout as e:
            raise SinkTimeoutError(timeout) from e
        except requests.RequestException as e:
            raise SinkNetworkError(str(e)) from e

        log.info("sink_response_received", status_code=response.status_code)

        if not 200 <= response.status_code < 300:
            message = describe_http_error(response.status_code, response.text)
            raise SinkHTTPError(response.status_code, message)

        sink_response = self._parse_response(response)

        if sink_response.success:
            log.info("sink_delivery_succeeded", message=sink_response.message)
        else:
            # Sink looked at the data and refused it; resending is futile.
            log.warning(
                "sink_rejected_payload",
                error=sink_response.error or "Unknown error",
            )

        return DeliveryResult(
            success=sink_response.success,
            status_code=response.status_code,
            message=sink_response.message,
            error=sink_response.error,
        )

    def _post(
        self,
        body: bytes,
        headers: dict[str, str],
        timeout: float | None,
    ) -> requests.Response:
        """
        POST with the timeout enforced as a wall-clock deadline.

        requests applies its timeout to each socket operation, so a sink that
        keeps trickling bytes never trips it. The request runs on a worker
        thread and is abandoned once the deadline passes.
        """
        if timeout is None:
            return requests.post(
                self._config.url, data=body, headers=headers, timeout=None
            )

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sink-post")
        future = executor.submit(
            requests.post, self._config.url, data=body, headers=headers, timeout=timeout
        )
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            log.warning("sink_deadline_exceeded", timeout_seconds=timeout)
            raise SinkTimeoutError(timeout) from e
        finally:
            executor.shutdown(wait=False)

    @staticmethod
    def _parse_response(response: requests.Response) -> SinkResponse:
        try:
            data: Any = response.json()
            return SinkResponse.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise DeliveryError(
                "Sink returned an unreadable response body",
                status_code=response.status_code,
                error_message=str(e),
            ) from e
