# Shared Tools
"""
Outbound integrations used by the worker.
"""

from dmarc_reports.shared.tools.sink import (
    DeliveryResult,
    SinkClient,
    build_payload,
    build_retry_payload,
    describe_http_error,
    is_retryable,
    sanitize_text,
)

__all__ = [
    "DeliveryResult",
    "SinkClient",
    "build_payload",
    "build_retry_payload",
    "describe_http_error",
    "is_retryable",
    "sanitize_text",
]
