"""
Lambda Handler Wrapper for the DMARC Email Worker

AWS Lambda entry point. Configure the function handler as
`lambda_deployment.process_dmarc_email.lambda_handler.lambda_handler`.
"""

from typing import Any

import structlog

from dmarc_reports.shared.config import get_settings
from lambdas.process_dmarc_email.handler import lambda_handler as _process_dmarc_email

log = structlog.get_logger()


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for SES inbound emails delivered through SNS.

    Args:
        event: SNS event containing SES notifications
        context: Lambda context

    Returns:
        Dict with statusCode and body
    """
    settings = get_settings()

    log.info(
        "dmarc_email_lambda_invoked",
        environment=settings.environment,
        sink_url=settings.sink_url,
        worker_version=settings.worker_version,
    )

    return _process_dmarc_email(event, context)
