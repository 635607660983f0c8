"""
ProcessDmarcEmail Lambda

Processes inbound emails received via SES → SNS. If the first attachment is
a DMARC aggregate report (plain, gzip or zip XML) it is normalized into flat
rows; email metadata, the attachment and the rows are delivered to the
reporting sink.

Flow:
    Report sender
    → SES Receipt Rule
    → SNS Topic
    → This Lambda
    → Reporting sink (HTTP POST)
"""

from lambdas.process_dmarc_email.decoder import decode_attachment
from lambdas.process_dmarc_email.email_parser import extract_email
from lambdas.process_dmarc_email.format_resolver import (
    AttachmentFormat,
    resolve_format,
)
from lambdas.process_dmarc_email.handler import (
    AttachmentAnalysis,
    EmailType,
    analyze_attachment,
    lambda_handler,
    process_email,
)
from lambdas.process_dmarc_email.report_mapper import get_report_rows

__all__ = [
    "AttachmentAnalysis",
    "AttachmentFormat",
    "EmailType",
    "analyze_attachment",
    "decode_attachment",
    "extract_email",
    "get_report_rows",
    "lambda_handler",
    "process_email",
    "resolve_format",
]
