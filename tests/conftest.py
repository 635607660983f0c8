"""
Pytest Configuration and Shared Fixtures

Provides moto AWS mocking, sample DMARC reports in every container format,
raw emails, SES/SNS events and a mocked reporting sink.
"""

import os
from typing import Generator
from unittest.mock import MagicMock, patch

import boto3
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["DMARC_SINK_URL"] = "https://sink.test.example.com/dmarc"
os.environ["DMARC_WORKER_VERSION"] = "1.2.0"
os.environ["DMARC_WORKER_SOURCE"] = "test-worker"
os.environ["DMARC_AWS_REGION"] = "us-west-2"
os.environ["AWS_DEFAULT_REGION"] = "us-west-2"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from dmarc_reports.shared.config import SinkConfig, get_settings  # noqa: E402
from dmarc_reports.shared.models.email import AttachmentData, ParsedEmail  # noqa: E402
from tests.mocks.mock_sink import make_response  # noqa: E402
from tests.utils.email_factory import (  # noqa: E402
    build_email,
    build_record_xml,
    build_report_xml,
    gzip_bytes,
    zip_bytes,
)

TEST_BUCKET = "test-inbound-emails"


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Settings are cached; make every test start from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "us-west-2",
    }


@pytest.fixture
def mock_s3(aws_credentials):
    """Create a mocked S3 bucket for SES-stored emails."""
    with mock_aws():
        s3 = boto3.client("s3", **aws_credentials)
        s3.create_bucket(
            Bucket=TEST_BUCKET,
            CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
        )
        yield s3


@pytest.fixture
def inbound_bucket(mock_s3) -> str:
    """Name of the mocked bucket SES stores inbound emails in."""
    return TEST_BUCKET


# --- Sink Fixtures ---


@pytest.fixture
def sink_config() -> SinkConfig:
    return SinkConfig(
        url="https://sink.test.example.com/dmarc",
        timeout_seconds=30.0,
        retry_timeout_seconds=None,
        worker_version="1.2.0",
        worker_source="test-worker",
        user_agent_product="DMARC-Email-Worker",
        payload_warn_bytes=10 * 1024 * 1024,
    )


@pytest.fixture
def mock_post() -> Generator[MagicMock, None, None]:
    """Patch requests.post inside the sink client; answers success by default."""
    with patch("dmarc_reports.shared.tools.sink.requests.post") as post:
        post.return_value = make_response(200, {"success": True, "message": "stored"})
        yield post


# --- DMARC Report Fixtures ---


@pytest.fixture
def report_xml() -> str:
    """Minimal valid report with two records."""
    return build_report_xml(
        records=[
            build_record_xml(source_ip="192.0.2.10", count=3),
            build_record_xml(
                source_ip="198.51.100.7",
                count=1,
                disposition="quarantine",
                dkim="fail",
                spf="fail",
                reason_type="forwarded",
            ),
        ]
    )


@pytest.fixture
def report_gzip(report_xml: str) -> bytes:
    return gzip_bytes(report_xml)


@pytest.fixture
def report_zip(report_xml: str) -> bytes:
    return zip_bytes([("google.com!example.com!1704067200!1704153599.xml", report_xml)])


# --- Email Fixtures ---


@pytest.fixture
def dmarc_email_raw(report_zip: bytes) -> bytes:
    """Raw MIME email carrying a zipped DMARC report."""
    return build_email(
        attachment=report_zip,
        filename="google.com!example.com!1704067200!1704153599.zip",
        mime_type="application/zip",
    )


@pytest.fixture
def plain_email_raw() -> bytes:
    """Raw MIME email without attachments."""
    return build_email(subject="Hello", message_id="<plain-1@example.org>")


@pytest.fixture
def parsed_email() -> ParsedEmail:
    return ParsedEmail(
        from_address="noreply-dmarc-support@google.com",
        subject="Report domain: example.com",
        message_id="<dmarc-report-1@google.com>",
        date="2024-01-02T08:00:00+00:00",
        to_addresses=["dmarc@example.com"],
    )


@pytest.fixture
def zip_attachment(report_zip: bytes) -> AttachmentData:
    return AttachmentData(
        filename="report.zip",
        content=report_zip,
        content_type="application/zip",
        size_bytes=len(report_zip),
    )
