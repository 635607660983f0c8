"""
Unit tests for ProcessDmarcEmail Lambda handler.

Tests cover:
- Attachment analysis: classification into regular / dmarc_report / attachment_only
- Pipeline: process_email with a mocked sink client
- Lambda entry point: event formats and status codes
"""

import json
from unittest.mock import MagicMock

import pytest

from dmarc_reports.shared.exceptions import (
    DeliveryRetryFailedError,
    MissingRawContentError,
    SinkHTTPError,
    SinkTimeoutError,
)
from dmarc_reports.shared.models.email import AttachmentData
from dmarc_reports.shared.tools.sink import DeliveryResult, SinkClient
from lambdas.process_dmarc_email.handler import (
    EmailType,
    analyze_attachment,
    get_raw_email,
    lambda_handler,
    process_email,
)
from tests.mocks.mock_sink import make_response
from tests.utils.email_factory import (
    build_email,
    build_record_xml,
    build_report_xml,
    build_ses_notification,
    build_sns_event,
    mark_encrypted,
    zip_bytes,
)


def _attachment(content: bytes, filename: str, content_type: str) -> AttachmentData:
    return AttachmentData(
        filename=filename,
        content=content,
        content_type=content_type,
        size_bytes=len(content),
    )


@pytest.fixture
def sink_client() -> MagicMock:
    client = MagicMock(spec=SinkClient)
    client.deliver.return_value = DeliveryResult(success=True, status_code=200)
    return client


# ============================================================================
# Attachment Analysis
# ============================================================================


class TestAnalyzeAttachment:
    """Tests for analyze_attachment."""

    def test_no_attachment_is_regular(self):
        analysis = analyze_attachment(None)

        assert analysis.email_type == EmailType.REGULAR
        assert analysis.rows == []
        assert analysis.error is None

    def test_every_container_gives_same_rows(self, report_xml, report_gzip, report_zip):
        analyses = [
            analyze_attachment(_attachment(report_xml.encode(), "r.xml", "text/xml")),
            analyze_attachment(_attachment(report_gzip, "r.xml.gz", "application/gzip")),
            analyze_attachment(_attachment(report_zip, "r.zip", "application/zip")),
        ]

        assert {a.email_type for a in analyses} == {EmailType.DMARC_REPORT}
        assert analyses[0].rows == analyses[1].rows == analyses[2].rows
        assert len(analyses[0].rows) == 2

    def test_octet_stream_resolved_by_filename(self, report_gzip):
        analysis = analyze_attachment(
            _attachment(report_gzip, "google.com!example.com.xml.gz", "application/octet-stream")
        )

        assert analysis.email_type == EmailType.DMARC_REPORT

    def test_unsupported_type_is_attachment_only(self):
        analysis = analyze_attachment(
            _attachment(b"%PDF-1.4", "invoice.pdf", "application/pdf")
        )

        assert analysis.email_type == EmailType.ATTACHMENT_ONLY
        assert analysis.rows == []
        assert analysis.error.startswith("Unsupported attachment type for DMARC report")

    def test_corrupt_zip_is_attachment_only(self):
        analysis = analyze_attachment(_attachment(b"not a zip", "r.zip", "application/zip"))

        assert analysis.email_type == EmailType.ATTACHMENT_ONLY

    def test_encrypted_zip_is_attachment_only(self, report_xml):
        archive = mark_encrypted(zip_bytes([("report.xml", report_xml)]))

        analysis = analyze_attachment(_attachment(archive, "r.zip", "application/zip"))

        assert analysis.email_type == EmailType.ATTACHMENT_ONLY
        assert analysis.rows == []
        assert "encrypted" in analysis.error

    def test_zip_without_xml_is_attachment_only(self):
        archive = zip_bytes([("report.csv", "a,b")])

        analysis = analyze_attachment(_attachment(archive, "r.zip", "application/zip"))

        assert analysis.email_type == EmailType.ATTACHMENT_ONLY
        assert "No .xml file found" in analysis.error

    def test_invalid_structure_is_attachment_only(self):
        xml = build_report_xml(include_policy=False).encode()

        analysis = analyze_attachment(_attachment(xml, "r.xml", "text/xml"))

        assert analysis.email_type == EmailType.ATTACHMENT_ONLY
        assert "Invalid DMARC XML structure" in analysis.error

    def test_all_records_skipped_is_still_a_report(self):
        xml = build_report_xml(records=[build_record_xml(include_identifiers=False)])

        analysis = analyze_attachment(_attachment(xml.encode(), "r.xml", "text/xml"))

        assert analysis.email_type == EmailType.DMARC_REPORT
        assert analysis.rows == []

    def test_oversized_count_does_not_demote_report(self):
        xml = build_report_xml(records=[build_record_xml(count="9" * 5000)])

        analysis = analyze_attachment(_attachment(xml.encode(), "r.xml", "text/xml"))

        assert analysis.email_type == EmailType.DMARC_REPORT
        assert analysis.error is None
        assert [row.count for row in analysis.rows] == [0]


# ============================================================================
# Pipeline
# ============================================================================


class TestProcessEmail:
    """Tests for process_email."""

    def test_dmarc_email_delivered(self, dmarc_email_raw, sink_client):
        outcome = process_email(dmarc_email_raw, client=sink_client)

        assert outcome.analysis.email_type == EmailType.DMARC_REPORT
        assert len(outcome.analysis.rows) == 2

        sink_client.deliver.assert_called_once()
        email, attachment, rows = sink_client.deliver.call_args.args
        assert email.message_id == "<dmarc-report-1@google.com>"
        assert attachment.content_type == "application/zip"
        assert rows == outcome.analysis.rows

        body = outcome.to_body()
        assert body["email_type"] == "dmarc_report"
        assert body["record_count"] == 2
        assert body["delivered"] is True
        assert body["delivery_retried"] is False

    def test_regular_email_delivered_without_rows(self, plain_email_raw, sink_client):
        outcome = process_email(plain_email_raw, client=sink_client)

        assert outcome.analysis.email_type == EmailType.REGULAR
        email, attachment, rows = sink_client.deliver.call_args.args
        assert attachment is None
        assert rows == []

    def test_only_first_attachment_examined(self, report_zip, sink_client):
        raw = build_email(
            attachment=b"%PDF-1.4",
            filename="cover.pdf",
            mime_type="application/pdf",
            extra_attachments=[(report_zip, "report.zip", "application/zip")],
        )

        outcome = process_email(raw, client=sink_client)

        assert outcome.analysis.email_type == EmailType.ATTACHMENT_ONLY
        _, attachment, rows = sink_client.deliver.call_args.args
        assert attachment.filename == "cover.pdf"
        assert rows == []

    def test_delivery_failure_recorded_not_raised(self, dmarc_email_raw, sink_client):
        sink_client.deliver.side_effect = DeliveryRetryFailedError(
            SinkHTTPError(503, "Service Unavailable (503)"),
            SinkTimeoutError(30),
        )

        outcome = process_email(dmarc_email_raw, client=sink_client)

        body = outcome.to_body()
        assert body["delivered"] is False
        assert body["delivery_error"].startswith("Retry failed: Request timeout")
        assert body["email_type"] == "dmarc_report"

    def test_default_client_uses_settings(self, dmarc_email_raw, mock_post):
        outcome = process_email(dmarc_email_raw)

        assert outcome.delivery.success is True
        assert mock_post.call_args.args[0] == "https://sink.test.example.com/dmarc"
        body = json.loads(mock_post.call_args.kwargs["data"])
        assert body["workerInfo"]["source"] == "test-worker"


# ============================================================================
# Raw Email Retrieval
# ============================================================================


class TestGetRawEmail:
    def test_base64_content(self, dmarc_email_raw):
        notification = build_ses_notification(raw_email=dmarc_email_raw)

        assert get_raw_email(notification) == dmarc_email_raw

    def test_unencoded_content(self, plain_email_raw):
        notification = build_ses_notification()
        notification["content"] = plain_email_raw.decode("utf-8")

        assert get_raw_email(notification) == plain_email_raw

    def test_missing_content_raises(self):
        with pytest.raises(MissingRawContentError, match="raw content is missing"):
            get_raw_email(build_ses_notification())


# ============================================================================
# Lambda Entry Point
# ============================================================================


class TestLambdaHandler:
    """Tests for lambda_handler."""

    def test_sns_records_event(self, dmarc_email_raw, mock_post):
        event = build_sns_event(build_ses_notification(raw_email=dmarc_email_raw))

        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "processed"
        assert body["email_type"] == "dmarc_report"
        assert body["record_count"] == 2
        assert body["delivered"] is True
        mock_post.assert_called_once()

    def test_direct_message_event(self, plain_email_raw, mock_post):
        notification = build_ses_notification(raw_email=plain_email_raw)

        response = lambda_handler({"Message": json.dumps(notification)}, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["email_type"] == "regular"

    def test_raw_ses_notification_event(self, plain_email_raw, mock_post):
        response = lambda_handler(build_ses_notification(raw_email=plain_email_raw), None)

        assert response["statusCode"] == 200

    def test_sink_outage_still_200(self, dmarc_email_raw, mock_post):
        mock_post.return_value = make_response(503, text="down")
        event = build_sns_event(build_ses_notification(raw_email=dmarc_email_raw))

        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["delivered"] is False
        assert body["delivery_error"].startswith("Retry failed")
        assert mock_post.call_count == 2

    def test_bounce_skipped(self, mock_post):
        event = build_sns_event(build_ses_notification(notification_type="Bounce"))

        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["status"] == "skipped"
        mock_post.assert_not_called()

    def test_missing_content_returns_500(self, mock_post):
        event = build_sns_event(build_ses_notification())

        response = lambda_handler(event, None)

        assert response["statusCode"] == 500
        assert json.loads(response["body"])["error_type"] == "MissingRawContentError"
        mock_post.assert_not_called()

    def test_invalid_sns_json(self):
        event = {"Records": [{"Sns": {"Message": "{not json"}}]}

        response = lambda_handler(event, None)

        assert response["statusCode"] == 400

    def test_empty_records(self):
        response = lambda_handler({"Records": []}, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["status"] == "skipped"

    def test_unknown_event_format(self):
        response = lambda_handler({"unexpected": True}, None)

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["error"] == "Unknown event format"
