#!/usr/bin/env python3
"""
Demo Script: DMARC Aggregate Report Email

Builds a sample DMARC report email, wraps it in the SES → SNS event the
Lambda receives and runs the handler against the configured sink.

Usage:
    # Dry run - parse and map only, print the payload that would be sent
    python scripts/run_demo.py --dry-run

    # Deliver to a running stub sink (see scripts/local_sink_server.py)
    DMARC_SINK_URL=http://localhost:8787/api/dmarc-email python scripts/run_demo.py

    # Try the other container formats
    python scripts/run_demo.py --format gz --dry-run
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import structlog  # noqa: E402

from dmarc_reports.shared.config import get_settings  # noqa: E402
from dmarc_reports.shared.tools.sink import build_payload  # noqa: E402
from lambdas.process_dmarc_email.email_parser import extract_email  # noqa: E402
from lambdas.process_dmarc_email.handler import (  # noqa: E402
    analyze_attachment,
    lambda_handler,
)
from tests.utils.email_factory import (  # noqa: E402
    build_email,
    build_record_xml,
    build_report_xml,
    build_ses_notification,
    build_sns_event,
    gzip_bytes,
    zip_bytes,
)

log = structlog.get_logger()

REPORT_BASENAME = "google.com!example.com!1704067200!1704153599"

# format -> (filename suffix, MIME type)
FORMATS = {
    "xml": (".xml", "text/xml"),
    "gz": (".xml.gz", "application/gzip"),
    "zip": (".zip", "application/zip"),
}


def build_demo_email(fmt: str) -> bytes:
    """Sample report with a passing, a forwarded and a malformed record."""
    xml = build_report_xml(
        records=[
            build_record_xml(source_ip="192.0.2.10", count=42),
            build_record_xml(
                source_ip="198.51.100.7",
                count=3,
                dkim="fail",
                spf="pass",
                disposition="none",
                reason_type="forwarded",
            ),
            build_record_xml(source_ip="203.0.113.99", include_identifiers=False),
        ]
    )

    if fmt == "gz":
        content = gzip_bytes(xml)
    elif fmt == "zip":
        content = zip_bytes([(f"{REPORT_BASENAME}.xml", xml)])
    else:
        content = xml.encode("utf-8")

    suffix, mime_type = FORMATS[fmt]
    return build_email(
        attachment=content,
        filename=f"{REPORT_BASENAME}{suffix}",
        mime_type=mime_type,
    )


def dry_run(raw_email: bytes) -> None:
    parsed = extract_email(raw_email)
    attachment = parsed.first_attachment
    analysis = analyze_attachment(attachment)

    payload = build_payload(parsed, attachment, analysis.rows, get_settings().sink_config)
    data = payload.to_json_dict()
    if "attachment" in data:
        data["attachment"]["content"] = f"<{data['attachment']['size']} base64 chars>"

    print(f"Email type: {analysis.email_type.value}")
    if analysis.error:
        print(f"Attachment error: {analysis.error}")
    print(json.dumps(data, indent=2))


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a sample DMARC report email through the worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --dry-run              Print the payload without sending it
  %(prog)s --format zip           Deliver a zipped report to DMARC_SINK_URL
        """,
    )
    parser.add_argument(
        "--format",
        choices=sorted(FORMATS),
        default="zip",
        help="Container format of the report attachment",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and map only; do not contact the sink",
    )

    args = parser.parse_args()

    raw_email = build_demo_email(args.format)

    if args.dry_run:
        dry_run(raw_email)
        return

    log.info("demo_delivery_started", sink_url=get_settings().sink_url, format=args.format)
    event = build_sns_event(build_ses_notification(raw_email=raw_email))
    response = lambda_handler(event, None)

    print(f"Status: {response['statusCode']}")
    print(json.dumps(json.loads(response["body"]), indent=2))


if __name__ == "__main__":
    main()
