"""
Inbound Email Models

Plain dataclasses describing an inbound email after MIME parsing.
They live only for the duration of one processing run.
"""

from dataclasses import dataclass, field


@dataclass
class AttachmentData:
    """Raw attachment data from email parse."""

    filename: str
    content: bytes | str
    content_type: str
    size_bytes: int


@dataclass
class ParsedEmail:
    """Result of parsing an inbound email."""

    # Required fields
    from_address: str
    subject: str
    message_id: str

    # Optional metadata
    date: str | None = None
    to_addresses: list[str] = field(default_factory=list)

    # Attachments in MIME order
    attachments: list[AttachmentData] = field(default_factory=list)

    # Parsing metadata
    parse_errors: list[str] = field(default_factory=list)

    @property
    def first_attachment(self) -> AttachmentData | None:
        """Only the first attachment is ever examined."""
        return self.attachments[0] if self.attachments else None
