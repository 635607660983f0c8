"""
Attachment Decoder

Turns a report attachment into XML text according to its resolved format:
plain XML, gzip (or zlib) compressed XML, or a zip archive holding an XML
file.
"""

import io
import zipfile
import zlib

import structlog

from dmarc_reports.shared.exceptions import (
    ArchiveEmptyError,
    CorruptArchiveError,
    DecompressionError,
    NoXmlEntryError,
    UnsupportedAttachmentFormatError,
)
from lambdas.process_dmarc_email.format_resolver import AttachmentFormat

log = structlog.get_logger()

# Accept both gzip and zlib headers.
_AUTO_HEADER_WBITS = zlib.MAX_WBITS | 32


def _to_bytes(content: bytes | str) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def _to_text(content: bytes | str) -> str:
    if isinstance(content, str):
        return content
    return content.decode("utf-8", errors="replace")


def inflate_gzip(content: bytes | str) -> str:
    """
    Decompress a gzip (or zlib) stream to text.

    Raises:
        DecompressionError: If the stream is corrupt or truncated
    """
    try:
        decompressor = zlib.decompressobj(_AUTO_HEADER_WBITS)
        data = decompressor.decompress(_to_bytes(content))
        data += decompressor.flush()
    except zlib.error as e:
        raise DecompressionError(str(e)) from e

    if not decompressor.eof:
        raise DecompressionError("compressed stream is truncated")

    xml_text = _to_text(data)
    log.debug("gzip_inflated", xml_size=len(xml_text))
    return xml_text


def extract_xml_from_zip(content: bytes | str) -> str:
    """
    Read the first .xml entry of a zip archive as text.

    Entries are checked in the archive's own listing order and the suffix
    test is case-insensitive; later XML entries are ignored.

    Raises:
        CorruptArchiveError: If the bytes are not a readable zip archive
        ArchiveEmptyError: If the archive has no entries
        NoXmlEntryError: If no entry name ends in .xml
    """
    try:
        with zipfile.ZipFile(io.BytesIO(_to_bytes(content))) as archive:
            entry_names = archive.namelist()
            log.debug("zip_entries_found", entry_names=entry_names)

            if not entry_names:
                raise ArchiveEmptyError()

            xml_entry = next(
                (name for name in entry_names if name.lower().endswith(".xml")),
                None,
            )
            if xml_entry is None:
                raise NoXmlEntryError(entry_names)

            data = archive.read(xml_entry)
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        EOFError,
        # Encrypted entries; NotImplementedError (unsupported methods) is a subclass.
        RuntimeError,
    ) as e:
        raise CorruptArchiveError(str(e)) from e

    xml_text = _to_text(data)
    log.debug("zip_entry_extracted", entry_name=xml_entry, xml_size=len(xml_text))
    return xml_text


def decode_attachment(
    content: bytes | str,
    fmt: AttachmentFormat,
    *,
    mime_type: str | None = None,
    filename: str | None = None,
) -> str:
    """
    Decode attachment content into XML text.

    Args:
        content: Raw attachment bytes (or already-decoded text)
        fmt: Format chosen by resolve_format()
        mime_type: Declared MIME type, only used in error messages
        filename: Attachment filename, only used in error messages

    Returns:
        XML document text

    Raises:
        UnsupportedAttachmentFormatError: If fmt is UNSUPPORTED
        DecompressionError, CorruptArchiveError, ArchiveEmptyError,
        NoXmlEntryError: On container-level failures
    """
    if fmt is AttachmentFormat.GZIP:
        return inflate_gzip(content)
    if fmt is AttachmentFormat.ZIP:
        return extract_xml_from_zip(content)
    if fmt is AttachmentFormat.PLAIN_XML:
        return _to_text(content)

    raise UnsupportedAttachmentFormatError(mime_type, filename)
