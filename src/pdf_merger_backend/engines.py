"""
Merge and compress transformations on top of pypdf.

Both engines work on in-memory byte buffers and return serialized bytes.
They are CPU-bound and are meant to run in a worker thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Sequence

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from pypdf.generic import NameObject

from .errors import CorruptDocument, EmptyResult, EncryptedDocument, ProcessingError

logger = logging.getLogger(__name__)

# pypdf surfaces malformed structure as its own errors or as plain lookup/type errors
PARSE_ERRORS = (PyPdfError, ValueError, KeyError, IndexError, TypeError, AttributeError)

# Info dictionary keys cleared by compress_document
CLEARED_METADATA_KEYS = ("/Title", "/Author", "/Subject", "/Keywords", "/Producer", "/Creator")


@dataclass(frozen=True)
class CompressionOutcome:
    content: bytes
    original_size: int
    output_size: int

    @property
    def ratio(self) -> float:
        return compression_ratio(self.original_size, self.output_size)


def compression_ratio(original_size: int, output_size: int) -> float:
    """Size reduction as a percentage, rounded to two decimals."""
    if original_size <= 0:
        return 0.0
    return round((1 - output_size / original_size) * 100, 2)


def _serialize(writer: PdfWriter) -> bytes:
    buffer = BytesIO()
    writer.write(buffer)
    content = buffer.getvalue()
    if not content:
        raise EmptyResult("Serialization produced an empty document")
    return content


def _open_source(data: bytes, index: int) -> PdfReader:
    if not data:
        raise ProcessingError("file is empty", index=index)
    try:
        reader = PdfReader(BytesIO(data))
    except PARSE_ERRORS as exc:
        raise CorruptDocument("file is corrupted or not a valid PDF", index=index) from exc
    if reader.is_encrypted:
        raise EncryptedDocument("file is password-protected or encrypted", index=index)
    return reader


def merge_documents(sources: Sequence[bytes]) -> bytes:
    """
    Concatenate the pages of every source, in order, into one document.

    Args:
        sources: Serialized PDFs in the order the client supplied them

    Returns:
        The serialized merged document

    Raises:
        ProcessingError: with the 1-based ``index`` of the first source that
            could not be read; no partial output is produced
        EmptyResult: if serialization yields zero bytes
    """
    if not sources:
        raise ProcessingError("No files provided for merging")

    writer = PdfWriter()
    for index, data in enumerate(sources, start=1):
        reader = _open_source(data, index)
        try:
            for page in reader.pages:
                # resolve lazily loaded content streams while the source index is known
                page.get_contents()
                writer.add_page(page)
        except PARSE_ERRORS as exc:
            raise CorruptDocument("file is corrupted or not a valid PDF", index=index) from exc
        logger.debug("Appended %d page(s) from file %d", len(reader.pages), index)

    try:
        return _serialize(writer)
    except EmptyResult:
        raise
    except PARSE_ERRORS as exc:
        raise ProcessingError("Merged document could not be written") from exc


def _clear_metadata(writer: PdfWriter) -> None:
    writer.add_metadata({key: "" for key in CLEARED_METADATA_KEYS})
    # XMP packet duplicates the Info dictionary
    root = writer._root_object
    meta_key = NameObject("/Metadata")
    if meta_key in root:
        del root[meta_key]


def compress_document(data: bytes) -> CompressionOutcome:
    """
    Strip descriptive metadata and re-serialize a single document.

    Object streams are not generated, favouring broadly compatible output
    over maximum size reduction.

    Raises:
        EncryptedDocument: the source is password-protected
        CorruptDocument: the source is empty or structurally invalid
        EmptyResult: serialization yields zero bytes
    """
    if not data:
        raise CorruptDocument("PDF file is empty")
    try:
        reader = PdfReader(BytesIO(data))
    except PARSE_ERRORS as exc:
        raise CorruptDocument(f"Invalid PDF: {exc}") from exc
    if reader.is_encrypted:
        raise EncryptedDocument("PDF is encrypted")

    try:
        writer = PdfWriter(clone_from=reader)
        _clear_metadata(writer)
        content = _serialize(writer)
    except EmptyResult:
        raise
    except PARSE_ERRORS as exc:
        raise CorruptDocument(f"Invalid PDF structure: {exc}") from exc

    return CompressionOutcome(content=content, original_size=len(data), output_size=len(content))
