"""
Error taxonomy for the document pipeline.

Every failure a request can hit maps onto one of four families:

- ValidationError: count/size/type violations the user can correct (HTTP 400)
- ProcessingError: unreadable, corrupt or encrypted input (HTTP 500 with a
  specific diagnostic)
- ResourceError: storage or timeout failures (HTTP 500-class, generic message)
- LoggingError: audit write failures, never surfaced to a client

The HTTP layer renders ``user_message()`` and ``status_code``; internal
details stay in the logs.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base exception for every pipeline failure."""

    status_code = 500
    default_message = "Request failed."

    def user_message(self) -> str:
        return str(self) or self.default_message


class ValidationError(PipelineError):
    """Raised when an upload violates count, size or type constraints."""

    status_code = 400
    default_message = "Invalid upload."


class TooFewFiles(ValidationError):
    default_message = "At least 2 PDF files are required"


class TooManyFiles(ValidationError):
    default_message = "Too many files. Maximum is 100 files."


class InvalidType(ValidationError):
    default_message = "Only PDF files are allowed"


class FileTooLarge(ValidationError):
    default_message = "File too large. Maximum size is 200MB per file."


class MissingFile(ValidationError):
    default_message = "PDF file is required"


class EmptyFile(ValidationError):
    default_message = "Uploaded file is empty"


class FileTooSmall(ValidationError):
    default_message = "File is too small to compress (minimum 1KB)"


class ProcessingError(PipelineError):
    """
    Raised when a document cannot be parsed or serialized.

    Attributes:
        index: 1-based position of the failing input, or None when the
            failure is not tied to a single input
        cause: short description of the underlying failure
    """

    default_message = "The PDF file could not be processed."

    def __init__(self, cause: str = "", index: Optional[int] = None) -> None:
        self.index = index
        self.cause = cause
        if index is not None:
            message = f"Failed to process PDF file {index}: {cause}" if cause else f"Failed to process PDF file {index}"
        else:
            message = cause
        super().__init__(message)

    def user_message(self) -> str:
        if self.index is not None:
            return str(self)
        return self.default_message


class EncryptedDocument(ProcessingError):
    default_message = "Cannot process password-protected or encrypted PDFs."

    def user_message(self) -> str:
        if self.index is not None:
            return f"PDF file {self.index} is password-protected or encrypted."
        return self.default_message


class CorruptDocument(ProcessingError):
    default_message = "Invalid or corrupted PDF file. Please check the file and try again."


class EmptyResult(ProcessingError):
    default_message = "The PDF file appears to be empty or invalid."


class ResourceError(PipelineError):
    """Raised on temporary-storage failures; details are never shown to clients."""

    default_message = "Failed to process the request. Please try again."

    def user_message(self) -> str:
        return self.default_message


class RequestTimeout(ResourceError):
    status_code = 504
    default_message = "Processing took too long and was aborted."


class LoggingError(PipelineError):
    """Raised inside the audit worker when a record cannot be stored."""
