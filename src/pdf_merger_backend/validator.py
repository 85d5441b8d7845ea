from __future__ import annotations

from typing import Sequence

from .configuration import Limits
from .errors import (
    EmptyFile,
    FileTooLarge,
    FileTooSmall,
    InvalidType,
    MissingFile,
    TooFewFiles,
    TooManyFiles,
)
from .models import OperationKind, UploadMeta


class Validator:
    """Checks upload count, size and declared type before anything is stored."""

    def __init__(self, limits: Limits | None = None) -> None:
        self.limits = limits or Limits()

    def validate(self, kind: OperationKind, files: Sequence[UploadMeta]) -> None:
        if kind is OperationKind.MERGE:
            self.validate_merge(files)
        else:
            self.validate_compress(files)

    def validate_merge(self, files: Sequence[UploadMeta]) -> None:
        limits = self.limits
        if len(files) < limits.merge_min_files:
            raise TooFewFiles(f"At least {limits.merge_min_files} PDF files are required")
        if len(files) > limits.merge_max_files:
            raise TooManyFiles(f"Too many files. Maximum is {limits.merge_max_files} files.")
        for file in files:
            self._check_type(file)
        for file in files:
            self._check_max_size(file)

    def validate_compress(self, files: Sequence[UploadMeta]) -> None:
        if not files:
            raise MissingFile()
        if len(files) > 1:
            raise TooManyFiles("Only one PDF file can be compressed")
        file = files[0]
        self._check_type(file)
        if file.size == 0:
            raise EmptyFile()
        if file.size < self.limits.compress_min_size:
            raise FileTooSmall(f"File is too small to compress (minimum {self.limits.compress_min_size // 1024}KB)")
        self._check_max_size(file)

    def _check_type(self, file: UploadMeta) -> None:
        content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in self.limits.allowed_content_types:
            raise InvalidType(f"Only PDF files are allowed ('{file.name}' is {content_type or 'untyped'})")

    def _check_max_size(self, file: UploadMeta) -> None:
        if file.size > self.limits.max_file_size:
            max_mb = self.limits.max_file_size // (1024 * 1024)
            raise FileTooLarge(f"File too large. Maximum size is {max_mb}MB per file.")
