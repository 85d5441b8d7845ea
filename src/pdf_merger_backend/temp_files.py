"""
Request-scoped temporary storage for uploaded documents.

Uploads are written to a shared directory under collision-resistant names.
Deletion is idempotent: a handle that is already gone is not an error, so the
periodic sweep and a request's own cleanup can race without locking.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, Optional
from uuid import uuid4

from fastapi import UploadFile

from .errors import ResourceError
from .models import UploadedFile
from .utils import ensure_directory, sanitize_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8 * 1024 * 1024


class TempFileManager:
    """
    Owns the temporary upload area.

    Attributes:
        root: Directory holding in-flight uploads
        max_age_seconds: Entries older than this are removed by ``sweep``
        sweep_interval_seconds: Delay between background sweeps
    """

    def __init__(
        self,
        root: Path | None = None,
        max_age_seconds: float = 3600,
        sweep_interval_seconds: float = 3600,
    ) -> None:
        self.root = ensure_directory(root or Path("uploads"))
        self.max_age_seconds = max_age_seconds
        self.sweep_interval_seconds = sweep_interval_seconds

    def _new_handle(self, name: str) -> Path:
        stamp = int(time.time() * 1000)
        return self.root / f"{stamp}-{uuid4().hex[:8]}-{sanitize_filename(name)}"

    def persist(self, name: str, data: bytes, content_type: str = "application/pdf") -> UploadedFile:
        handle = self._new_handle(name)
        try:
            handle.write_bytes(data)
        except OSError as exc:
            self._discard(handle)
            raise ResourceError(f"Could not store {name}: {exc}") from exc
        return UploadedFile(handle=handle, original_name=name, size=len(data), content_type=content_type)

    async def persist_upload(self, upload: UploadFile) -> UploadedFile:
        """Stream a multipart upload to disk without holding it in memory."""
        name = upload.filename or "document.pdf"
        handle = self._new_handle(name)
        size = 0
        try:
            with handle.open("wb") as buffer:
                while chunk := await upload.read(CHUNK_SIZE):
                    buffer.write(chunk)
                    size += len(chunk)
        except OSError as exc:
            self._discard(handle)
            raise ResourceError(f"Could not store {name}: {exc}") from exc
        except BaseException:
            # cancelled mid-stream: the caller never receives this handle
            self._discard(handle)
            raise
        finally:
            await upload.close()
        return UploadedFile(handle=handle, original_name=name, size=size, content_type=upload.content_type or "")

    def read(self, file: UploadedFile) -> bytes:
        try:
            return file.handle.read_bytes()
        except OSError as exc:
            raise ResourceError(f"Could not read {file.original_name}: {exc}") from exc

    def cleanup(self, files: Iterable[UploadedFile | Path]) -> None:
        """Delete every handle; failures are logged, never raised."""
        for file in files:
            path = file.handle if isinstance(file, UploadedFile) else file
            self._discard(path)

    def _discard(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Error deleting file %s: %s", path, exc)
            return False
        return True

    def pending(self) -> list[Path]:
        return sorted(path for path in self.root.iterdir() if path.is_file())

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Remove entries whose last modification is older than ``max_age_seconds``.

        Returns:
            Number of files deleted
        """
        now = time.time() if now is None else now
        removed = 0
        try:
            entries = list(self.root.iterdir())
        except OSError as exc:
            logger.error("Error scanning upload directory %s: %s", self.root, exc)
            return 0

        for path in entries:
            try:
                if not path.is_file() or now - path.stat().st_mtime <= self.max_age_seconds:
                    continue
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error("Error processing file %s: %s", path.name, exc)
                continue
            if self._discard(path):
                removed += 1
                logger.info("Cleaned up old file: %s", path.name)
        return removed

    async def run_sweeper(self) -> None:
        """Sweep immediately, then every ``sweep_interval_seconds`` until cancelled."""
        while True:
            ensure_directory(self.root)
            removed = await asyncio.to_thread(self.sweep)
            if removed:
                logger.info("Sweep removed %d orphaned upload(s)", removed)
            await asyncio.sleep(self.sweep_interval_seconds)
