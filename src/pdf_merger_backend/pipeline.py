"""
Per-request orchestration of merge and compress operations.

A request moves through Received -> Validated -> Persisted -> Transformed,
after which the HTTP layer sends the response and calls ``finalize`` to clean
up and record the audit entry. Any failure before the hand-off cleans up
whatever was stored for the request and marks it Failed before the error
propagates, so each handle set is cleaned exactly once on every path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import List, Optional, Sequence

from fastapi import UploadFile

from .audit import AuditLogger, AuditStore
from .branches import BranchClassifier
from .configuration import ServiceSettings
from .engines import compress_document, merge_documents
from .errors import PipelineError, RequestTimeout
from .models import AuditRecord, OperationKind, OperationResult, UploadedFile, UploadMeta
from .temp_files import TempFileManager
from .utils import bytes_to_megabytes, detect_server_address
from .validator import Validator

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    TRANSFORMED = "transformed"
    RESPONDED = "responded"
    CLEANED_UP = "cleaned_up"
    FAILED = "failed"


@dataclass
class PipelineContext:
    """Shared collaborators injected into the pipeline."""

    settings: ServiceSettings
    temp_files: TempFileManager
    classifier: BranchClassifier
    audit_logger: AuditLogger
    server_address: str = "localhost"
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> "PipelineContext":
        temp_files = TempFileManager(
            root=settings.upload_dir,
            max_age_seconds=settings.sweep_max_age_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )
        return cls(
            settings=settings,
            temp_files=temp_files,
            classifier=BranchClassifier(settings.branches),
            audit_logger=AuditLogger(AuditStore(settings.audit_db_path)),
            server_address=detect_server_address(),
        )

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class PipelineOutcome:
    """Progress of one request; owns its temporary files until finalized."""

    files: List[UploadedFile]
    requester: Optional[str]
    started: float
    result: Optional[OperationResult] = None
    state: PipelineState = PipelineState.RECEIVED


def upload_meta(upload: UploadFile) -> UploadMeta:
    size = upload.size
    if size is None:
        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
    return UploadMeta(name=upload.filename or "", size=size, content_type=upload.content_type or "")


class DocumentPipeline:
    """
    Runs validation, storage and transformation for merge and compress requests.

    CPU-heavy parsing and serialization run in a bounded thread pool so that
    large merges do not stall the event loop and the number of documents
    buffered in memory stays limited.
    """

    def __init__(self, context: PipelineContext, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self.context = context
        self.validator = Validator(context.settings.limits)
        self._executor = executor or ThreadPoolExecutor(
            max_workers=context.settings.max_workers,
            thread_name_prefix="transform",
        )

    async def run(
        self,
        kind: OperationKind,
        uploads: Sequence[UploadFile],
        requester: Optional[str] = None,
    ) -> PipelineOutcome:
        """
        Validate, persist and transform the uploads of one request.

        Raises:
            ValidationError: the uploads violate count, size or type limits
            ProcessingError: a document could not be parsed or serialized
            ResourceError: storage failed or the request timed out
        """
        outcome = PipelineOutcome(files=[], requester=requester, started=time.perf_counter())
        try:
            await asyncio.wait_for(
                self._process(kind, uploads, outcome),
                timeout=self.context.settings.request_timeout_seconds,
            )
            return outcome
        except asyncio.TimeoutError as exc:
            logger.error("%s request timed out after %.0fs", kind.value, self.context.settings.request_timeout_seconds)
            raise RequestTimeout(f"{kind.value} exceeded the request time limit") from exc
        except PipelineError as exc:
            logger.warning("Error in %s (%s): %s", kind.value, type(exc).__name__, exc)
            raise
        except Exception:
            logger.exception("Unexpected error during %s", kind.value)
            raise
        finally:
            if outcome.state is not PipelineState.TRANSFORMED:
                self.context.temp_files.cleanup(outcome.files)
                logger.info(
                    "%s request failed after %s; %d stored file(s) cleaned up",
                    kind.value, outcome.state.value, len(outcome.files),
                )
                outcome.state = PipelineState.FAILED

    async def _process(
        self,
        kind: OperationKind,
        uploads: Sequence[UploadFile],
        outcome: PipelineOutcome,
    ) -> None:
        self.validator.validate(kind, [upload_meta(upload) for upload in uploads])
        outcome.state = PipelineState.VALIDATED

        stored = outcome.files
        for upload in uploads:
            stored.append(await self.context.temp_files.persist_upload(upload))
        outcome.state = PipelineState.PERSISTED

        total_size = sum(file.size for file in stored)
        logger.info("%s: %d PDF(s) (%sMB)", kind.value.capitalize(), len(stored), bytes_to_megabytes(total_size))

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._executor, partial(self._transform, kind, list(stored)))
        outcome.result = result
        outcome.state = PipelineState.TRANSFORMED

    def _transform(self, kind: OperationKind, files: List[UploadedFile]) -> OperationResult:
        temp_files = self.context.temp_files
        original_size = sum(file.size for file in files)

        if kind is OperationKind.MERGE:
            content = merge_documents([temp_files.read(file) for file in files])
            return OperationResult(
                kind=kind,
                content=content,
                files_count=len(files),
                original_size=original_size,
                output_size=len(content),
            )

        outcome = compress_document(temp_files.read(files[0]))
        return OperationResult(
            kind=kind,
            content=outcome.content,
            files_count=1,
            original_size=outcome.original_size,
            output_size=outcome.output_size,
            compression_ratio=outcome.ratio,
        )

    def finalize(self, outcome: PipelineOutcome) -> None:
        """Trailing work after the response: audit record and cleanup."""
        if outcome.state is not PipelineState.TRANSFORMED:
            return
        outcome.state = PipelineState.RESPONDED
        result = outcome.result

        branch = self.context.classifier.classify(outcome.requester)
        try:
            self.context.audit_logger.record(
                AuditRecord(
                    operation=result.kind,
                    files_count=result.files_count,
                    original_size=result.original_size,
                    final_size=result.output_size,
                    compression_ratio=result.compression_ratio,
                    user_ip=outcome.requester or "unknown",
                    server_ip=self.context.server_address,
                    branch=branch,
                )
            )
        finally:
            self.context.temp_files.cleanup(outcome.files)
            outcome.state = PipelineState.CLEANED_UP

        duration = time.perf_counter() - outcome.started
        if result.kind is OperationKind.COMPRESS:
            logger.info("Compression completed in %.2fs (%.2f%% reduction) for %s", duration, result.compression_ratio, branch)
        else:
            logger.info("Merge of %d files completed in %.2fs for %s", result.files_count, duration, branch)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.context.audit_logger.shutdown()
