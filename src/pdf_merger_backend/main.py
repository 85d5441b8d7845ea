from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.background import BackgroundTask
from starlette.types import Receive, Scope, Send

from .configuration import load_settings
from .errors import LoggingError, PipelineError
from .models import AuditRecord, HealthStatus, OperationKind
from .pipeline import DocumentPipeline, PipelineContext

logger = logging.getLogger(__name__)

settings = load_settings()
pipeline = DocumentPipeline(PipelineContext.from_settings(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Server IP: %s", pipeline.context.server_address)
    sweeper = asyncio.create_task(pipeline.context.temp_files.run_sweeper())
    yield
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    pipeline.close()
    logger.info("Server closed")


app = FastAPI(title="PDF Merger API", version="0.1.0", lifespan=lifespan)

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> DocumentPipeline:
    return pipeline


class AttachmentResponse(Response):
    """
    PDF download whose background task runs even if sending the body fails,
    so post-response cleanup is never skipped.
    """

    media_type = "application/pdf"

    def __init__(self, content: bytes, filename: str, **kwargs: Any) -> None:
        headers = {"Content-Disposition": f"attachment; filename={filename}", **kwargs.pop("headers", {})}
        super().__init__(content=content, headers=headers, **kwargs)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        background, self.background = self.background, None
        try:
            await super().__call__(scope, receive, send)
        finally:
            if background is not None:
                await background()


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.user_message()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _client_address(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@app.post("/merge")
async def merge_pdfs(
    request: Request,
    pdfs: Optional[List[UploadFile]] = File(None),
    manager: DocumentPipeline = Depends(get_pipeline),
) -> Response:
    outcome = await manager.run(OperationKind.MERGE, pdfs or [], _client_address(request))
    return AttachmentResponse(
        outcome.result.content,
        filename="merged.pdf",
        background=BackgroundTask(manager.finalize, outcome),
    )


@app.post("/compress")
async def compress_pdf(
    request: Request,
    pdf: Optional[List[UploadFile]] = File(None),
    manager: DocumentPipeline = Depends(get_pipeline),
) -> Response:
    outcome = await manager.run(OperationKind.COMPRESS, pdf or [], _client_address(request))
    return AttachmentResponse(
        outcome.result.content,
        filename="compressed.pdf",
        headers={"X-Compression-Ratio": f"{outcome.result.compression_ratio:.2f}"},
        background=BackgroundTask(manager.finalize, outcome),
    )


@app.get("/logs", response_model=List[AuditRecord])
def list_logs(manager: DocumentPipeline = Depends(get_pipeline)):
    try:
        return manager.context.audit_logger.store.recent(manager.context.settings.logs_page_size)
    except LoggingError as exc:
        logger.error("Error fetching logs: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch logs"})


@app.get("/health", response_model=HealthStatus)
def healthcheck(manager: DocumentPipeline = Depends(get_pipeline)) -> HealthStatus:
    context = manager.context
    return HealthStatus(
        status="OK",
        timestamp=datetime.utcnow(),
        store="connected" if context.audit_logger.store.ping() else "disconnected",
        server_ip=context.server_address,
        uptime=context.uptime,
    )


def run() -> None:
    """Console entry point: serve on all interfaces for LAN access."""
    uvicorn.run("pdf_merger_backend.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
