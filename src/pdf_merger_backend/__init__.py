"""
PDF Merger Backend - REST API for merging and compressing PDF documents

This package provides a FastAPI-based web service for internal branch users.
It enables:

- Merging 2-100 uploaded PDFs into one document, preserving page order
- "Compressing" a single PDF by stripping descriptive metadata and
  re-serializing it
- Guaranteed cleanup of temporary uploads on every request outcome, plus an
  hourly sweep of orphaned files
- An audit trail of completed operations tagged with the requester's branch

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - pipeline: Per-request orchestration (validate, store, transform, finalize)
    - validator: Upload count, size and type rules
    - engines: Merge and compress transformations built on pypdf
    - temp_files: Temporary upload storage, cleanup and sweeping
    - branches: Requester address to branch classification
    - audit: SQLite audit store and fire-and-forget audit logger
    - configuration: Config loading (OmegaConf) and validation
    - errors: Error taxonomy mapped onto HTTP responses

Usage:
    Run the API server with:
        uvicorn pdf_merger_backend.main:app --host 0.0.0.0 --port 5000

    Or use the console script:
        pdf-merger-backend
"""
