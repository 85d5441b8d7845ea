"""
Pytest configuration and fixtures for PDF Merger Backend tests.
"""

import os
import shutil
import tempfile
from io import BytesIO
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter

# Set test environment variables before importing the app
os.environ["PDF_MERGER_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="pdf_merger_test_uploads_")
os.environ["PDF_MERGER_AUDIT_DB"] = os.path.join(tempfile.mkdtemp(prefix="pdf_merger_test_data_"), "audit.db")

from pdf_merger_backend.main import app, pipeline  # noqa: E402


def build_pdf(pages: int = 1, width: int = 300, metadata: Optional[Dict[str, str]] = None, password: Optional[str] = None) -> bytes:
    """
    Build a PDF with blank pages.

    Page ``i`` (0-based) is ``width + i`` points wide so tests can check page
    order after a merge.
    """
    writer = PdfWriter()
    for index in range(pages):
        writer.add_blank_page(width=width + index, height=300)
    if metadata:
        writer.add_metadata(metadata)
    if password:
        writer.encrypt(password)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def padded_metadata(size: int = 2048) -> Dict[str, str]:
    """Descriptive metadata large enough to push a one-page PDF past ``size`` bytes."""
    chunk = "x" * (size // 4)
    return {
        "/Title": f"Quarterly report {chunk}",
        "/Author": f"Branch office {chunk}",
        "/Subject": f"Loans {chunk}",
        "/Keywords": f"loans, audit, {chunk}",
        "/Producer": "Scanner 3000",
        "/Creator": "Office Suite",
    }


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup test directories after the session."""
    upload_dir = os.environ["PDF_MERGER_UPLOAD_DIR"]
    data_dir = os.path.dirname(os.environ["PDF_MERGER_AUDIT_DB"])

    yield {
        "upload": upload_dir,
        "data": data_dir,
    }

    shutil.rmtree(upload_dir, ignore_errors=True)
    shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def app_pipeline():
    return pipeline


@pytest.fixture
def pdf_factory():
    return build_pdf


@pytest.fixture
def large_pdf():
    """A valid single-page PDF of at least 2KB, mostly metadata."""
    data = build_pdf(metadata=padded_metadata())
    assert len(data) >= 2048
    return data


@pytest.fixture
def corrupt_pdf():
    """Bytes with a PDF header but no readable structure."""
    return b"%PDF-1.4\n" + b"this is not really a pdf document\n" * 64
