from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationKind(str, Enum):
    MERGE = "merge"
    COMPRESS = "compress"


class UploadMeta(BaseModel):
    """What the validator sees of an inbound file before it touches disk."""

    name: str
    size: int
    content_type: str = ""


class UploadedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    handle: Path
    original_name: str
    size: int
    content_type: str = ""


class Branch(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    subnet: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.code} {self.name}"


class OperationResult(BaseModel):
    kind: OperationKind
    content: bytes
    files_count: int
    original_size: int
    output_size: int
    compression_ratio: float = 0.0


class AuditRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: OperationKind
    files_count: int
    original_size: int
    final_size: int
    compression_ratio: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    user_ip: str = "unknown"
    server_ip: str = "localhost"
    branch: str


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    store: str
    server_ip: str
    uptime: float
