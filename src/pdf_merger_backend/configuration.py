from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field, model_validator

from .models import Branch

# Load environment variables from .env file before any ${oc.env:...} is resolved
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in broken installs
    raise FileNotFoundError("Default config.yaml could not be located; ensure the package data was installed.")


class Limits(BaseModel):
    merge_min_files: int = 2
    merge_max_files: int = 100
    max_file_size: int = 200 * 1024 * 1024
    compress_min_size: int = 1024
    allowed_content_types: List[str] = Field(default_factory=lambda: ["application/pdf"])


class ServiceSettings(BaseModel):
    upload_dir: Path = Path("uploads")
    audit_db_path: Path = Path("data/audit.db")
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000
    max_workers: int = 2
    limits: Limits = Field(default_factory=Limits)
    request_timeout_seconds: float = 300
    sweep_interval_seconds: float = 3600
    sweep_max_age_seconds: float = 3600
    logs_page_size: int = 100
    branches: List[Branch] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "ServiceSettings":
        if self.sweep_max_age_seconds <= self.request_timeout_seconds:
            raise ValueError("sweep_max_age_seconds must exceed request_timeout_seconds so in-flight uploads are never swept")
        fallbacks = [index for index, branch in enumerate(self.branches) if branch.subnet is None]
        if self.branches and fallbacks != [len(self.branches) - 1]:
            raise ValueError("branch table needs exactly one fallback entry (no subnet) and it must be last")
        return self


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    cli_config = OmegaConf.create(overrides or {})
    merged = DictConfig(OmegaConf.merge(base, cli_config))
    return merged


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> ServiceSettings:
    """
    Build validated settings from config.yaml, the environment and overrides.

    Args:
        overrides: Nested values merged over the defaults (unknown keys are
            rejected because the base config is in struct mode)

    Returns:
        Resolved ServiceSettings
    """
    runtime_config = make_runtime_config(overrides)
    resolved = OmegaConf.to_container(runtime_config, resolve=True, enum_to_str=True)
    return ServiceSettings.model_validate(resolved)
