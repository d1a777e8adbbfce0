from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path

from pydantic import BaseModel, Field


def _resolve_home() -> Path:
    override = os.getenv("WARMPATH_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).parent


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


class Settings(BaseModel):
    database_path: Path = Field(
        default_factory=lambda: Path(os.getenv("WARMPATH_DB_PATH", "") or _resolve_home() / "data" / "warmpath.db")
    )

    llm_provider: str = Field(default_factory=lambda: os.getenv("LLM_PROVIDER", "anthropic"))
    llm_model: str = Field(default_factory=lambda: os.getenv("LLM_MODEL", ""))

    classification_chunk_size: int = Field(default_factory=lambda: _env_int("WARMPATH_CHUNK_SIZE", 50), ge=1)
    classification_timeout_seconds: float = Field(
        default_factory=lambda: _env_float("WARMPATH_CHUNK_TIMEOUT", 60.0), gt=0
    )

    default_page_size: int = 20
    max_page_size: int = 200


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
