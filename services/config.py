from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from services.splitter import DEFAULT_SPLIT_RULE, SPLIT_RULES

OLLAMA_URL = "http://localhost:11434/api/generate"
OLLAMA_MODEL = "gemma3:1b"
ORACLE_URL = "http://localhost:8000/v1/analyze-sentiment"
DEFAULT_CORS_ORIGINS = ("http://localhost:5174", "http://localhost:5173")

ORACLE_BACKENDS = {"local", "http"}
LLM_BACKENDS = {"ollama", "heuristic"}


def _clamp_float(value: Any, default: float, minimum: float, maximum: float) -> float:
    try:
        if isinstance(value, bool):
            raise ValueError
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, min(maximum, parsed))


def _clamp_int(value: Any, default: int, minimum: int, maximum: int) -> int:
    try:
        if isinstance(value, bool):
            raise ValueError
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, min(maximum, parsed))


def _choice(value: str | None, default: str, allowed: set[str]) -> str:
    lowered = str(value or "").strip().lower()
    return lowered if lowered in allowed else default


def _split_csv(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    items = tuple(part.strip() for part in value.split(",") if part.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    oracle_backend: str = "local"
    oracle_url: str = ORACLE_URL
    oracle_timeout_sec: float = 30.0
    call_timeout_sec: float = 30.0
    llm_backend: str = "ollama"
    ollama_url: str = OLLAMA_URL
    ollama_model: str = OLLAMA_MODEL
    ollama_timeout_sec: float = 20.0
    split_rule: str = DEFAULT_SPLIT_RULE
    max_sessions: int = 100
    data_dir: Path = Path("uploads")
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)

    @property
    def llm_cache_path(self) -> Path:
        return self.data_dir / "llm_cache.json"


def load_settings(env: dict[str, str] | None = None) -> Settings:
    source = os.environ if env is None else env
    return Settings(
        oracle_backend=_choice(source.get("ORACLE_BACKEND"), "local", ORACLE_BACKENDS),
        oracle_url=source.get("ORACLE_URL", ORACLE_URL),
        oracle_timeout_sec=_clamp_float(source.get("ORACLE_TIMEOUT_SEC"), 30.0, 1.0, 600.0),
        call_timeout_sec=_clamp_float(source.get("CALL_TIMEOUT_SEC"), 30.0, 0.1, 600.0),
        llm_backend=_choice(source.get("LLM_BACKEND"), "ollama", LLM_BACKENDS),
        ollama_url=source.get("OLLAMA_URL", OLLAMA_URL),
        ollama_model=source.get("OLLAMA_MODEL", OLLAMA_MODEL),
        ollama_timeout_sec=_clamp_float(source.get("OLLAMA_TIMEOUT_SEC"), 20.0, 1.0, 600.0),
        split_rule=_choice(source.get("SPLIT_RULE"), DEFAULT_SPLIT_RULE, set(SPLIT_RULES)),
        max_sessions=_clamp_int(source.get("MAX_SESSIONS"), 100, 1, 10000),
        data_dir=Path(source.get("DATA_DIR", "uploads")),
        log_level=str(source.get("LOG_LEVEL", "INFO")).strip().upper() or "INFO",
        cors_origins=_split_csv(source.get("CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
