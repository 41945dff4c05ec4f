from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class StatementSettings:
    page_size: int = 200
    max_page_size: int = 1000
    fetch_workers: int = 4
    fetch_timeout_seconds: float = 15.0
    fetch_retries: int = 1
    retry_backoff_seconds: float = 0.25
    retry_backoff_cap_seconds: float = 2.0
    name_cache_enabled: bool = True
    session_idle_seconds: float = 1800.0
    max_sessions: int = 256

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.max_page_size < self.page_size:
            raise ValueError("max_page_size must be >= page_size")
        if self.fetch_workers < 1:
            raise ValueError("fetch_workers must be >= 1")
        if self.fetch_timeout_seconds <= 0:
            raise ValueError("fetch_timeout_seconds must be positive")
        if self.fetch_retries < 0:
            raise ValueError("fetch_retries must be >= 0")
        if self.retry_backoff_seconds < 0 or self.retry_backoff_cap_seconds < 0:
            raise ValueError("retry backoff must be >= 0")
        if self.session_idle_seconds <= 0:
            raise ValueError("session_idle_seconds must be positive")
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")

    def clamp_page_size(self, requested: int | None) -> int:
        if requested is None:
            return self.page_size
        if requested < 1:
            raise ValueError("page_size must be >= 1")
        return min(requested, self.max_page_size)

    @classmethod
    def from_env(cls) -> "StatementSettings":
        return cls(
            page_size=_env_int("STATEMENT_PAGE_SIZE", 200),
            max_page_size=_env_int("STATEMENT_MAX_PAGE_SIZE", 1000),
            fetch_workers=_env_int("STATEMENT_FETCH_WORKERS", 4),
            fetch_timeout_seconds=_env_float("STATEMENT_FETCH_TIMEOUT_SECONDS", 15.0),
            fetch_retries=_env_int("STATEMENT_FETCH_RETRIES", 1),
            retry_backoff_seconds=_env_float("STATEMENT_RETRY_BACKOFF_SECONDS", 0.25),
            retry_backoff_cap_seconds=_env_float("STATEMENT_RETRY_BACKOFF_CAP_SECONDS", 2.0),
            name_cache_enabled=os.getenv("STATEMENT_NAME_CACHE", "1") == "1",
            session_idle_seconds=_env_float("STATEMENT_SESSION_IDLE_SECONDS", 1800.0),
            max_sessions=_env_int("STATEMENT_MAX_SESSIONS", 256),
        )
