from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _load_dotenv() -> None:
    if os.getenv("ERRBOOK_SKIP_DOTENV") == "1":
        return

    env_path = Path(__file__).resolve().parents[2] / ".env"
    if not env_path.exists():
        return

    from dotenv import load_dotenv

    load_dotenv(env_path, override=True)


def _parse_non_negative_int(value: str | None, default: int = 0) -> int:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        return default


def _parse_non_negative_float(value: str | None, default: float = 0.0) -> float:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


def _parse_language(value: str | None, default: str = "zh") -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"zh", "en"}:
        return normalized
    return default


def _optional_path(value: str | None) -> Path | None:
    raw = (value or "").strip()
    if not raw:
        return None
    return Path(raw)


@dataclass(frozen=True)
class Settings:
    env: str
    app_name: str
    database_url: str | None
    upload_dir: Path
    ai_provider: str
    gemini_api_key: str | None
    gemini_model: str
    gemini_base_url: str
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str
    ai_timeout_seconds: int
    ai_max_attempts: int
    ai_retry_delay_seconds: float
    analyze_timeout_seconds: int
    default_language: str
    subjects_file: Path | None
    similar_prompt_file: Path | None
    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_dotenv()

    ai_timeout_seconds = _parse_non_negative_int(os.getenv("ERRBOOK_AI_TIMEOUT_SECONDS"), default=60) or 60
    # The caller-side budget must outlive a single call so at least one retry can finish.
    analyze_timeout_seconds = _parse_non_negative_int(
        os.getenv("ERRBOOK_ANALYZE_TIMEOUT_SECONDS"),
        default=ai_timeout_seconds * 2 + 10,
    ) or (ai_timeout_seconds * 2 + 10)

    return Settings(
        env=os.getenv("ERRBOOK_ENV", "development"),
        app_name="errbook",
        database_url=os.getenv("DATABASE_URL") or None,
        upload_dir=Path(os.getenv("ERRBOOK_UPLOAD_DIR", "backend/uploads")),
        ai_provider=(os.getenv("ERRBOOK_AI_PROVIDER", "gemini").strip().lower() or "gemini"),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_base_url=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        ai_timeout_seconds=ai_timeout_seconds,
        ai_max_attempts=_parse_non_negative_int(os.getenv("ERRBOOK_AI_MAX_ATTEMPTS"), default=3) or 1,
        ai_retry_delay_seconds=_parse_non_negative_float(os.getenv("ERRBOOK_AI_RETRY_DELAY_SECONDS"), default=1.0),
        analyze_timeout_seconds=analyze_timeout_seconds,
        default_language=_parse_language(os.getenv("ERRBOOK_DEFAULT_LANGUAGE")),
        subjects_file=_optional_path(os.getenv("ERRBOOK_SUBJECTS_FILE")),
        similar_prompt_file=_optional_path(os.getenv("ERRBOOK_SIMILAR_PROMPT_FILE")),
        log_level=(os.getenv("ERRBOOK_LOG_LEVEL", "INFO").strip().upper() or "INFO"),
    )
