from __future__ import annotations

from functools import lru_cache

from errbook.ai.prompts import PromptOptions
from errbook.ai.retry import RetryPolicy
from errbook.application.services import ErrorNotebookService
from errbook.core.config import Settings, get_settings
from errbook.domain.subjects import SubjectVocabulary
from errbook.infra.ai.gemini import GeminiProvider
from errbook.infra.ai.mock import MockAIProvider
from errbook.infra.ai.openai import OpenAIProvider
from errbook.infra.db.session import get_engine, get_session_factory, init_db
from errbook.infra.db.store import ErrorItemStore
from errbook.infra.ports.ai import AIProvider
from errbook.infra.ports.storage import ImageStoragePort
from errbook.infra.storage.local import LocalFileStorage


def _load_vocabulary(settings: Settings) -> SubjectVocabulary:
    if settings.subjects_file is None:
        return SubjectVocabulary.default()
    if not settings.subjects_file.is_file():
        raise RuntimeError(f"ERRBOOK_SUBJECTS_FILE does not exist: {settings.subjects_file}")
    return SubjectVocabulary.from_file(settings.subjects_file)


def _load_prompt_options(settings: Settings) -> PromptOptions:
    if settings.similar_prompt_file is None:
        return PromptOptions()
    if not settings.similar_prompt_file.is_file():
        raise RuntimeError(f"ERRBOOK_SIMILAR_PROMPT_FILE does not exist: {settings.similar_prompt_file}")
    return PromptOptions(custom_template=settings.similar_prompt_file.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def get_vocabulary() -> SubjectVocabulary:
    return _load_vocabulary(get_settings())


@lru_cache(maxsize=1)
def get_store() -> ErrorItemStore:
    init_db()
    return ErrorItemStore()


@lru_cache(maxsize=1)
def get_storage() -> ImageStoragePort:
    return LocalFileStorage(base_dir=get_settings().upload_dir)


@lru_cache(maxsize=1)
def get_ai_provider() -> AIProvider:
    settings = get_settings()
    common = {
        "vocabulary": get_vocabulary(),
        "retry_policy": RetryPolicy(
            max_attempts=settings.ai_max_attempts,
            base_delay_seconds=settings.ai_retry_delay_seconds,
        ),
        "prompt_options": _load_prompt_options(settings),
    }

    if settings.ai_provider == "gemini":
        if not settings.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY is required when ERRBOOK_AI_PROVIDER=gemini")
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout_seconds=settings.ai_timeout_seconds,
            **common,
        )
    if settings.ai_provider == "openai":
        if not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is required when ERRBOOK_AI_PROVIDER=openai")
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model_name=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.ai_timeout_seconds,
            **common,
        )
    if settings.ai_provider == "mock":
        return MockAIProvider(**common)

    raise RuntimeError(f"Unsupported ERRBOOK_AI_PROVIDER: {settings.ai_provider!r}")


def get_notebook_service() -> ErrorNotebookService:
    settings = get_settings()
    return ErrorNotebookService(
        provider=get_ai_provider(),
        store=get_store(),
        storage=get_storage(),
        analyze_timeout_seconds=settings.analyze_timeout_seconds,
        default_language=settings.default_language,
    )


def clear_caches() -> None:
    get_settings.cache_clear()
    get_vocabulary.cache_clear()
    get_store.cache_clear()
    get_storage.cache_clear()
    get_ai_provider.cache_clear()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
