from __future__ import annotations

import asyncio
import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Literal, Protocol

from errbook.domain.errors import AIErrorKind, AIServiceError
from errbook.domain.models import DIFFICULTY_LEVELS, ErrorItemRecord, QuestionRecord
from errbook.domain.subjects import Subject
from errbook.infra.ports.ai import AIProvider
from errbook.infra.ports.storage import IMAGE_EXTENSIONS, ImageStoragePort

logger = logging.getLogger(__name__)

TimeRange = Literal["all", "week", "month"]
TIME_RANGES: tuple[TimeRange, ...] = ("all", "week", "month")

_MAX_MASTERY_LEVEL = 5
_MAX_PAGE_SIZE = 200


class ErrorItemStorePort(Protocol):
    def create_error_item(self, *, question: QuestionRecord, original_image_url: str | None) -> ErrorItemRecord:
        ...

    def get_error_item(self, item_id: str) -> ErrorItemRecord | None:
        ...

    def list_error_items(
        self,
        *,
        subject: str | None = None,
        knowledge_point: str | None = None,
        query: str | None = None,
        mastered: bool | None = None,
        created_after: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ErrorItemRecord]:
        ...

    def count_knowledge_points(self, *, subject: str | None = None) -> dict[str, int]:
        ...

    def set_mastery_level(self, *, item_id: str, level: int) -> ErrorItemRecord | None:
        ...

    def delete_error_item(self, item_id: str) -> bool:
        ...


def _one_month_before(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def time_range_start(time_range: str, now: datetime | None = None) -> datetime | None:
    """Earliest ``created_at`` kept by a list time filter, or None for ``all``."""
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unsupported time range: {time_range}")
    now = now or datetime.now(timezone.utc)
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return _one_month_before(now)
    return None


class ErrorNotebookService:
    """Caller side of the AI core: uploads in, notebook items out.

    Store and storage calls are blocking; the async entry points push them to
    a worker thread so the event loop only ever waits on the AI backend.
    """

    def __init__(
        self,
        *,
        provider: AIProvider,
        store: ErrorItemStorePort,
        storage: ImageStoragePort,
        analyze_timeout_seconds: float = 130.0,
        default_language: str = "zh",
    ):
        self.provider = provider
        self.store = store
        self.storage = storage
        self.analyze_timeout_seconds = analyze_timeout_seconds
        self.default_language = default_language

    async def _with_timeout(self, coro, *, label: str) -> QuestionRecord:
        try:
            return await asyncio.wait_for(coro, timeout=self.analyze_timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("%s exceeded caller timeout of %.0fs", label, self.analyze_timeout_seconds)
            raise AIServiceError(
                AIErrorKind.CONNECTION_FAILED,
                f"network timeout: {label} took longer than {self.analyze_timeout_seconds:.0f}s",
            ) from exc

    async def analyze_upload(
        self,
        *,
        payload: bytes,
        mime_type: str | None,
        language: str | None = None,
    ) -> QuestionRecord:
        mime = (mime_type or "").lower()
        if mime not in IMAGE_EXTENSIONS:
            raise ValueError("Unsupported file format. Use PNG/JPG/WEBP.")
        if not payload:
            raise ValueError("Uploaded image is empty.")

        return await self._with_timeout(
            self.provider.analyze_image(payload, mime, language or self.default_language),
            label="analyze_image",
        )

    def save_question(
        self,
        *,
        question: QuestionRecord,
        payload: bytes | None = None,
        mime_type: str | None = None,
    ) -> ErrorItemRecord:
        image_url = self.storage.save_image(payload, mime_type or "") if payload else None

        item = self.store.create_error_item(question=question, original_image_url=image_url)
        logger.info("Saved error item %s subject=%s points=%s", item.item_id, item.subject.value, item.knowledge_points)
        return item

    async def analyze_and_save(
        self,
        *,
        payload: bytes,
        mime_type: str | None,
        language: str | None = None,
    ) -> ErrorItemRecord:
        question = await self.analyze_upload(payload=payload, mime_type=mime_type, language=language)
        return await asyncio.to_thread(self.save_question, question=question, payload=payload, mime_type=mime_type)

    async def generate_similar(
        self,
        *,
        item_id: str,
        language: str | None = None,
        difficulty: str = "medium",
    ) -> QuestionRecord:
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"Unsupported difficulty: {difficulty}")

        item = await asyncio.to_thread(self.store.get_error_item, item_id)
        if item is None:
            raise LookupError(f"Error item not found: {item_id}")

        return await self._with_timeout(
            self.provider.generate_similar_question(
                item.question_text,
                list(item.knowledge_points),
                language or self.default_language,
                difficulty,
            ),
            label="generate_similar_question",
        )

    def list_items(
        self,
        *,
        subject: str | None = None,
        knowledge_point: str | None = None,
        query: str | None = None,
        mastered: bool | None = None,
        time_range: str = "all",
        limit: int = 50,
        offset: int = 0,
    ) -> list[ErrorItemRecord]:
        if subject is not None:
            subject = Subject(subject).value
        return self.store.list_error_items(
            subject=subject,
            knowledge_point=knowledge_point,
            query=(query or "").strip() or None,
            mastered=mastered,
            created_after=time_range_start(time_range),
            limit=max(1, min(limit, _MAX_PAGE_SIZE)),
            offset=max(0, offset),
        )

    def tag_stats(self, *, subject: str | None = None) -> list[tuple[str, int]]:
        """Knowledge points by how many items carry them, most frequent first."""
        if subject is not None:
            subject = Subject(subject).value
        return list(self.store.count_knowledge_points(subject=subject).items())

    def set_mastery_level(self, *, item_id: str, level: int) -> ErrorItemRecord:
        if not 0 <= level <= _MAX_MASTERY_LEVEL:
            raise ValueError(f"Mastery level must be between 0 and {_MAX_MASTERY_LEVEL}")
        item = self.store.set_mastery_level(item_id=item_id, level=level)
        if item is None:
            raise LookupError(f"Error item not found: {item_id}")
        return item

    def delete_item(self, item_id: str) -> None:
        item = self.store.get_error_item(item_id)
        if item is None or not self.store.delete_error_item(item_id):
            raise LookupError(f"Error item not found: {item_id}")
        if item.original_image_url:
            self.storage.delete_image(item.original_image_url)
