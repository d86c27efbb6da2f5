from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from errbook.application.services import ErrorNotebookService, time_range_start
from errbook.domain.errors import AIErrorKind, AIServiceError
from errbook.domain.models import QuestionRecord
from errbook.domain.subjects import Subject
from errbook.infra.ai.mock import MockAIProvider
from errbook.infra.db.models import ErrorItemRow
from errbook.infra.db.session import build_engine, init_db, resolve_database_url
from errbook.infra.db.store import ErrorItemStore
from errbook.infra.storage.local import LocalFileStorage


@pytest.fixture()
def store(tmp_path: Path) -> ErrorItemStore:
    engine = build_engine(f"sqlite:///{tmp_path / 'notebook.db'}")
    init_db(engine)
    return ErrorItemStore(sessionmaker(bind=engine, expire_on_commit=False))


@pytest.fixture()
def service(store: ErrorItemStore, tmp_path: Path) -> ErrorNotebookService:
    return ErrorNotebookService(
        provider=MockAIProvider(),
        store=store,
        storage=LocalFileStorage(tmp_path / "uploads"),
        analyze_timeout_seconds=5,
    )


def _question(text: str, subject: Subject, points: tuple[str, ...]) -> QuestionRecord:
    return QuestionRecord(
        question_text=text,
        answer_text="A",
        analysis="An",
        subject=subject,
        knowledge_points=points,
    )


def test_analyze_and_save_persists_item_and_image(service: ErrorNotebookService, tmp_path: Path):
    item = asyncio.run(service.analyze_and_save(payload=b"\x89PNG", mime_type="image/png"))

    assert item.item_id.startswith("item_")
    assert item.subject is Subject.MATH
    assert item.knowledge_points == ["一元二次方程", "因式分解"]
    assert item.original_image_url.startswith("/uploads/questions/img_")
    assert item.original_image_url.endswith(".png")

    saved = list((tmp_path / "uploads" / "questions").iterdir())
    assert len(saved) == 1
    assert saved[0].read_bytes() == b"\x89PNG"

    fetched = service.store.get_error_item(item.item_id)
    assert fetched is not None
    assert fetched.to_question() == item.to_question()


def test_unsupported_mime_is_rejected(service: ErrorNotebookService):
    with pytest.raises(ValueError):
        asyncio.run(service.analyze_upload(payload=b"%PDF", mime_type="application/pdf"))


def test_caller_timeout_becomes_connection_failure(store: ErrorItemStore, tmp_path: Path):
    class SlowProvider(MockAIProvider):
        async def _request_image(self, *, prompt, image_base64, mime_type):
            await asyncio.sleep(1)
            return ""

    service = ErrorNotebookService(
        provider=SlowProvider(),
        store=store,
        storage=LocalFileStorage(tmp_path / "uploads"),
        analyze_timeout_seconds=0.01,
    )
    with pytest.raises(AIServiceError) as excinfo:
        asyncio.run(service.analyze_upload(payload=b"img", mime_type="image/jpeg"))
    assert excinfo.value.kind is AIErrorKind.CONNECTION_FAILED


def test_list_filters_by_subject_and_knowledge_point(service: ErrorNotebookService):
    service.save_question(question=_question("q1", Subject.MATH, ("勾股定理", "方差")))
    service.save_question(question=_question("q2", Subject.MATH, ("方差",)))
    service.save_question(question=_question("q3", Subject.ENGLISH, ("语法",)))

    math_items = service.list_items(subject="math")
    assert {item.question_text for item in math_items} == {"q1", "q2"}

    variance = service.list_items(knowledge_point="方差")
    assert {item.question_text for item in variance} == {"q1", "q2"}

    assert [item.question_text for item in service.list_items(subject="english", knowledge_point="语法")] == ["q3"]
    assert len(service.list_items(limit=2)) == 2
    assert service.tag_stats(subject="math") == [("方差", 2), ("勾股定理", 1)]
    assert service.tag_stats()[-1] == ("语法", 1)

    with pytest.raises(ValueError):
        service.list_items(subject="astrology")


def test_knowledge_point_order_is_preserved(service: ErrorNotebookService):
    item = service.save_question(question=_question("q", Subject.PHYSICS, ("浮力", "力学", "浮力")))
    assert service.store.get_error_item(item.item_id).knowledge_points == ["浮力", "力学", "浮力"]


def test_generate_similar_uses_saved_item(service: ErrorNotebookService):
    item = service.save_question(question=_question("原题内容", Subject.MATH, ("勾股定理",)))

    similar = asyncio.run(service.generate_similar(item_id=item.item_id, difficulty="harder"))

    assert "原题内容" in similar.question_text

    with pytest.raises(LookupError):
        asyncio.run(service.generate_similar(item_id="item_missing"))
    with pytest.raises(ValueError):
        asyncio.run(service.generate_similar(item_id=item.item_id, difficulty="extreme"))


def test_mastery_and_delete(service: ErrorNotebookService):
    item = service.save_question(question=_question("q", Subject.OTHER, ()))

    updated = service.set_mastery_level(item_id=item.item_id, level=3)
    assert updated.mastery_level == 3

    with pytest.raises(ValueError):
        service.set_mastery_level(item_id=item.item_id, level=9)

    service.delete_item(item.item_id)
    assert service.store.get_error_item(item.item_id) is None
    with pytest.raises(LookupError):
        service.delete_item(item.item_id)


def test_delete_removes_stored_photo(service: ErrorNotebookService, tmp_path: Path):
    item = asyncio.run(service.analyze_and_save(payload=b"\x89PNG", mime_type="image/png"))
    photos = tmp_path / "uploads" / "questions"
    assert len(list(photos.iterdir())) == 1

    service.delete_item(item.item_id)

    assert list(photos.iterdir()) == []


def test_list_text_query_searches_question_analysis_and_points(service: ErrorNotebookService):
    service.save_question(question=_question("求三角形面积", Subject.MATH, ("勾股定理",)))
    service.save_question(
        question=QuestionRecord(
            question_text="q2",
            answer_text="A",
            analysis="利用三角形内角和",
            subject=Subject.MATH,
            knowledge_points=("角",),
        )
    )
    service.save_question(question=_question("q3", Subject.MATH, ("直角三角形",)))
    service.save_question(question=_question("100% sure", Subject.OTHER, ()))

    assert {item.question_text for item in service.list_items(query="三角形")} == {"求三角形面积", "q2", "q3"}
    assert [item.question_text for item in service.list_items(query="  100%  ")] == ["100% sure"]
    assert service.list_items(query="0_") == []


def test_list_mastery_filter(service: ErrorNotebookService):
    fresh = service.save_question(question=_question("fresh", Subject.MATH, ()))
    learned = service.save_question(question=_question("learned", Subject.MATH, ()))
    service.set_mastery_level(item_id=learned.item_id, level=1)

    assert [item.item_id for item in service.list_items(mastered=True)] == [learned.item_id]
    assert [item.item_id for item in service.list_items(mastered=False)] == [fresh.item_id]
    assert len(service.list_items()) == 2


def test_list_time_range_filter(service: ErrorNotebookService, store: ErrorItemStore):
    recent = service.save_question(question=_question("recent", Subject.MATH, ()))
    ten_days = service.save_question(question=_question("ten days", Subject.MATH, ()))
    old = service.save_question(question=_question("old", Subject.MATH, ()))

    now = datetime.now(timezone.utc)
    with store._session_factory() as db:
        for item, age in ((recent, timedelta(hours=1)), (ten_days, timedelta(days=10)), (old, timedelta(days=45))):
            db.execute(
                update(ErrorItemRow).where(ErrorItemRow.public_id == item.item_id).values(created_at=now - age)
            )
        db.commit()

    assert [item.question_text for item in service.list_items(time_range="week")] == ["recent"]
    assert [item.question_text for item in service.list_items(time_range="month")] == ["recent", "ten days"]
    assert len(service.list_items(time_range="all")) == 3

    with pytest.raises(ValueError):
        service.list_items(time_range="year")


def test_time_range_start_month_clamps_day():
    march_31 = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)
    assert time_range_start("month", now=march_31) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert time_range_start("month", now=datetime(2025, 1, 15, tzinfo=timezone.utc)) == datetime(
        2024, 12, 15, tzinfo=timezone.utc
    )
    assert time_range_start("week", now=march_31) == datetime(2025, 3, 24, 12, 0, tzinfo=timezone.utc)
    assert time_range_start("all") is None


def test_local_storage_rejects_unknown_type_and_foreign_urls(tmp_path: Path):
    storage = LocalFileStorage(tmp_path / "uploads")

    with pytest.raises(ValueError):
        storage.save_image(b"%PDF", "application/pdf")

    url = storage.save_image(b"RIFF", "image/webp")
    assert url.startswith("/uploads/questions/img_") and url.endswith(".webp")
    assert storage.delete_image("https://cdn.example.com/x.png") is False
    with pytest.raises(ValueError):
        storage.delete_image("/uploads/../secrets.txt")
    assert storage.delete_image(url) is True
    assert storage.delete_image(url) is False


def test_database_url_resolution(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert resolve_database_url(None).endswith("errbook.db")
    assert resolve_database_url("sqlite:///data/notebook.db") == f"sqlite:///{tmp_path.resolve() / 'data' / 'notebook.db'}"
    assert resolve_database_url("sqlite:///:memory:") == "sqlite:///:memory:"

    engine = build_engine("sqlite:///nested/dir/notebook.db")
    init_db(engine)
    assert (tmp_path / "nested" / "dir" / "notebook.db").exists()
    engine.dispose()
