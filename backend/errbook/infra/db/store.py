from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from errbook.domain.models import ErrorItemRecord, QuestionRecord
from errbook.domain.subjects import Subject
from errbook.infra.db.models import ErrorItemRow, KnowledgePointRow
from errbook.infra.db.session import get_session_factory
from errbook.utils.ids import new_public_id


class ErrorItemStore:
    """Persistence for notebook items backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory or get_session_factory()

    @staticmethod
    def _to_record(row: ErrorItemRow) -> ErrorItemRecord:
        created_at = row.created_at.isoformat() if row.created_at else datetime.now(timezone.utc).isoformat()
        try:
            subject = Subject(row.subject)
        except ValueError:
            subject = Subject.OTHER
        return ErrorItemRecord(
            item_id=row.public_id,
            question_text=row.question_text,
            answer_text=row.answer_text,
            analysis=row.analysis,
            subject=subject,
            knowledge_points=[point.name for point in row.knowledge_points],
            original_image_url=row.original_image_url,
            mastery_level=row.mastery_level,
            created_at=created_at,
        )

    def _get_row(self, db: Session, item_id: str) -> ErrorItemRow | None:
        stmt = (
            select(ErrorItemRow)
            .options(selectinload(ErrorItemRow.knowledge_points))
            .where(ErrorItemRow.public_id == item_id)
        )
        return db.execute(stmt).scalar_one_or_none()

    def create_error_item(self, *, question: QuestionRecord, original_image_url: str | None) -> ErrorItemRecord:
        with self._session_factory() as db:
            row = ErrorItemRow(
                public_id=new_public_id("item_"),
                question_text=question.question_text,
                answer_text=question.answer_text,
                analysis=question.analysis,
                subject=question.subject.value,
                original_image_url=original_image_url,
                mastery_level=0,
            )
            row.knowledge_points = [
                KnowledgePointRow(position=index, name=name)
                for index, name in enumerate(question.knowledge_points)
            ]
            db.add(row)
            db.commit()
            return self._to_record(row)

    def get_error_item(self, item_id: str) -> ErrorItemRecord | None:
        with self._session_factory() as db:
            row = self._get_row(db, item_id)
            if row is None:
                return None
            return self._to_record(row)

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
        with self._session_factory() as db:
            stmt = select(ErrorItemRow).options(selectinload(ErrorItemRow.knowledge_points))
            if subject:
                stmt = stmt.where(ErrorItemRow.subject == subject)
            if knowledge_point:
                stmt = stmt.where(
                    ErrorItemRow.knowledge_points.any(KnowledgePointRow.name == knowledge_point)
                )
            if query:
                stmt = stmt.where(
                    or_(
                        ErrorItemRow.question_text.contains(query, autoescape=True),
                        ErrorItemRow.analysis.contains(query, autoescape=True),
                        ErrorItemRow.knowledge_points.any(KnowledgePointRow.name.contains(query, autoescape=True)),
                    )
                )
            if mastered is not None:
                stmt = stmt.where(ErrorItemRow.mastery_level > 0 if mastered else ErrorItemRow.mastery_level == 0)
            if created_after is not None:
                stmt = stmt.where(ErrorItemRow.created_at >= created_after)
            stmt = stmt.order_by(desc(ErrorItemRow.created_at), desc(ErrorItemRow.id)).offset(offset).limit(limit)
            rows = db.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def count_knowledge_points(self, *, subject: str | None = None) -> dict[str, int]:
        with self._session_factory() as db:
            stmt = (
                select(KnowledgePointRow.name, func.count(KnowledgePointRow.id))
                .join(ErrorItemRow, ErrorItemRow.id == KnowledgePointRow.item_id)
                .group_by(KnowledgePointRow.name)
                .order_by(desc(func.count(KnowledgePointRow.id)), KnowledgePointRow.name)
            )
            if subject:
                stmt = stmt.where(ErrorItemRow.subject == subject)
            return {name: int(count) for name, count in db.execute(stmt).all()}

    def set_mastery_level(self, *, item_id: str, level: int) -> ErrorItemRecord | None:
        with self._session_factory() as db:
            row = self._get_row(db, item_id)
            if row is None:
                return None
            row.mastery_level = level
            db.commit()
            return self._to_record(row)

    def delete_error_item(self, item_id: str) -> bool:
        with self._session_factory() as db:
            row = self._get_row(db, item_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True
