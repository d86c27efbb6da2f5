from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from errbook.domain.subjects import Subject

Language = Literal["zh", "en"]
Difficulty = Literal["easy", "medium", "hard", "harder"]

DIFFICULTY_LEVELS: tuple[str, ...] = ("easy", "medium", "hard", "harder")


@dataclass(frozen=True)
class QuestionRecord:
    question_text: str
    answer_text: str
    analysis: str
    subject: Subject
    knowledge_points: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "questionText": self.question_text,
            "answerText": self.answer_text,
            "analysis": self.analysis,
            "subject": self.subject.value,
            "knowledgePoints": list(self.knowledge_points),
        }


@dataclass
class ErrorItemRecord:
    item_id: str
    question_text: str
    answer_text: str
    analysis: str
    subject: Subject
    knowledge_points: list[str] = field(default_factory=list)
    original_image_url: str | None = None
    mastery_level: int = 0
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_question(self) -> QuestionRecord:
        return QuestionRecord(
            question_text=self.question_text,
            answer_text=self.answer_text,
            analysis=self.analysis,
            subject=self.subject,
            knowledge_points=tuple(self.knowledge_points),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            **self.to_question().to_payload(),
            "originalImageUrl": self.original_image_url,
            "masteryLevel": self.mastery_level,
            "createdAt": self.created_at,
        }
