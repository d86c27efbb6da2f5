from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from errbook.domain.models import QuestionRecord
from errbook.domain.subjects import Subject, SubjectVocabulary


class _QuestionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    question_text: str = Field(alias="questionText")
    answer_text: str = Field(alias="answerText")
    analysis: str
    subject: Subject = Subject.OTHER
    knowledge_points: list[str] = Field(default_factory=list, alias="knowledgePoints")

    @field_validator("question_text", "answer_text", "analysis", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be empty")
        return stripped

    @field_validator("subject", mode="before")
    @classmethod
    def _resolve_subject(cls, value: Any, info: ValidationInfo) -> Subject:
        vocabulary = (info.context or {}).get("vocabulary") or SubjectVocabulary.default()
        return vocabulary.coerce(value)

    @field_validator("knowledge_points", mode="before")
    @classmethod
    def _normalize_points(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        points: list[str] = []
        for index, item in enumerate(value):
            if not isinstance(item, str):
                raise ValueError(f"item {index} must be a string")
            stripped = item.strip()
            if stripped:
                points.append(stripped)
        return points


@dataclass(frozen=True)
class Valid:
    record: QuestionRecord
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Invalid:
    errors: dict[str, str]
    ok: bool = field(default=False, init=False)


ValidationResult = Union[Valid, Invalid]


def _field_errors(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for item in exc.errors():
        loc = item.get("loc") or ("__root__",)
        name = str(loc[0])
        if item.get("type") == "missing":
            reason = "is required"
        else:
            reason = str(item.get("msg", "is invalid")).removeprefix("Value error, ")
        errors.setdefault(name, reason)
    return errors


def validate_question(candidate: Any, vocabulary: SubjectVocabulary | None = None) -> ValidationResult:
    """Validate a parsed model response against the canonical question shape.

    Shape problems come back as ``Invalid``; only a non-mapping candidate
    raises, because there is nothing to report field errors against.
    Unknown subjects are coerced to ``Subject.OTHER`` rather than rejected.
    """
    if not isinstance(candidate, Mapping):
        raise TypeError(f"Question candidate must be a mapping, got {type(candidate).__name__}")

    vocabulary = vocabulary or SubjectVocabulary.default()
    try:
        payload = _QuestionPayload.model_validate(dict(candidate), context={"vocabulary": vocabulary})
    except ValidationError as exc:
        return Invalid(errors=_field_errors(exc))

    return Valid(
        record=QuestionRecord(
            question_text=payload.question_text,
            answer_text=payload.answer_text,
            analysis=payload.analysis,
            subject=payload.subject,
            knowledge_points=tuple(payload.knowledge_points),
        )
    )
