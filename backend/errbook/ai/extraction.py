"""Turn free-form model output into validated question records.

Two response shapes are supported: JSON (possibly fenced, wrapped in prose,
or malformed) and paired XML-like tags such as ``<analysis>...</analysis>``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from json_repair import repair_json

from errbook.ai.validation import Invalid, Valid, validate_question
from errbook.domain.models import QuestionRecord
from errbook.domain.subjects import SubjectVocabulary

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_KNOWLEDGE_POINT_SEPARATORS = re.compile(r"[,，\n]")
_CRITICAL_TAGS = ("question_text", "answer_text", "analysis")


class ResponseParseError(ValueError):
    """Model output could not be turned into a question record."""


def extract_json_candidate(raw_text: str) -> str:
    fenced = _CODE_FENCE.search(raw_text)
    if fenced:
        return fenced.group(1).strip()

    first_open = raw_text.find("{")
    if first_open == -1:
        return raw_text

    depth = 0
    in_string = False
    escape_next = False
    for index in range(first_open, len(raw_text)):
        char = raw_text[index]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return raw_text[first_open : index + 1]

    last_close = raw_text.rfind("}")
    if last_close > first_open:
        return raw_text[first_open : last_close + 1]
    return raw_text


def repair_and_parse(candidate: str) -> dict[str, Any]:
    try:
        parsed = json.loads(repair_json(candidate))
    except (TypeError, ValueError, RecursionError) as exc:
        raise ResponseParseError(f"Unable to parse repaired JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ResponseParseError("Unable to parse repaired JSON into an object")
    return parsed


def parse_json_response(raw_text: str, vocabulary: SubjectVocabulary | None = None) -> QuestionRecord:
    """Run the JSON fallback chain: direct parse, extracted parse, repaired parse."""
    stages: list[tuple[str, Callable[[], Any]]] = [
        ("direct", lambda: json.loads(raw_text)),
        ("extracted", lambda: json.loads(extract_json_candidate(raw_text))),
        ("repaired", lambda: repair_and_parse(extract_json_candidate(raw_text))),
    ]

    for stage, load in stages:
        try:
            parsed = load()
        except (ValueError, RecursionError) as exc:
            logger.warning("JSON %s parse failed: %s", stage, exc)
            continue

        if not isinstance(parsed, dict):
            logger.warning("JSON %s parse produced %s, expected an object", stage, type(parsed).__name__)
            continue

        result = validate_question(parsed, vocabulary)
        if isinstance(result, Valid):
            if stage != "direct":
                logger.info("Recovered question record at %s stage", stage)
            return result.record
        logger.warning("JSON %s parse failed validation: %s", stage, result.errors)

    logger.error("All JSON parsing attempts failed; response head: %r", raw_text[:500])
    raise ResponseParseError("Invalid JSON response from AI: Unable to parse or validate")


def extract_tag(text: str, tag_name: str) -> str | None:
    start_tag = f"<{tag_name}>"
    end_tag = f"</{tag_name}>"
    start = text.find(start_tag)
    end = text.rfind(end_tag)
    if start == -1 or end == -1 or start >= end:
        return None
    return text[start + len(start_tag) : end].strip()


def split_knowledge_points(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in _KNOWLEDGE_POINT_SEPARATORS.split(raw) if part.strip()]


def parse_tagged_response(raw_text: str, vocabulary: SubjectVocabulary | None = None) -> QuestionRecord:
    vocabulary = vocabulary or SubjectVocabulary.default()

    fields = {tag: extract_tag(raw_text, tag) for tag in _CRITICAL_TAGS}
    missing = [tag for tag, value in fields.items() if not value]
    if missing:
        logger.error("Missing critical tags %s; response head: %r", missing, raw_text[:500])
        raise ResponseParseError(
            "Failed to parse AI response: missing critical XML tags "
            "(<question_text>, <answer_text>, or <analysis>)"
        )

    candidate = {
        "questionText": fields["question_text"],
        "answerText": fields["answer_text"],
        "analysis": fields["analysis"],
        "subject": vocabulary.coerce(extract_tag(raw_text, "subject")).value,
        "knowledgePoints": split_knowledge_points(extract_tag(raw_text, "knowledge_points")),
    }

    result = validate_question(candidate, vocabulary)
    if isinstance(result, Invalid):
        raise ResponseParseError(f"Failed to parse AI response: {result.errors}")
    return result.record
