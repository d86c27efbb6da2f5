import json

import pytest

from errbook.ai.validation import Invalid, Valid, validate_question
from errbook.domain.subjects import Subject, SubjectVocabulary


def _candidate(**overrides):
    data = {
        "questionText": "  Q  ",
        "answerText": "A",
        "analysis": "An",
        "subject": "英语",
        "knowledgePoints": [" 语法 ", "", "词汇"],
    }
    data.update(overrides)
    return data


def test_valid_candidate_is_trimmed_and_normalized():
    result = validate_question(_candidate())
    assert isinstance(result, Valid)
    assert result.ok is True
    record = result.record
    assert record.question_text == "Q"
    assert record.subject is Subject.ENGLISH
    assert record.knowledge_points == ("语法", "词汇")


@pytest.mark.parametrize("field", ["questionText", "answerText", "analysis"])
def test_null_required_field_is_a_field_error(field):
    result = validate_question(_candidate(**{field: None}))
    assert isinstance(result, Invalid)
    assert result.ok is False
    assert field in result.errors


def test_missing_and_non_string_fields_are_reported_together():
    data = _candidate(answerText=42)
    del data["questionText"]
    result = validate_question(data)
    assert isinstance(result, Invalid)
    assert set(result.errors) == {"questionText", "answerText"}
    assert result.errors["questionText"] == "is required"


def test_non_list_knowledge_points_are_treated_as_absent():
    result = validate_question(_candidate(knowledgePoints="语法, 词汇"))
    assert isinstance(result, Valid)
    assert result.record.knowledge_points == ()


def test_non_string_knowledge_point_is_invalid():
    result = validate_question(_candidate(knowledgePoints=["语法", 3]))
    assert isinstance(result, Invalid)
    assert "knowledgePoints" in result.errors


@pytest.mark.parametrize("subject", ["Astronomy", "MATH", None, 7])
def test_unrecognized_subject_becomes_other(subject):
    result = validate_question(_candidate(subject=subject))
    assert isinstance(result, Valid)
    assert result.record.subject is Subject.OTHER


def test_missing_subject_becomes_other():
    data = _candidate()
    del data["subject"]
    result = validate_question(data)
    assert isinstance(result, Valid)
    assert result.record.subject is Subject.OTHER


def test_non_mapping_candidate_raises():
    with pytest.raises(TypeError):
        validate_question(["not", "a", "mapping"])


def test_validation_is_idempotent_through_serialization():
    first = validate_question(_candidate(subject="Chemistry"))
    assert isinstance(first, Valid)

    payload = json.loads(json.dumps(first.record.to_payload(), ensure_ascii=False))
    second = validate_question(payload)

    assert isinstance(second, Valid)
    assert second.record == first.record
    assert payload["subject"] == "chemistry"


def test_deployment_vocabulary_replaces_labels():
    vocabulary = SubjectVocabulary.from_mapping({"math": ["Mathematik"], "physics": ["Physik"]})

    result = validate_question(_candidate(subject="Mathematik"), vocabulary)
    assert isinstance(result, Valid)
    assert result.record.subject is Subject.MATH

    # The enum value is always accepted so stored records re-validate.
    assert vocabulary.resolve("physics") is Subject.PHYSICS
    assert vocabulary.resolve("数学") is None
    assert vocabulary.resolve("英语") is Subject.ENGLISH


def test_unknown_vocabulary_key_is_rejected():
    with pytest.raises(ValueError):
        SubjectVocabulary.from_mapping({"astrology": ["占星"]})
