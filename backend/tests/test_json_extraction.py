import json

import pytest

from errbook.ai.extraction import (
    ResponseParseError,
    extract_json_candidate,
    parse_json_response,
    repair_and_parse,
)
from errbook.domain.subjects import Subject


def _payload(**overrides):
    data = {
        "questionText": "求 $x^2 = 4$ 的解",
        "answerText": "$x = \\pm 2$",
        "analysis": "开平方即可",
        "subject": "数学",
        "knowledgePoints": ["一元二次方程"],
    }
    data.update(overrides)
    return data


class TestExtractJsonCandidate:
    def test_fenced_json_block_is_returned_trimmed(self):
        inner = '{"a": 1}'
        text = f"Here is the result:\n```json\n  {inner}  \n```\nHope it helps!"
        assert extract_json_candidate(text) == inner

    def test_untagged_fence(self):
        text = 'prefix ```\n{"a": {"b": 2}}\n``` suffix {ignored}'
        assert extract_json_candidate(text) == '{"a": {"b": 2}}'

    def test_prose_around_object(self):
        text = 'The answer is {"a": 1, "b": {"c": 2}} and that is all. {"second": true}'
        assert extract_json_candidate(text) == '{"a": 1, "b": {"c": 2}}'

    def test_braces_inside_strings_do_not_end_extraction(self):
        obj = {"analysis": "集合 } 与 { 的写法 \\{1, 2\\}", "answerText": "见 \"解析\" }"}
        text = "Result: " + json.dumps(obj, ensure_ascii=False) + " trailing } garbage"
        candidate = extract_json_candidate(text)
        assert json.loads(candidate) == obj

    def test_depth_tracking_does_not_care_about_json_validity(self):
        text = 'noise {"a": {"b": 1} tail } end'
        assert extract_json_candidate(text) == '{"a": {"b": 1} tail }'

    def test_unbalanced_falls_back_to_last_closing_brace(self):
        text = 'x {"a": {"b": 1} trailing'
        assert extract_json_candidate(text) == '{"a": {"b": 1}'

    def test_closing_brace_only_before_opening_returns_input(self):
        text = 'x } y {"a": 1'
        assert extract_json_candidate(text) == text

    def test_unterminated_object_with_earlier_close(self):
        text = '{"a": {"b": 1} }}'  # balanced at the second-to-last brace
        assert extract_json_candidate(text) == '{"a": {"b": 1} }'

    def test_no_brace_returns_input_unchanged(self):
        text = "no json here at all"
        assert extract_json_candidate(text) == text


class TestRepairAndParse:
    def test_trailing_comma_and_single_quotes(self):
        parsed = repair_and_parse("{'questionText': 'Q', 'answerText': 'A',}")
        assert parsed == {"questionText": "Q", "answerText": "A"}

    def test_literal_newline_inside_string(self):
        parsed = repair_and_parse('{"analysis": "line one\nline two"}')
        assert parsed["analysis"].splitlines() == ["line one", "line two"]

    def test_non_object_result_raises(self):
        with pytest.raises(ResponseParseError):
            repair_and_parse("[1, 2, 3]")


class TestParseJsonResponse:
    def test_direct_parse(self):
        record = parse_json_response(json.dumps(_payload(), ensure_ascii=False))
        assert record.subject is Subject.MATH
        assert record.knowledge_points == ("一元二次方程",)

    def test_markdown_wrapped_json_uses_extraction_stage(self):
        text = "```json\n" + json.dumps(_payload(), ensure_ascii=False) + "\n```"
        record = parse_json_response(text)
        assert record.question_text == "求 $x^2 = 4$ 的解"

    def test_malformed_json_is_repaired(self):
        text = (
            'Sure! {"questionText": "Q", "answerText": "A", '
            '"analysis": "step 1\nstep 2", "subject": "物理", "knowledgePoints": ["力学",],}'
        )
        record = parse_json_response(text)
        assert record.subject is Subject.PHYSICS
        assert record.knowledge_points == ("力学",)
        assert "step 2" in record.analysis

    def test_unknown_subject_does_not_trigger_failure(self):
        # Unknown subjects are coerced to "other" in JSON mode as well as tag mode.
        record = parse_json_response(json.dumps(_payload(subject="Astrology")))
        assert record.subject is Subject.OTHER

    def test_missing_required_field_exhausts_chain(self):
        data = _payload()
        del data["analysis"]
        with pytest.raises(ResponseParseError, match="Invalid JSON response from AI"):
            parse_json_response(json.dumps(data))

    def test_empty_strings_are_rejected(self):
        with pytest.raises(ResponseParseError):
            parse_json_response(json.dumps(_payload(questionText="   ")))

    def test_garbage_text_raises_parse_error(self):
        with pytest.raises(ResponseParseError):
            parse_json_response("I could not read the image, sorry.")

    def test_deeply_nested_output_is_a_parse_error(self):
        text = '{"questionText": ' + "[" * 50000 + "]" * 50000 + "}"
        with pytest.raises(ResponseParseError):
            parse_json_response(text)
