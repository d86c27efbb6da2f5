"""Prompt templates sent to the AI backends.

The subject list comes from the configured ``SubjectVocabulary`` so the labels
the model is told to use are the ones the validator accepts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from errbook.domain.subjects import SubjectVocabulary

OutputFormat = Literal["json", "xml"]

_DIFFICULTY_INSTRUCTIONS = {
    "easy": "Make the new question EASIER than the original. Use simpler numbers and more direct concepts.",
    "medium": "Keep the difficulty SIMILAR to the original question.",
    "hard": "Make the new question HARDER than the original. Combine multiple concepts or use more complex numbers.",
    "harder": (
        "Make the new question MUCH HARDER (Challenge Level). "
        "Require deeper understanding and multi-step reasoning."
    ),
}

_STANDARD_TAGS = """\
**Math tags (数学标签):** use exact curriculum tag names, for example
  "有理数", "一元一次方程", "全等三角形的判定", "勾股定理", "一次函数", "一元二次方程",
  "韦达定理", "二次函数", "圆周角定理", "反比例函数", "相似三角形的判定".
  Prefer "二次函数一般式" over "二次函数的图像", "三视图" over "左视图"/"主视图"/"俯视图".
**Physics tags (物理标签):** "力学", "电学", "光学", "热学", "欧姆定律", "浮力".
**Chemistry tags (化学标签):** "化学方程式", "氧化还原反应", "酸碱盐".
**English tags (英语标签):** "语法", "词汇", "阅读理解", "完形填空", "写作", "听力", "翻译".
**Other subjects:** use suitable general tags such as "历史事件", "地理常识", "古诗文".
Use at most 5 tags per question."""


@dataclass
class PromptOptions:
    provider_hints: str = ""
    additional_tags: dict[str, list[str]] = field(default_factory=dict)
    custom_template: str | None = None


_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")


def fill_template(template: str, values: dict[str, str]) -> str:
    """Substitute only known ``{name}`` placeholders; other braces stay literal."""
    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def _analyze_language_instruction(language: str) -> str:
    if language == "zh":
        return (
            "IMPORTANT: For the analysis, use Simplified Chinese. For the question text and the answer, "
            "YOU MUST USE THE SAME LANGUAGE AS THE ORIGINAL QUESTION."
        )
    return "Please ensure all text fields are in English."


def _similar_language_instruction(language: str) -> str:
    if language == "zh":
        return (
            "IMPORTANT: Generate the new question in Simplified Chinese. "
            "The new question MUST use the SAME LANGUAGE as the original question."
        )
    return "Please ensure the generated question is in English."


def _subject_choices(subjects: SubjectVocabulary, language: str) -> str:
    return ", ".join(f'"{label}"' for label in subjects.prompt_labels(language))


def _tag_guidance(options: PromptOptions) -> str:
    if not options.additional_tags:
        return _STANDARD_TAGS
    extra = "\n".join(
        f"**{subject}:** " + ", ".join(f'"{tag}"' for tag in tags)
        for subject, tags in options.additional_tags.items()
        if tags
    )
    return f"{_STANDARD_TAGS}\nAdditional tags:\n{extra}"


def _format_instructions(output_format: OutputFormat, subject_choices: str) -> str:
    if output_format == "xml":
        return f"""\
Return the result using exactly these tags, each appearing once:
<question_text>The full question text (Markdown, LaTeX with $...$ or $$...$$)</question_text>
<answer_text>The correct answer</answer_text>
<analysis>Step-by-step solution</analysis>
<subject>ONE of: {subject_choices}</subject>
<knowledge_points>Comma-separated knowledge points</knowledge_points>
Do NOT add text outside the tags and do NOT wrap the output in code blocks."""

    return f"""\
Return ONLY a valid JSON object with these fields, nothing else:
1. "questionText": the full question text (Markdown, LaTeX with $...$ or $$...$$).
2. "answerText": the correct answer.
3. "analysis": a step-by-step solution.
4. "subject": ONE of: {subject_choices}.
5. "knowledgePoints": an array of knowledge point strings.
Do NOT add text before or after the JSON and do NOT wrap it in markdown code blocks."""


def generate_analyze_prompt(
    language: str,
    *,
    subjects: SubjectVocabulary,
    output_format: OutputFormat = "json",
    options: PromptOptions | None = None,
) -> str:
    options = options or PromptOptions()
    subject_choices = _subject_choices(subjects, language)

    prompt = f"""\
You are an experienced interdisciplinary exam analysis expert. Analyze the exam question image,
including all text, diagrams and implicit constraints, and deliver a complete structured solution.

{_analyze_language_instruction(language)}

**CRITICAL: Extract the EXACT TEXT as it appears in the image, NOT a description of the image.**
- If the question has sub-questions like (1), (2), (3), include ALL of them in the question text.
- If the image holds several separate questions, only analyze the first complete one.
- Do NOT include HTML tags (such as <img> or <center>) in the extracted text.

Knowledge points must use exact standard terms:
{_tag_guidance(options)}

{_format_instructions(output_format, subject_choices)}

{options.provider_hints}"""
    return prompt.strip()


def generate_similar_question_prompt(
    language: str,
    original_question: str,
    knowledge_points: list[str],
    difficulty: str = "medium",
    *,
    subjects: SubjectVocabulary,
    output_format: OutputFormat = "json",
    options: PromptOptions | None = None,
) -> str:
    options = options or PromptOptions()
    difficulty_instruction = _DIFFICULTY_INSTRUCTIONS.get(difficulty, _DIFFICULTY_INSTRUCTIONS["medium"])
    subject_choices = _subject_choices(subjects, language)
    format_instructions = _format_instructions(output_format, subject_choices)

    if options.custom_template:
        prompt = fill_template(
            options.custom_template,
            {
                "language_instruction": _similar_language_instruction(language),
                "difficulty": difficulty.upper(),
                "difficulty_instruction": difficulty_instruction,
                "original_question": original_question,
                "knowledge_points": ", ".join(knowledge_points),
                "subjects": subject_choices,
                "format_instructions": format_instructions,
            },
        )
        return f"{prompt.strip()}\n\n{options.provider_hints}".strip()

    prompt = f"""\
You are an expert AI tutor creating practice problems for middle school students.
Create a NEW practice problem based on the original question and knowledge points below.

DIFFICULTY LEVEL: {difficulty.upper()}
{difficulty_instruction}

{_similar_language_instruction(language)}

Original Question: "{original_question}"
Knowledge Points: {", ".join(knowledge_points)}

If the original question is multiple-choice, include the options (A, B, C, D) in the question text.
The knowledge points of the new question should match the input.

{format_instructions}

{options.provider_hints}"""
    return prompt.strip()
