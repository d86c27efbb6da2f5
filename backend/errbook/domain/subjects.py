from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class Subject(str, Enum):
    MATH = "math"
    PHYSICS = "physics"
    CHEMISTRY = "chemistry"
    BIOLOGY = "biology"
    ENGLISH = "english"
    CHINESE = "chinese"
    HISTORY = "history"
    GEOGRAPHY = "geography"
    POLITICS = "politics"
    OTHER = "other"


# (Chinese label, English label)
DEFAULT_SUBJECT_LABELS: dict[Subject, tuple[str, str]] = {
    Subject.MATH: ("数学", "Math"),
    Subject.PHYSICS: ("物理", "Physics"),
    Subject.CHEMISTRY: ("化学", "Chemistry"),
    Subject.BIOLOGY: ("生物", "Biology"),
    Subject.ENGLISH: ("英语", "English"),
    Subject.CHINESE: ("语文", "Chinese"),
    Subject.HISTORY: ("历史", "History"),
    Subject.GEOGRAPHY: ("地理", "Geography"),
    Subject.POLITICS: ("政治", "Politics"),
    Subject.OTHER: ("其他", "Other"),
}


@dataclass(frozen=True)
class SubjectVocabulary:
    """Closed set of subject labels accepted from model output.

    Matching is exact and case-sensitive; the enum value of every subject is
    always accepted so serialized records validate again unchanged.
    """

    labels: Mapping[Subject, tuple[str, ...]]
    _aliases: dict[str, Subject] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        aliases: dict[str, Subject] = {}
        for subject in Subject:
            aliases[subject.value] = subject
        for subject, names in self.labels.items():
            for name in names:
                key = name.strip()
                if key:
                    aliases.setdefault(key, subject)
        object.__setattr__(self, "_aliases", aliases)

    @classmethod
    def default(cls) -> SubjectVocabulary:
        return cls(labels=dict(DEFAULT_SUBJECT_LABELS))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> SubjectVocabulary:
        labels: dict[Subject, tuple[str, ...]] = {}
        for key, names in mapping.items():
            try:
                subject = Subject(key)
            except ValueError as exc:
                raise ValueError(f"Unknown subject in vocabulary: {key!r}") from exc
            if isinstance(names, str):
                names = [names]
            labels[subject] = tuple(str(name) for name in names)
        for subject in Subject:
            labels.setdefault(subject, DEFAULT_SUBJECT_LABELS[subject])
        return cls(labels=labels)

    @classmethod
    def from_file(cls, path: Path) -> SubjectVocabulary:
        with open(path, encoding="utf-8") as f:
            data: Any = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Subject vocabulary file must contain a JSON object: {path}")
        return cls.from_mapping(data)

    def resolve(self, raw: object) -> Subject | None:
        if not isinstance(raw, str):
            return None
        return self._aliases.get(raw.strip())

    def coerce(self, raw: object) -> Subject:
        return self.resolve(raw) or Subject.OTHER

    def label_for(self, subject: Subject, language: str = "zh") -> str:
        names = self.labels.get(subject) or DEFAULT_SUBJECT_LABELS[subject]
        if language == "en":
            for name in names:
                if name.isascii():
                    return name
        return names[0] if names else subject.value

    def prompt_labels(self, language: str = "zh") -> list[str]:
        return [self.label_for(subject, language) for subject in Subject]
