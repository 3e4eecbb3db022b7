"""
Generated practice content.

Models for what the language model returns. They double as the schema
used to validate model output and as the payload stored in the content
cache (``model_dump`` / ``model_validate``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, ValidationError, field_validator

_CJK = re.compile(r"[\u4e00-\u9fa5]")


def contains_chinese(text: str | None) -> bool:
    return bool(text and _CJK.search(text))


class ScenarioHighlight(BaseModel):
    """A phrase as it appears inside the English reference."""

    text: str  # exact substring used in the reference, e.g. "scheduled"
    original: str | None = None  # dictionary form, e.g. "schedule"
    type: str = "target"  # target | new
    explanation: str = ""
    translation: str | None = None


class ContextScenario(BaseModel):
    """Chinese prompt text plus the English reference the learner should produce."""

    topic: str = ""
    chinese_script: str = Field(default="", alias="chineseScript")
    english_reference: str = Field(default="", alias="englishReference")
    highlights: list[ScenarioHighlight] = Field(default_factory=list)
    chinese_highlights: list[str] = Field(default_factory=list, alias="chineseHighlights")

    model_config = {"populate_by_name": True}

    @property
    def target_phrases(self) -> list[str]:
        return [h.original or h.text for h in self.highlights]


class AnswerEvaluation(BaseModel):
    """Score for a learner's translation attempt."""

    score: int = 0
    feedback: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: object) -> int:
        try:
            score = int(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, score))


class ReviewFeedback(AnswerEvaluation):
    """Detailed feedback for a spoken scenario answer."""

    punctuated_transcript: str = Field(default="", alias="punctuatedTranscript")
    improved_version: str | None = Field(default=None, alias="improvedVersion")

    model_config = {"populate_by_name": True}


class ExtractedPhrase(BaseModel):
    """An expression pulled out of free text."""

    english: str
    chinese: str = ""
    type: str = "phrase"
    tags: list[str] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)


def normalize_highlights(raw: list[dict]) -> list[dict]:
    """
    Repair highlights where the model put Chinese into ``original``.

    ``text`` must stay the English substring used for highlighting; when
    ``original`` holds Chinese it is replaced with the English text.
    """
    normalized = []
    for highlight in raw:
        if not isinstance(highlight, dict):
            continue
        text = highlight.get("text") or highlight.get("original") or "English Variant"
        original = highlight.get("original")
        if contains_chinese(original):
            original = highlight.get("text") or "English Phrase"
        else:
            original = original or highlight.get("text") or "English Phrase"
        normalized.append({**highlight, "text": text, "original": original})
    return normalized


def scenario_to_cache(scenario: ContextScenario) -> dict:
    """JSON-ready form stored in the content cache."""
    return scenario.model_dump(by_alias=True)


def scenario_from_cache(data: object) -> ContextScenario | None:
    """Rebuild a cached scenario; None if the payload no longer fits the schema."""
    if not isinstance(data, dict):
        return None
    try:
        return ContextScenario.model_validate(data)
    except ValidationError:
        return None
