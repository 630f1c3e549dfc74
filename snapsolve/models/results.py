"""Pipeline result models: extracted problem, solution and debug analysis."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ContentKind(StrEnum):
    """What the extracted screenshot content looks like."""

    CODE_PROBLEM = "code_problem"
    GENERAL_TEXT = "general_text"


class ParseDegraded(StrEnum):
    """Fields for which the response parser fell back to a default.

    Degraded fields are not errors. They mark lower-confidence output so a
    consumer can, for example, de-emphasize a synthesized complexity line.
    """

    CODE = "code"
    THOUGHTS = "thoughts"
    TIME_COMPLEXITY = "time_complexity"
    SPACE_COMPLEXITY = "space_complexity"


class ProblemContext(BaseModel):
    """Text extracted from the primary screenshots.

    Created by the extract stage, consumed by analyze and debug, and replaced
    on every new extract.
    """

    raw_text: str = Field(..., description="Model output of the extract stage")
    content_kind: ContentKind = Field(default=ContentKind.GENERAL_TEXT)
    language: str = Field(default="python", description="Preferred output language")
    extracted_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


class Solution(BaseModel):
    """Structured result of the analyze stage."""

    code: str = Field(default="", description="First fenced code block, may be empty")
    content: str = Field(..., description="Full model response")
    thoughts: list[str] = Field(default_factory=list)
    time_complexity: str = Field(...)
    space_complexity: str = Field(...)
    degraded: frozenset[ParseDegraded] = Field(default_factory=frozenset)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}

    @property
    def is_degraded(self) -> bool:
        """Whether any field fell back to a parser default."""
        return bool(self.degraded)

    def to_payload(self) -> dict[str, object]:
        """Serialize for event consumers."""
        return {
            "code": self.code,
            "content": self.content,
            "thoughts": list(self.thoughts),
            "time_complexity": self.time_complexity,
            "space_complexity": self.space_complexity,
            "degraded": sorted(field.value for field in self.degraded),
        }


class DebugResult(Solution):
    """Structured result of the debug stage.

    Shares the Solution fields and adds the debug narrative.
    """

    debug_analysis: str = Field(..., description="Normalized debug narrative")

    def to_payload(self) -> dict[str, object]:
        """Serialize for event consumers."""
        payload = super().to_payload()
        payload["debug_analysis"] = self.debug_analysis
        return payload
