# Data models for requests, citations, quality scores, and replies.
# Pydantic models double as the schemas structured stages are validated against.

from __future__ import annotations
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .errors import ErrorResponse


class ReplyMode(str, Enum):
    BALANCED = "balanced"
    TECHNICAL = "technical"
    COLLABORATIVE = "collaborative"


class GenerationRequest(BaseModel):
    """A post to reply to. Frozen once built."""
    model_config = ConfigDict(frozen=True)

    post: str
    mode: ReplyMode = ReplyMode.BALANCED

    @field_validator("post")
    @classmethod
    def _post_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Post content cannot be empty.")
        return v


class Reference(BaseModel):
    """A citation; marker is the inline [n] number in the reply."""
    marker: int = Field(ge=1)
    title: str = ""
    authors: str = ""
    year: Optional[int] = None
    journal: str = ""
    url: str = ""


class MetricScore(BaseModel):
    score: float = Field(ge=0, le=100)
    justification: str = ""


class QualityAssessment(BaseModel):
    """Fixed metric set; overall is the mean of every metric."""
    scientific_accuracy: MetricScore
    citation_relevance: MetricScore
    technical_depth: MetricScore
    novelty_of_insight: MetricScore
    professional_tone: MetricScore
    source_relevance: MetricScore
    mechanistic_clarity: MetricScore
    strategic_insight: MetricScore
    communication_clarity: MetricScore

    @classmethod
    def metric_names(cls) -> List[str]:
        return list(cls.model_fields)

    def scores(self) -> dict:
        return {name: getattr(self, name).score for name in self.metric_names()}

    @computed_field  # type: ignore[misc]
    @property
    def overall(self) -> float:
        values = list(self.scores().values())
        return sum(values) / len(values)


class DraftOutput(BaseModel):
    """Structured result of the draft stage."""
    reply: str
    references: List[Reference] = Field(default_factory=list)


class ReplyResult(BaseModel):
    reply: str
    references: List[Reference] = Field(default_factory=list)
    quality: Optional[QualityAssessment] = None
    is_fallback: bool = False
    keywords: List[str] = Field(default_factory=list)
    tier: str = "primary"
    notices: List[ErrorResponse] = Field(default_factory=list)
