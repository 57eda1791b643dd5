# Typed dataclasses shared by the model clients and the stage runner.

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any


class Tier(str, Enum):
    """Cost/quality level a stage call is issued at."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass
class Message:
    """Single chat turn: system, user, or assistant."""
    role: str
    content: str


@dataclass
class ModelParams:
    """LLM parameters per request."""
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    json_schema: Optional[Dict[str, Any]] = None  # structured output when set
    grounding: bool = False  # ask the backend for search grounding
