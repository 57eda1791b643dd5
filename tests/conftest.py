# ===============================================
# Shared fixtures: a scripted model client and an
# orchestrator factory wired to it.
# ===============================================

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import pytest

from replygen.cache import ResponseCache
from replygen.errors import ErrorClassifier
from replygen.generate import StageRunner, Tier
from replygen.orchestrator import EscalationOrchestrator

PRIMARY = "primary-model"
SECONDARY = "secondary-model"

METRICS = [
    "scientific_accuracy", "citation_relevance", "technical_depth", "novelty_of_insight",
    "professional_tone", "source_relevance", "mechanistic_clarity", "strategic_insight",
    "communication_clarity",
]

REFS = [
    {"marker": 1, "title": "Structure of the NiV polymerase", "authors": "Sala et al.",
     "year": 2025, "journal": "Nature Communications", "url": "https://example.org/niv-pol"},
    {"marker": 2, "title": "Henipavirus entry inhibitors", "authors": "Lee et al.",
     "year": 2024, "journal": "Cell", "url": "https://example.org/entry"},
]

DRAFT_TEXT = "Polymerase structure is the lever [1]. Entry inhibitors look weaker [2]. What assay de-risks this?"
VALIDATED_TEXT = "Polymerase structure is the lever [1]. What assay de-risks this?"


def score_json(value: float = 80) -> str:
    return json.dumps({m: {"score": value, "justification": "ok"} for m in METRICS})


class ProviderError(Exception):
    """Stands in for an SDK exception with a status code and parsed body."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body: Optional[Dict[str, Any]] = None, response: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
        self.response = response


def hard_quota_error() -> ProviderError:
    return ProviderError(
        "You exceeded your current quota, please check your plan and billing details.",
        status_code=429,
        body={"code": "insufficient_quota"},
    )


def overload_error() -> ProviderError:
    return ProviderError("The model is overloaded. Please try again later.", status_code=503)


@dataclass
class Call:
    stage: str
    model: Optional[str]
    grounding: bool


def stage_of(messages, params) -> str:
    schema = params.json_schema or {}
    if schema.get("title") == "DraftOutput":
        return "draft"
    if schema.get("title") == "QualityAssessment":
        return "score"
    if messages[0].content.startswith("You are a research librarian"):
        return "analyze"
    return "validate"


def happy(call: Call):
    return {
        "analyze": "nipah virus, rna polymerase, antiviral",
        "draft": json.dumps({"reply": DRAFT_TEXT, "references": REFS}),
        "validate": VALIDATED_TEXT,
        "score": score_json(),
    }[call.stage]


class FakeClient:
    def __init__(self, responder: Callable[[Call], Any] = happy):
        self.responder = responder
        self.calls: List[Call] = []
        self.model = PRIMARY

    def generate(self, messages, params):
        call = Call(stage_of(messages, params), params.model, params.grounding)
        self.calls.append(call)
        out = self.responder(call)
        if isinstance(out, Exception):
            raise out
        return out, {"engine": "fake", "model": params.model}

    def stages(self, stage: str) -> List[Call]:
        return [c for c in self.calls if c.stage == stage]


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(sleeps):
    def _make(responder=happy, secondary: Optional[str] = SECONDARY, **kwargs):
        client = FakeClient(responder)
        runner = StageRunner(client, models={Tier.PRIMARY: PRIMARY, Tier.SECONDARY: secondary})
        orch = EscalationOrchestrator(
            runner,
            cache=kwargs.pop("cache", ResponseCache()),
            classifier=kwargs.pop("classifier", ErrorClassifier()),
            sleep=sleeps.append,
            **kwargs,
        )
        return orch, client
    return _make
