# Prompt fragments and builders for each pipeline stage.
# Persona text lives in data/personas.yaml.

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List

import yaml

from .types import Reference, ReplyMode

PERSONAS_PATH = os.path.join(os.path.dirname(__file__), "data", "personas.yaml")

BASE_GUARDRAILS = """\
Stay within what the knowledge base and the cited sources support.
Never invent a citation. Every [n] marker must match an entry in the reference list.
"""

MODE_DIRECTIVES = {
    ReplyMode.BALANCED: "Balance technical depth with accessibility for a mixed professional audience.",
    ReplyMode.TECHNICAL: "Go deep on mechanisms and quantitative detail; assume a specialist audience.",
    ReplyMode.COLLABORATIVE: "Emphasise shared goals and invite the author into a follow-up discussion.",
}


@dataclass
class Persona:
    """Describes a persona's tone, style, and behavior directives."""
    key: str
    name: str
    style: str
    directives: str
    knowledge: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)


@lru_cache(maxsize=16)
def load_persona(key: str, path: str = PERSONAS_PATH) -> Persona:
    """Load a persona from personas.yaml."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"personas.yaml not found at {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if key not in data:
        raise KeyError(f"Persona '{key}' not found in personas.yaml")
    p = data[key]
    return Persona(
        key=key,
        name=p.get("name", key),
        style=p.get("style", ""),
        directives=p.get("directives", ""),
        knowledge=p.get("knowledge", ""),
        meta=p,
    )


def build_system_prompt(persona_name: str, style: str, directives: str) -> str:
    return f"""You are {persona_name}.
Your style: {style}

Directives:
{directives}

{BASE_GUARDRAILS}
"""


# -------------------------
# Stage 1: analyze
# -------------------------
ANALYZE_SYSTEM = (
    "You are a research librarian. Extract the 3-5 most important scientific or technical "
    "keywords from a social-media post that can be used as search queries in academic "
    "databases such as PubMed or Google Scholar. Answer with a comma-separated list only."
)


def analyze_prompt(post: str) -> str:
    return f'Post: "{post.strip()}"\n\nKeywords:'


def parse_keywords(text: str, limit: int = 5) -> List[str]:
    keywords = []
    for raw in text.replace("\n", ",").split(","):
        k = raw.strip().strip("-*•").strip().strip('"')
        if k and k.lower() not in (w.lower() for w in keywords):
            keywords.append(k)
    return keywords[:limit]


# -------------------------
# Stage 2: draft
# -------------------------
def draft_system(persona: Persona) -> str:
    return build_system_prompt(persona.name, persona.style, persona.directives) + (
        "\nDraft an expert-level reply to the post. Find 2-3 high-quality academic sources, "
        "synthesise them into a mechanistic or strategic insight, and cite each one inline as [n]. "
        'Return JSON with "reply" (the reply text) and "references" (one object per cited source '
        'with "marker", "title", "authors", "year", "journal", "url").'
    )


def draft_prompt(post: str, mode: ReplyMode, keywords: List[str], persona: Persona) -> str:
    return f"""KNOWLEDGE BASE:
---
{persona.knowledge.strip()}
---
POST TO ANALYZE:
---
"{post.strip()}"
---
REPLY MODE: {mode.value}. {MODE_DIRECTIVES[mode]}
SEARCH KEYWORDS: {", ".join(keywords)}
---
Draft your reply and its reference list."""


# -------------------------
# Stage 2b: validate
# -------------------------
def validate_system(persona: Persona) -> str:
    return (
        "You are a rigorous academic peer reviewer and editor. Check every claim in the draft "
        "against the reference it cites. Remove any claim or [n] marker that the reference does not "
        "plausibly support. Keep the style below. Output only the final edited reply text, with no "
        "reference list or commentary.\n\n"
        f"Style: {persona.style}\n\nDirectives:\n{persona.directives}"
    )


def validate_prompt(post: str, draft: str, references: List[Reference]) -> str:
    refs = json.dumps([r.model_dump() for r in references], indent=2)
    return f"""ORIGINAL POST:
---
"{post.strip()}"
---
DRAFT REPLY FOR REVIEW:
---
"{draft.strip()}"
---
REFERENCES TO VALIDATE AGAINST:
---
{refs}
---
Your final, validated reply:"""


# -------------------------
# Stage 3: score
# -------------------------
SCORE_SYSTEM = (
    "You are a quality assurance expert. Score the generated reply against the original post. "
    "Give every metric a score from 0 to 100 and a one-sentence justification. Return JSON only."
)

METRIC_GUIDE = {
    "scientific_accuracy": "How correctly does the reply use scientific concepts?",
    "citation_relevance": "How relevant are the cited papers to the point made? 0 if there are no citations.",
    "technical_depth": "How deep is the insight: mechanisms, quantitative data, nuanced comparisons?",
    "novelty_of_insight": "Does the reply add a new, valuable angle?",
    "professional_tone": "Is the tone collaborative and expert-level?",
    "source_relevance": "Are the sources high quality and supportive of the insight? 0 if there are none.",
    "mechanistic_clarity": "How well does it explain the how or why behind a point?",
    "strategic_insight": "How well does it connect the science to business or investment concepts?",
    "communication_clarity": "How clear and well structured is the reply?",
}


def score_prompt(post: str, reply: str, references: List[Reference]) -> str:
    refs = json.dumps([r.model_dump() for r in references], indent=2) if references else "None"
    metrics = "\n".join(f"- {name}: {q}" for name, q in METRIC_GUIDE.items())
    return f"""Original post:
---
"{post.strip()}"
---
Generated reply (citations are in [n] format):
---
"{reply.strip()}"
---
Cited references:
---
{refs}
---
Evaluate these metrics:
{metrics}
"""
