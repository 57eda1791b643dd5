# Static fallback replies, used when every model tier is unavailable.
# Selection is deterministic: the template whose keywords overlap the post
# (and any extracted keywords) the most wins; ties go to the earlier template.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List

from .types import Reference, ReplyResult

_WORD = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class FallbackTemplate:
    topic: str
    keywords: FrozenSet[str]
    reply: str


TEMPLATES: List[FallbackTemplate] = [
    FallbackTemplate(
        topic="virology",
        keywords=frozenset({"nipah", "henipavirus", "paramyxovirus", "zoonotic", "virus", "viral",
                            "polymerase", "rdrp", "antiviral"}),
        reply=(
            "The focus on viral replication machinery is well placed. The real bottleneck is how "
            "polymerase structure translates into druggable states, since structural snapshots rarely "
            "capture the transitions that matter for inhibition [1]. Which assays would you trust to "
            "de-risk a polymerase-targeted program before it reaches animal models?"
        ),
    ),
    FallbackTemplate(
        topic="circular-nucleic-acids",
        keywords=frozenset({"circrna", "circular", "backsplicing", "ecdna", "extrachromosomal",
                            "amplicon", "ires", "m6a"}),
        reply=(
            "Circular nucleic acids keep proving more functional than once assumed. The open question "
            "is how cap-independent translation and extrachromosomal amplification behave under "
            "therapeutic pressure, where resistance tends to emerge first [1]. How would you separate "
            "driver circles from passengers in a clinical sample?"
        ),
    ),
    FallbackTemplate(
        topic="molecular-biology",
        keywords=frozenset({"transcription", "translation", "promoter", "enhancer", "chromatin",
                            "epigenetic", "methylation", "mirna", "lncrna", "ribosome"}),
        reply=(
            "This is a crucial point about gene regulation. The critical step is linking regulatory "
            "mechanisms to measurable changes in protein output, because transcript levels alone often "
            "mislead [1]. What readout would convince you a regulatory effect is causal rather than "
            "correlative?"
        ),
    ),
    FallbackTemplate(
        topic="bioinformatics",
        keywords=frozenset({"pipeline", "pipelines", "nextflow", "snakemake", "sequencing", "rnaseq",
                            "alignment", "genomics", "bioinformatics", "gatk", "deseq2"}),
        reply=(
            "Reproducible pipelines are where good analyses become trustworthy ones. The harder problem "
            "is validating each step against ground truth so that tooling choices do not silently shift "
            "results [1]. How do you benchmark a pipeline change before it reaches production data?"
        ),
    ),
]

DEFAULT_TEMPLATE = FallbackTemplate(
    topic="general",
    keywords=frozenset(),
    reply=(
        "This is a thoughtful post. The real challenge is turning the idea into evidence that holds up "
        "outside the original setting, which is where most promising results lose momentum [1]. "
        "What would you consider the decisive next experiment?"
    ),
)

PLACEHOLDER_REFERENCE = Reference(
    marker=1,
    title="Reference unavailable: generated offline without model access",
    authors="N/A",
    year=None,
    journal="N/A",
    url="",
)


def _tokens(texts: Iterable[str]) -> set:
    out = set()
    for t in texts:
        out.update(_WORD.findall(t.lower()))
    return out


def select_template(post: str, keywords: Iterable[str] = ()) -> FallbackTemplate:
    tokens = _tokens([post, *keywords])
    best, best_hits = DEFAULT_TEMPLATE, 0
    for template in TEMPLATES:
        hits = len(template.keywords & tokens)
        if hits > best_hits:
            best, best_hits = template, hits
    return best


def fallback_reply(post: str, keywords: Iterable[str] = ()) -> ReplyResult:
    """Canned reply with a single placeholder reference. Never raises."""
    keywords = list(keywords)
    template = select_template(post, keywords)
    return ReplyResult(
        reply=template.reply,
        references=[PLACEHOLDER_REFERENCE.model_copy()],
        quality=None,
        is_fallback=True,
        keywords=keywords,
        tier="fallback",
    )
