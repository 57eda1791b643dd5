# Inline citation markers.
# Replies cite with [n]; models sometimes emit superscripts (¹, ¹·²) or
# grouped brackets ([1, 2], [1-3]) instead, which are rewritten to [n]
# before anything else looks at the text.

from __future__ import annotations

import re
from typing import Dict, List, Tuple

from .types import Reference

_SUPERSCRIPTS = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹", "0123456789")
_SUPER_RUN = re.compile(r"[⁰¹²³⁴⁵⁶⁷⁸⁹]+(?:[·,˒][⁰¹²³⁴⁵⁶⁷⁸⁹]+)*")
# one or two letters standing alone before a superscript: m², cm³, s⁻¹
_UNIT_TAIL = re.compile(r"(?:^|[^A-Za-zµμ])[A-Za-zµμ]{1,2}$")
_GROUP = re.compile(r"\[(\s*\d+\s*(?:[-–,]\s*\d+\s*)+)\]")
_MAX_RANGE = 20
_MARKER = re.compile(r"\[(\d+)\]")
_INLINE_MARKER = re.compile(r"([ \t]*)\[(\d+)\]")


def _is_exponent(text: str, start: int) -> bool:
    if start == 0:
        return False
    prev = text[start - 1]
    if prev.isdigit() or prev in "⁻⁺)":
        return True
    return bool(_UNIT_TAIL.search(text[max(0, start - 3):start]))


def _expand_group(m: "re.Match[str]") -> str:
    nums: List[int] = []
    for part in m.group(1).split(","):
        bounds = [b.strip() for b in re.split(r"[-–]", part)]
        if len(bounds) == 1:
            nums.append(int(bounds[0]))
            continue
        lo, hi = int(bounds[0]), int(bounds[-1])
        if len(bounds) != 2 or hi < lo or hi - lo > _MAX_RANGE:
            return m.group(0)
        nums.extend(range(lo, hi + 1))
    return "".join(f"[{n}]" for n in nums)


def normalize_markers(text: str) -> str:
    """Rewrite superscript citation runs and grouped brackets as [n] markers.

    Superscripts directly after a digit or a short unit (10⁶, m², s⁻¹) are
    exponents and stay as they are.
    """
    def _sub(m: "re.Match[str]") -> str:
        if _is_exponent(m.string, m.start()):
            return m.group(0)
        nums = re.split(r"[·,˒]", m.group(0))
        return "".join(f"[{n.translate(_SUPERSCRIPTS)}]" for n in nums if n)
    text = _SUPER_RUN.sub(_sub, text)
    return _GROUP.sub(_expand_group, text)


def markers_in(text: str) -> List[int]:
    """Distinct markers in order of first appearance."""
    seen: List[int] = []
    for m in _MARKER.finditer(text):
        n = int(m.group(1))
        if n not in seen:
            seen.append(n)
    return seen


def reconcile(text: str, references: List[Reference]) -> Tuple[str, List[Reference]]:
    """Make inline markers and the reference list agree exactly.

    References whose marker is not cited are dropped, markers without a
    reference are stripped from the text, and the survivors are renumbered
    1..n in order of first appearance.
    """
    text = normalize_markers(text)
    by_marker: Dict[int, Reference] = {}
    for ref in references:
        by_marker.setdefault(ref.marker, ref)

    order = [n for n in markers_in(text) if n in by_marker]
    renumber = {old: new for new, old in enumerate(order, start=1)}

    def _sub(m: "re.Match[str]") -> str:
        n = int(m.group(2))
        return f"{m.group(1)}[{renumber[n]}]" if n in renumber else ""

    edited = _INLINE_MARKER.sub(_sub, text)
    retained = [by_marker[old].model_copy(update={"marker": renumber[old]}) for old in order]
    return edited.strip(), retained
