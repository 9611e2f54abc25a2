"""Vibe classification rules and classifier."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .rules_config import load_vibe_keywords
from . import utils


class Vibe(Enum):
    """The closed set of answers the dashboard can report."""
    BONES = "bones"
    NO_BONES = "no_bones"
    SKIPPED = "skipped"
    INDETERMINATE = "indeterminate"
    ENDED = "ended"


VIBE_LABELS: Dict[Vibe, str] = {
    Vibe.BONES: "Bones Day",
    Vibe.NO_BONES: "No Bones Day",
    Vibe.SKIPPED: "No Reading Today",
    Vibe.INDETERMINATE: "Unknown",
    Vibe.ENDED: "Retired",
}

VIBE_DETAILS: Dict[Vibe, Optional[str]] = {
    Vibe.BONES: None,
    Vibe.NO_BONES: None,
    Vibe.SKIPPED: "Noodle is not giving a reading today. Make your own vibe.",
    Vibe.INDETERMINATE: "The latest post could not be read as bones or no bones.",
    Vibe.ENDED: "The daily readings have ended. Noodle has retired from forecasting.",
}

_KEYWORDS = load_vibe_keywords()

# Priority order is fixed: an explicit skip beats everything, and "no bones"
# must be checked before "bones" because it contains it.
VIBE_RULES: List[Tuple[Vibe, List[str]]] = [
    (Vibe.SKIPPED, _KEYWORDS["skipped"]),
    (Vibe.NO_BONES, _KEYWORDS["no_bones"]),
    (Vibe.BONES, _KEYWORDS["bones"]),
]


def normalize(text: str) -> str:
    return utils.normalize_ws(text or "").lower()


def contains_any(keywords: List[str], text: str) -> bool:
    return any(k in text for k in keywords)


def classify(text: str) -> Vibe:
    t = normalize(text)
    for vibe, keywords in VIBE_RULES:
        if contains_any(keywords, t):
            return vibe
    return Vibe.INDETERMINATE


def explain(text: str) -> Dict[str, Any]:
    """Report every rule and keyword that matched, plus the winning vibe."""
    t = normalize(text)
    matches = {
        vibe.value: [k for k in keywords if k in t]
        for vibe, keywords in VIBE_RULES
    }
    return {
        "normalized": t,
        "vibe": classify(text).value,
        "matches": {name: hits for name, hits in matches.items() if hits},
    }


def parse_vibe(name: str) -> Vibe:
    """Look up a vibe by its value or member name, case-insensitively."""
    key = (name or "").strip().lower().replace("-", "_")
    for vibe in Vibe:
        if key in (vibe.value, vibe.name.lower()):
            return vibe
    raise ValueError(f"Unknown vibe: {name!r}")
