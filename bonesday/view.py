"""Derive the visible answer from the stored record."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, tzinfo
from typing import Any, Dict, Optional

from .rules import VIBE_DETAILS, VIBE_LABELS, Vibe
from .store import VibeRecord
from . import utils


@dataclass(frozen=True)
class ViewResult:
    label: str
    detail: Optional[str]
    observed_at_local: Optional[str]
    stale: bool
    vibe: Optional[Vibe]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["vibe"] = self.vibe.value if self.vibe else None
        return d


STALE_VIEW = ViewResult(
    label="Superposition",
    detail=(
        "Noodle has not been consulted yet today. Until the reading is posted, "
        "today is both a bones day and a no bones day."
    ),
    observed_at_local=None,
    stale=True,
    vibe=None,
)


def is_same_local_day(a: datetime, b: datetime, zone: tzinfo) -> bool:
    return a.astimezone(zone).date() == b.astimezone(zone).date()


def current_view(record: VibeRecord, now: datetime, zone: tzinfo) -> ViewResult:
    """
    The record is good until local midnight in `zone`, not for a rolling 24h:
    a reading at 23:59 expires two minutes later, one at 00:01 lasts all day.
    """
    if not is_same_local_day(record.observed_at, now, zone):
        return STALE_VIEW
    return ViewResult(
        label=VIBE_LABELS[record.vibe],
        detail=VIBE_DETAILS[record.vibe],
        observed_at_local=utils.format_local(record.observed_at, zone),
        stale=False,
        vibe=record.vibe,
    )
