"""Operations the web layer calls on the vibe store."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Callable

from loguru import logger

from . import rules, utils, view
from .rules import Vibe
from .store import VibeStore


class VibeService:
    def __init__(self, store: VibeStore, zone: tzinfo,
                 clock: Callable[[], datetime] = utils.utcnow) -> None:
        self.store = store
        self.zone = zone
        self.clock = clock

    def get_current_view(self) -> view.ViewResult:
        return view.current_view(self.store.read(), self.clock(), self.zone)

    def set_vibe(self, vibe: Vibe) -> None:
        """Manual override, stamped with the current time."""
        record = self.store.write(vibe, self.clock())
        logger.info(f"Vibe manually set to {vibe.value} at {record.observed_at.isoformat()}")

    def classify_and_set(self, text: str) -> str:
        vibe = rules.classify(text)
        self.store.write(vibe, self.clock())
        logger.info(f"Classified submitted text as {vibe.value}")
        return rules.VIBE_LABELS[vibe]
