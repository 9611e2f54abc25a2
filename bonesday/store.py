"""The single-slot vibe store shared by the stream ingester and request handlers."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from .rules import Vibe
from . import utils


@dataclass(frozen=True)
class VibeRecord:
    vibe: Vibe
    observed_at: datetime


SENTINEL = VibeRecord(Vibe.INDETERMINATE, utils.EPOCH)


class ReadWriteLock:
    """
    Many readers or one writer, never both.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it, so a steady stream of readers cannot starve the ingester.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class VibeStore:
    """Holds exactly one VibeRecord. Construct one at startup and pass it around."""

    def __init__(self, initial: VibeRecord = SENTINEL) -> None:
        self._lock = ReadWriteLock()
        self._record = initial

    def read(self) -> VibeRecord:
        with self._lock.read_locked():
            return self._record

    def write(self, vibe: Vibe, observed_at: datetime) -> VibeRecord:
        # Build and validate the new record before locking so a bad write
        # leaves the previous record in place.
        if not isinstance(vibe, Vibe):
            raise ValueError(f"Not a Vibe: {vibe!r}")
        if not isinstance(observed_at, datetime) or observed_at.tzinfo is None:
            raise ValueError("observed_at must be a timezone-aware datetime")
        record = VibeRecord(vibe, observed_at)
        with self._lock.write_locked():
            self._record = record
        return record

    def reset(self) -> None:
        with self._lock.write_locked():
            self._record = SENTINEL
