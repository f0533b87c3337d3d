"""
Event Index

In-memory mirror of the event log. Entries keep arrival order and the
parsed instant of each event, so range scans never touch storage.
"""

import datetime
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from learnflow.telemetry.events import TelemetryEventBase


@dataclass(frozen=True)
class TimeRange:
    """Inclusive ``[start, end]`` window of aware datetimes."""
    start: datetime.datetime
    end: datetime.datetime

    def contains(self, instant: datetime.datetime) -> bool:
        return self.start <= instant <= self.end


@dataclass(frozen=True)
class IndexedEvent:
    event: TelemetryEventBase
    instant: datetime.datetime


class EventIndex:
    """
    Arrival-ordered event list with a per-actor secondary index.

    Not thread-safe; the owning store mutates it from the event loop only.
    """

    def __init__(self, entries: Optional[Iterable[IndexedEvent]] = None):
        self._entries: List[IndexedEvent] = []
        self._by_actor: Dict[str, List[IndexedEvent]] = {}
        for entry in entries or ():
            self.add(entry.event, entry.instant)

    def add(self, event: TelemetryEventBase, instant: datetime.datetime) -> IndexedEvent:
        entry = IndexedEvent(event, instant)
        self._entries.append(entry)
        if event.actor_hash:
            self._by_actor.setdefault(event.actor_hash, []).append(entry)
        return entry

    def scan(self, time_range: Optional[TimeRange] = None,
             kinds: Optional[Iterable[str]] = None) -> List[IndexedEvent]:
        """
        Entries in arrival order, filtered by inclusive range and kind.

        Args:
            time_range: Window to keep (all entries when None)
            kinds: Event kinds to keep (all kinds when None)
        """
        wanted = set(kinds) if kinds is not None else None
        return [
            entry for entry in self._entries
            if (wanted is None or entry.event.kind in wanted)
            and (time_range is None or time_range.contains(entry.instant))
        ]

    def for_actor(self, actor_hash: str, kinds: Optional[Iterable[str]] = None) -> List[IndexedEvent]:
        wanted = set(kinds) if kinds is not None else None
        return [
            entry for entry in self._by_actor.get(actor_hash, [])
            if wanted is None or entry.event.kind in wanted
        ]

    def actors(self) -> List[str]:
        return list(self._by_actor.keys())

    def prune(self, keep: Callable[[datetime.datetime], bool]) -> int:
        """
        Drop every entry whose instant fails ``keep``.

        Returns:
            Number of removed entries
        """
        kept = [entry for entry in self._entries if keep(entry.instant)]
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = []
            self._by_actor = {}
            for entry in kept:
                self.add(entry.event, entry.instant)
        return removed

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[IndexedEvent]:
        return iter(list(self._entries))
