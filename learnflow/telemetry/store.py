"""
Telemetry Store

Durable, append-only event log backed by a line-delimited JSON file, with
an in-memory index that serves every read.

Write path:
- the event is validated (timestamp must parse and be within retention);
  invalid events are dropped and logged, never raised
- the in-memory index is updated
- the JSON line is appended while holding the write lock, so appends from
  concurrent ``record`` calls are applied one at a time in arrival order
- dashboard cache entries are invalidated

Durable append failures are logged and swallowed; the event stays visible
in the index for the lifetime of the process.
"""

import os
import asyncio
import calendar
import datetime
import hashlib
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as SchemaValidationError

from learnflow.common.logger import app_logger
from learnflow.common.exceptions import ValidationError
from learnflow.common.cache.dashboard import DashboardCache
from learnflow.telemetry.events import (
    TelemetryEventBase,
    dump_event,
    parse_event,
    parse_event_json,
)
from learnflow.telemetry.index import EventIndex, IndexedEvent, TimeRange

logger = app_logger.getChild("telemetry.store")

DEFAULT_SALT = "learnflow-default-salt"


class Period(str, Enum):
    """Reporting window."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    A trailing ``Z`` is accepted and naive values are taken as UTC.

    Returns:
        The parsed instant, or None if the value is not a valid timestamp
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    try:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.timezone.utc)
        return parsed.astimezone(datetime.timezone.utc)
    except (ValueError, OverflowError):
        return None


def _months_back(moment: datetime.datetime, months: int) -> datetime.datetime:
    year = moment.year
    month = moment.month - months
    while month < 1:
        month += 12
        year -= 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_to_range(period: Union[Period, str], now: Optional[datetime.datetime] = None) -> TimeRange:
    """
    Turn a reporting period into the window ending at ``now``.

    Args:
        period: ``day`` (one day back), ``week`` (seven days) or ``month``
            (one calendar month, day clamped to the month length)
        now: End of the window (defaults to the current time)

    Raises:
        ValidationError: If the period is unknown
    """
    try:
        period = Period(period)
    except ValueError as e:
        raise ValidationError(f"unknown period {period!r}", {"period": str(period)}) from e

    end = now or utc_now()
    if period is Period.DAY:
        start = end - datetime.timedelta(days=1)
    elif period is Period.WEEK:
        start = end - datetime.timedelta(days=7)
    else:
        start = _months_back(end, 1)
    return TimeRange(start, end)


def previous_range(period: Union[Period, str], current: TimeRange) -> TimeRange:
    """The window of the same period ending where ``current`` starts."""
    return period_to_range(period, current.start)


class TelemetryStore:
    """
    Event log with durable JSONL storage and an in-memory index.

    Instances are created by the application container and shared by
    reference; nothing here is a module-level singleton.
    """

    def __init__(
        self,
        file_path: Union[str, Path] = "data/telemetry.jsonl",
        retention_days: int = 365,
        cache: Optional[DashboardCache] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        salt: str = DEFAULT_SALT,
    ):
        """
        Initialize the store. Nothing is read until the first operation.

        Args:
            file_path: Path of the JSONL log file
            retention_days: Events older than this are rejected and pruned
            cache: Dashboard cache to invalidate after every write
            clock: Source of the current time
            salt: Salt used by ``anonymize``
        """
        self.file_path = Path(file_path)
        self.retention_days = retention_days
        self.cache = cache
        self.salt = salt or DEFAULT_SALT
        self._clock = clock
        self._index = EventIndex()
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._last_ingest_at: Optional[datetime.datetime] = None

    def now(self) -> datetime.datetime:
        """Current time according to the store clock."""
        return self._clock()

    @property
    def last_ingest_at(self) -> Optional[datetime.datetime]:
        return self._last_ingest_at

    def anonymize(self, raw_id: str) -> str:
        """Salted SHA-256 hex digest of a caller-supplied pseudonymous id."""
        return hashlib.sha256(f"{self.salt}:{raw_id}".encode("utf-8")).hexdigest()

    def _retention_cutoff(self) -> datetime.datetime:
        return self._clock() - datetime.timedelta(days=self.retention_days)

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            async with self._write_lock:
                entries, dropped = await asyncio.to_thread(self._load, self._retention_cutoff())
                self._index = EventIndex(entries)
                if dropped:
                    logger.info(f"Compacting telemetry log: dropped {dropped} records on load")
                    try:
                        await asyncio.to_thread(self._rewrite, [entry.event for entry in entries])
                    except OSError as e:
                        logger.warning(f"Telemetry compaction failed: {e}")
            self._initialized = True
            logger.debug(f"Telemetry store loaded {len(self._index)} events from {self.file_path}")

    def _load(self, cutoff: datetime.datetime) -> Tuple[List[IndexedEvent], int]:
        """Read the log file, skipping corrupt and expired records."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "rb") as f:
                lines = [line for line in f.read().split(b"\n") if line.strip()]
        except FileNotFoundError:
            return [], 0
        except OSError as e:
            logger.warning(f"Telemetry load failed: {e}")
            return [], 0

        entries: List[IndexedEvent] = []
        corrupt = 0
        for line in lines:
            try:
                event = parse_event_json(line.decode("utf-8"))
            except ValueError:
                corrupt += 1
                continue
            instant = parse_timestamp(event.timestamp)
            if instant is None:
                corrupt += 1
                continue
            if instant < cutoff:
                continue
            entries.append(IndexedEvent(event, instant))

        if corrupt:
            logger.warning(f"Skipped {corrupt} unreadable telemetry records in {self.file_path}")
        return entries, len(lines) - len(entries)

    def _rewrite(self, events: List[TelemetryEventBase]) -> None:
        """Replace the log file atomically with ``events``."""
        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        content = "".join(dump_event(event) + "\n" for event in events)
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.file_path)

    def _append(self, line: str) -> None:
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _touch(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.file_path, "a", encoding="utf-8"):
            pass

    async def record(self, event: Union[TelemetryEventBase, Mapping[str, Any]]) -> bool:
        """
        Append one event to the log.

        Args:
            event: An event model, or a raw mapping to validate

        Returns:
            True if the event was accepted, False if it was dropped
        """
        await self._ensure_initialized()

        if not isinstance(event, TelemetryEventBase):
            try:
                event = parse_event(event)
            except SchemaValidationError as e:
                logger.debug(f"Dropping malformed telemetry event: {e.error_count()} validation errors")
                return False

        instant = parse_timestamp(event.timestamp)
        if instant is None:
            logger.debug(f"Dropping {event.kind} event with invalid timestamp {event.timestamp!r}")
            return False
        if instant < self._retention_cutoff():
            logger.debug(f"Dropping {event.kind} event outside retention window")
            return False

        self._index.add(event, instant)
        self._last_ingest_at = self._clock()

        line = dump_event(event)
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError as e:
                logger.warning(f"Telemetry append failed: {e}")

        if self.cache is not None:
            await self.cache.invalidate_cache(f"{self.cache.namespace}:")
        return True

    async def query(self, time_range: TimeRange, kinds: Optional[Iterable[str]] = None) -> List[TelemetryEventBase]:
        """
        Events in the inclusive range, in arrival order.

        Args:
            time_range: Window to scan
            kinds: Kinds to keep (all kinds when None)
        """
        await self._ensure_initialized()
        return [entry.event for entry in self._index.scan(time_range, kinds)]

    async def get_recent(self, limit: int, time_range: TimeRange) -> List[TelemetryEventBase]:
        """The ``limit`` newest events in range, newest first."""
        await self._ensure_initialized()
        entries = sorted(self._index.scan(time_range), key=lambda entry: entry.instant, reverse=True)
        return [entry.event for entry in entries[:max(0, limit)]]

    async def events_for_actor(self, actor_hash: str, kinds: Optional[Iterable[str]] = None) -> List[TelemetryEventBase]:
        """All retained events of one actor, in arrival order."""
        await self._ensure_initialized()
        return [entry.event for entry in self._index.for_actor(actor_hash, kinds)]

    async def actors(self) -> List[str]:
        await self._ensure_initialized()
        return self._index.actors()

    async def purge_old(self) -> int:
        """
        Drop events that fell out of the retention window and compact the file.

        Returns:
            Number of removed events
        """
        await self._ensure_initialized()
        async with self._write_lock:
            cutoff = self._retention_cutoff()
            removed = self._index.prune(lambda instant: instant >= cutoff)
            if not removed:
                return 0
            try:
                await asyncio.to_thread(self._rewrite, [entry.event for entry in self._index])
            except OSError as e:
                logger.warning(f"Telemetry purge rewrite failed: {e}")
        logger.info(f"Purged {removed} telemetry events older than {self.retention_days} days")
        if self.cache is not None:
            await self.cache.invalidate_cache(f"{self.cache.namespace}:")
        return removed

    async def is_writable(self) -> bool:
        """Liveness check: the storage directory exists and the file accepts appends."""
        try:
            await self._ensure_initialized()
            await asyncio.to_thread(self._touch)
            return True
        except OSError as e:
            logger.warning(f"Telemetry storage not writable: {e}")
            return False

    def __len__(self) -> int:
        return len(self._index)
