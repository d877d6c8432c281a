"""File-backed, append-only event store.

Events are buffered in memory and appended to one JSON array file per UTC
calendar day (analytics-YYYY-MM-DD.json). Appending is a read-modify-write of
the day-file, so every append holds an exclusive flock on a sidecar .lock
file for that day. Threads and processes writing the same directory are
serialized per day-file. The new array is written to a temporary file and
renamed over the old one, so readers never see a half-written file.

Tracking calls never raise into the caller. If an automatic flush fails, the
error is logged and kept as last_error, and the events stay buffered. An
explicit flush() raises StorageError. Events whose data cannot be serialized
are rejected when recorded, so they never reach the buffer.
"""

import fcntl
import json
import logging
import os
import threading
from collections.abc import Callable, Iterator
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from variantlab.collector.schemas import Event
from variantlab.collector.sink import EventSink
from variantlab.errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

FILE_PREFIX = "analytics-"
FILE_SUFFIX = ".json"
DEFAULT_DIRNAME = "carousel-analytics"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_relative_path(path: str) -> str:
    parts = []
    for segment in path.replace("\\", "/").strip("/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts) or DEFAULT_DIRNAME


def resolve_storage_path(storage_path: str | os.PathLike, base_path: str | os.PathLike | None = None) -> Path:
    """Resolve the storage directory, refusing paths that escape their base.

    With base_path, storage_path is taken relative to it and must stay under
    it. Without one, any '..' is rejected outright.
    """
    raw = os.fspath(storage_path)
    if base_path is not None:
        base = Path(base_path).resolve()
        if not base.is_dir():
            raise ConfigurationError(f"Base path does not exist or is not a directory: {base_path}")
        if Path(raw).is_absolute():
            raise ConfigurationError("Storage path must be relative when a base path is given")
        intended = base / _normalize_relative_path(raw)
        if intended != base and base not in intended.parents:
            raise ConfigurationError("Storage path must resolve under the base path")
        return intended

    if ".." in raw:
        raise ConfigurationError('Storage path must not contain ".."')
    cleaned = raw.replace("\\", "/").rstrip("/")
    if not cleaned:
        raise ConfigurationError("Storage path cannot be empty")
    return Path(cleaned).absolute()


class FileEventStore(EventSink):
    def __init__(
        self,
        storage_path: str | os.PathLike,
        base_path: str | os.PathLike | None = None,
        flush_threshold: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        if flush_threshold < 1:
            raise ConfigurationError("flush_threshold must be >= 1")
        self.path = resolve_storage_path(storage_path, base_path)
        self.flush_threshold = flush_threshold
        self.clock = clock
        self.last_error: StorageError | None = None
        self._buffer: list[Event] = []
        self._lock = threading.RLock()

        try:
            self.path.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create event storage directory {self.path}: {exc}") from exc
        if not os.access(self.path, os.W_OK | os.X_OK):
            raise StorageError(f"Event storage directory is not writable: {self.path}")
        self.path = self.path.resolve()
        logger.info("Event store ready at %s", self.path)

    # --- EventSink ---

    def track_impression(self, entity_id: str, slide_index: int) -> None:
        self._track(Event.impression(entity_id, slide_index, self._timestamp()))

    def track_click(self, entity_id: str, slide_index: int, url: str | None = None) -> None:
        self._track(Event.click(entity_id, slide_index, self._timestamp(), url=url))

    def track_interaction(
        self,
        entity_id: str,
        interaction_type: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        self._track(Event.interaction(entity_id, interaction_type, self._timestamp(), data))

    def _track(self, event: Event) -> None:
        try:
            self.record(event)
        except ConfigurationError as exc:
            logger.warning("Dropping %s event for %s: %s", event.event.value, event.entity_id, exc)

    # --- Buffering ---

    def record(self, event: Event) -> None:
        """Buffer an already-built event, flushing when the threshold is hit.

        Raises ConfigurationError if the event cannot be serialized to JSON;
        such an event is never buffered.
        """
        try:
            json.dumps(event.to_record())
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Event data is not JSON serializable: {exc}") from exc
        with self._lock:
            self._buffer.append(event)
            if len(self._buffer) < self.flush_threshold:
                return
            try:
                self.flush()
            except StorageError as exc:
                logger.warning("Automatic flush failed, %d events kept buffered: %s",
                               len(self._buffer), exc)

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def flush(self) -> int:
        """Write every buffered event to its day-file. Returns the number written.

        Raises StorageError if any day-file cannot be written; events for the
        days that failed stay buffered for the next flush.
        """
        with self._lock:
            if not self._buffer:
                return 0
            by_day: dict[date, list[Event]] = {}
            for event in self._buffer:
                by_day.setdefault(event.occurred_at.date(), []).append(event)

            written = 0
            remaining = list(by_day)
            try:
                for day in list(remaining):
                    self._append_to_day(day, by_day[day])
                    written += len(by_day[day])
                    remaining.remove(day)
            except StorageError as exc:
                self.last_error = exc
                raise
            finally:
                # Days already on disk must never be written twice
                self._buffer = [e for day in remaining for e in by_day[day]]

            self.last_error = None
            logger.debug("Flushed %d events across %d day-files", written, len(by_day))
            return written

    def close(self) -> None:
        self.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # --- Day-files ---

    def day_file(self, day: date) -> Path:
        return self.path / f"{FILE_PREFIX}{day.isoformat()}{FILE_SUFFIX}"

    def days(self) -> list[date]:
        """Dates that have a day-file, oldest first."""
        found = []
        for p in self.path.glob(f"{FILE_PREFIX}*{FILE_SUFFIX}"):
            stem = p.name[len(FILE_PREFIX):-len(FILE_SUFFIX)]
            try:
                found.append(date.fromisoformat(stem))
            except ValueError:
                continue
        return sorted(found)

    def read_day(self, day: date) -> list[Event]:
        """Events in one day-file, in write order.

        A missing file yields no events. A file that is not a JSON array is
        logged and treated as empty, so reports undercount rather than fail.
        """
        path = self.day_file(day)
        if not path.exists():
            return []
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Cannot read day-file {path}: {exc}") from exc

        records = self._parse_records(path, content)
        events = []
        for record in records:
            try:
                events.append(Event.model_validate(record))
            except ValidationError:
                logger.debug("Skipping malformed record in %s: %r", path.name, record)
        return events

    def iter_events(self, first_day: date, last_day: date) -> Iterator[Event]:
        day = first_day
        while day <= last_day:
            yield from self.read_day(day)
            day += timedelta(days=1)

    def _append_to_day(self, day: date, events: list[Event]) -> None:
        path = self.day_file(day)
        lock_path = path.with_name(path.name + ".lock")
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            with open(lock_path, "a") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    records = self._load_for_append(path)
                    records.extend(e.to_record() for e in events)
                    tmp_path.write_text(json.dumps(records, indent=2))
                    os.replace(tmp_path, path)
                finally:
                    tmp_path.unlink(missing_ok=True)
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError as exc:
            raise StorageError(f"Cannot append to day-file {path}: {exc}") from exc

    def _load_for_append(self, path: Path) -> list:
        if not path.exists():
            return []
        content = path.read_bytes()
        try:
            records = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            records = None
        if isinstance(records, list):
            return records

        # Keep the unreadable file for inspection instead of overwriting it
        stamp = f"{int(self.clock().timestamp())}-{os.getpid()}"
        aside = path.with_name(f"{path.name}.corrupt-{stamp}")
        n = 1
        while aside.exists():
            aside = path.with_name(f"{path.name}.corrupt-{stamp}-{n}")
            n += 1
        os.replace(path, aside)
        logger.warning("Day-file %s is not a UTF-8 JSON array, moved aside to %s", path.name, aside.name)
        return []

    @staticmethod
    def _parse_records(path: Path, content: bytes) -> list:
        try:
            records = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Day-file %s is not valid UTF-8 JSON, skipping it", path.name)
            return []
        if not isinstance(records, list):
            logger.warning("Day-file %s does not hold a JSON array, skipping it", path.name)
            return []
        return records

    def _timestamp(self) -> int:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return int(now.timestamp())
