"""
Event Log -- Typed event records and the append-only log file.

One event per line:

    {"ts": "2024-05-01T10:00:00.123Z", "op": "set", "ns": "env", "key": "app", "val": "<token>"}
    {"ts": "2024-05-01T10:05:00.000Z", "op": "delete", "ns": "env", "key": "app"}

Lines are parsed independently. A malformed line is logged and skipped,
it never aborts a read: a sync tool may leave a half-written line behind.

Security Note:
    Never log ``val``. Only log file names, line numbers and identifiers.
"""
import os
import logging
import tempfile
from pathlib import Path
from typing import Literal, Optional, Union
from collections.abc import Iterable
from datetime import datetime, timezone

import orjson
from pydantic import (
    BaseModel,
    ValidationError as ModelValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ParseError, StorageError

logger = logging.getLogger("kc.events")

Operation = Literal["set", "delete"]


def utcnow() -> datetime:
    """Current UTC time truncated to millisecond resolution."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(ts: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with milliseconds (``...123Z``)."""
    ts = ts.astimezone(timezone.utc)
    return ts.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


class Event(BaseModel):
    """A single set/delete record of the event log."""

    model_config = {"frozen": True}

    ts: datetime
    op: Operation
    ns: str
    key: str
    val: Optional[str] = None

    @field_validator("ts")
    @classmethod
    def normalize_ts(cls, v: datetime) -> datetime:
        """Force UTC and millisecond resolution; naive values are UTC."""
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        try:
            v = v.astimezone(timezone.utc)
        except OverflowError as err:
            raise ValueError(f"timestamp out of range: {err}") from err
        return v.replace(microsecond=(v.microsecond // 1000) * 1000)

    @field_validator("ns", "key")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("namespace and key cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_payload(self) -> "Event":
        """``val`` is present iff the operation is ``set``."""
        if self.op == "set" and self.val is None:
            raise ValueError("set event requires a value token")
        if self.op == "delete" and self.val is not None:
            raise ValueError("delete event cannot carry a value token")
        return self

    @property
    def identifier(self) -> str:
        return f"{self.ns}:{self.key}"

    @classmethod
    def set(
        cls, namespace: str, key: str, token: str, ts: Optional[datetime] = None
    ) -> "Event":
        return cls(ts=ts or utcnow(), op="set", ns=namespace, key=key, val=token)

    @classmethod
    def delete(
        cls, namespace: str, key: str, ts: Optional[datetime] = None
    ) -> "Event":
        return cls(ts=ts or utcnow(), op="delete", ns=namespace, key=key)

    def to_line(self) -> bytes:
        """Serialize to one JSON line (without the trailing newline)."""
        record = {
            "ts": format_timestamp(self.ts),
            "op": self.op,
            "ns": self.ns,
            "key": self.key,
        }
        if self.val is not None:
            record["val"] = self.val
        return orjson.dumps(record)

    @classmethod
    def from_line(cls, line: Union[str, bytes]) -> "Event":
        """Parse one JSON line.

        Raises:
            ParseError: If the line is not valid JSON or not a valid event.
        """
        try:
            return cls.model_validate(orjson.loads(line))
        except orjson.JSONDecodeError as err:
            raise ParseError(f"invalid JSON: {err}") from err
        except OverflowError as err:
            raise ParseError(f"invalid event: {err}") from err
        except ModelValidationError as err:
            raise ParseError(
                f"invalid event: {err.error_count()} validation error(s)"
            ) from err


class EventLog:
    """Append-only log of events stored in a single file.

    Args:
        path: Location of the log file. Parent directories are created on
            first write.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._last_ts: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"<EventLog {self.path}>"

    def observe(self, ts: datetime) -> None:
        if self._last_ts is None or ts > self._last_ts:
            self._last_ts = ts

    def next_timestamp(self) -> datetime:
        """Timestamp for the next append.

        Never earlier than the latest timestamp this log has written or
        read, so a replica's own events stay in order even if the wall
        clock steps back.
        """
        now = utcnow()
        if self._last_ts is not None and now < self._last_ts:
            return self._last_ts
        return now

    def _restrict(self) -> None:
        try:
            self.path.chmod(0o600)  # Owner read/write only
        except OSError:
            logger.warning("Could not set permissions on event log: %s", self.path)

    def ensure(self) -> None:
        """Create an empty log file if none exists (idempotent)."""
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as err:
            raise StorageError(f"Cannot create event log {self.path}: {err}") from err
        self._restrict()
        logger.info("Created event log %s", self.path)

    def append(self, event: Event) -> None:
        """Append one event and fsync before returning.

        The record is serialized before the file is touched, so a failure
        never leaves a partial event behind.
        """
        record = event.to_line() + b"\n"
        created = not self.path.exists()
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with open(self.path, "a+b") as f:
                size = f.seek(0, os.SEEK_END)
                if size:
                    f.seek(size - 1)
                    if f.read(1) != b"\n":
                        # previous writer died mid-line; keep records separate
                        record = b"\n" + record
                f.write(record)
                f.flush()
                os.fsync(f.fileno())
        except OSError as err:
            raise StorageError(f"Cannot append to event log {self.path}: {err}") from err
        if created:
            self._restrict()
        self.observe(event.ts)
        logger.debug("Appended %s %s to %s", event.op, event.identifier, self.path.name)

    def read_all(self) -> list[Event]:
        """Read every parseable event in file order.

        Returns:
            List of events; empty if the file does not exist.
        """
        return read_events(self.path, observer=self.observe)

    def rewrite(self, events: Iterable[Event]) -> None:
        """Atomically replace the log content with ``events``."""
        data = b"".join(event.to_line() + b"\n" for event in events)
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            tmp_path = Path(tmp)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o600)
                tmp_path.replace(self.path)
            finally:
                if tmp_path.exists():
                    tmp_path.unlink()
        except OSError as err:
            raise StorageError(f"Cannot rewrite event log {self.path}: {err}") from err


def read_events(path: Path, observer=None) -> list[Event]:
    """Parse events from ``path``, skipping malformed lines.

    Args:
        path: Log or replica file.
        observer: Optional callable invoked with each parsed timestamp.

    Raises:
        StorageError: If the file exists but cannot be read.
    """
    events: list[Event] = []
    try:
        with open(path, "rb") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return events
    except OSError as err:
        raise StorageError(f"Cannot read event log {path}: {err}") from err
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            event = Event.from_line(line)
        except ParseError as err:
            logger.warning("Skipping line %d of %s: %s", lineno, path.name, err)
            continue
        if observer is not None:
            observer(event.ts)
        events.append(event)
    return events
