"""
Conflict Merger -- Fold sync-tool conflict copies back into the primary log.

File-sync tools do not lock: when two devices append to the log while
offline, the tool keeps one version and materializes the other next to it
under a "conflicted" name. Examples for a primary log ``events.jsonl``:

    events (laptop's conflicted copy 2024-05-01).jsonl   Dropbox
    events.sync-conflict-20240501-101500-7Q2XOBD.jsonl   Syncthing
    events 2.jsonl                                       iCloud Drive
    events (1).jsonl                                     Google Drive

Merging concatenates the primary and every replica, stably sorts the
result by timestamp and rewrites the primary. Equal timestamps keep
primary events first, then replicas in discovery order (file name order),
then line order. Duplicates are kept; they replay idempotently.

Limitation:
    Rewrite and replica deletion are two steps. A crash in between leaves
    replicas on disk that get merged again on the next read, which only
    duplicates events already in the primary.
"""
import re
import logging
from pathlib import Path
from itertools import chain

from pydantic import BaseModel, Field

from .events import EventLog, read_events
from .exceptions import StorageError

logger = logging.getLogger("kc.merge")

_CONFLICT_MARKERS = (
    re.compile(r"conflict", re.IGNORECASE),  # Dropbox, Syncthing, generic
    re.compile(r"^ \d+$"),  # iCloud Drive
    re.compile(r"^ \(\d+\)$"),  # Google Drive
)


def is_replica_of(primary: Path, candidate: Path) -> bool:
    """Whether ``candidate`` is a conflict copy of ``primary``."""
    if candidate.parent != primary.parent or candidate.name == primary.name:
        return False
    stem, suffix, name = primary.stem, primary.suffix, candidate.name
    if not name.startswith(stem) or not name.endswith(suffix):
        return False
    if len(name) <= len(stem) + len(suffix):
        return False
    marker = name[len(stem):len(name) - len(suffix)]
    return any(pattern.search(marker) for pattern in _CONFLICT_MARKERS)


def find_replicas(primary: Path) -> list[Path]:
    """List conflict copies of ``primary``, sorted by file name."""
    directory = primary.parent
    if not directory.is_dir():
        return []
    try:
        candidates = list(directory.iterdir())
    except OSError as err:
        raise StorageError(f"Cannot list {directory}: {err}") from err
    return sorted(
        (path for path in candidates if path.is_file() and is_replica_of(primary, path)),
        key=lambda path: path.name,
    )


class MergeResult(BaseModel):
    """Outcome of one merge pass."""

    replicas: list[Path] = Field(default_factory=list)
    events: int = 0

    @property
    def merged(self) -> bool:
        return bool(self.replicas)


class ConflictMerger:
    """Reconcile a primary event log with its sibling conflict copies.

    Args:
        log: Primary event log.
    """

    def __init__(self, log: EventLog):
        self.log = log

    def find_replicas(self) -> list[Path]:
        return find_replicas(self.log.path)

    def merge(self) -> MergeResult:
        """Merge every replica into the primary log and delete the replicas.

        Returns:
            MergeResult listing the replicas folded in and the number of
            events written to the primary. The primary is left untouched
            when there is nothing to merge.
        """
        replicas = self.find_replicas()
        if not replicas:
            return MergeResult()

        sources = [self.log.read_all()]
        for replica in replicas:
            sources.append(read_events(replica, observer=self.log.observe))
        # sorted() is stable: ties keep primary, then replica order, then line order
        merged = sorted(chain.from_iterable(sources), key=lambda event: event.ts)

        self.log.rewrite(merged)
        for replica in replicas:
            try:
                replica.unlink()
            except FileNotFoundError:
                # already merged by a concurrent reader
                continue
            except OSError as err:
                raise StorageError(f"Cannot remove replica {replica}: {err}") from err

        logger.info(
            "Merged %d replica(s) into %s (%d events)",
            len(replicas), self.log.path.name, len(merged),
        )
        return MergeResult(replicas=replicas, events=len(merged))
