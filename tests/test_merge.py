"""
Tests for conflict copy discovery and merging.

Tests cover:
- Replica naming conventions (Dropbox, Syncthing, iCloud, Google Drive)
- Merge sorts by timestamp, rewrites the primary, removes replicas
- Tie-break: primary before replicas, replicas in file name order
- Order independence when timestamps do not tie
- Malformed replica lines are skipped
"""
from datetime import datetime, timedelta, timezone

import pytest

from kc.events import Event, EventLog
from kc.merge import ConflictMerger, find_replicas, is_replica_of
from kc.projector import project

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def at(seconds: int) -> datetime:
    return T0 + timedelta(seconds=seconds)


def write(path, events, extra: bytes = b""):
    path.write_bytes(b"".join(e.to_line() + b"\n" for e in events) + extra)


@pytest.fixture
def log(tmp_path):
    return EventLog(tmp_path / "events.jsonl")


class TestReplicaDiscovery:
    """Tests for sibling conflict copy detection."""

    @pytest.mark.parametrize("name", [
        "events (laptop's conflicted copy 2024-05-01).jsonl",
        "events.sync-conflict-20240501-101500-7Q2XOBD.jsonl",
        "events 2.jsonl",
        "events (1).jsonl",
        "events-CONFLICT.jsonl",
    ])
    def test_conflict_names(self, tmp_path, name):
        """Test known conflict naming conventions are recognised."""
        assert is_replica_of(tmp_path / "events.jsonl", tmp_path / name)

    @pytest.mark.parametrize("name", [
        "events.jsonl",
        "events.jsonl.bak",
        "events-archive.jsonl",
        "other (conflicted copy).jsonl",
        ".events.jsonl.tmp123",
        "events (conflicted copy).txt",
    ])
    def test_unrelated_names(self, tmp_path, name):
        """Test unrelated files are ignored."""
        assert not is_replica_of(tmp_path / "events.jsonl", tmp_path / name)

    def test_other_directory(self, tmp_path):
        """Test replicas must sit next to the primary."""
        assert not is_replica_of(
            tmp_path / "events.jsonl", tmp_path / "sub" / "events 2.jsonl"
        )

    def test_discovery_sorted_by_name(self, tmp_path):
        """Test discovery order is file name order."""
        for name in ("events.sync-conflict-b.jsonl", "events.sync-conflict-a.jsonl", "notes.txt"):
            (tmp_path / name).write_text("")
        found = find_replicas(tmp_path / "events.jsonl")
        assert [p.name for p in found] == [
            "events.sync-conflict-a.jsonl",
            "events.sync-conflict-b.jsonl",
        ]

    def test_missing_directory(self, tmp_path):
        """Test a missing directory has no replicas."""
        assert find_replicas(tmp_path / "nope" / "events.jsonl") == []


class TestMerge:
    """Tests for ConflictMerger.merge()."""

    def test_nothing_to_merge(self, log):
        """Test the primary is untouched without replicas."""
        write(log.path, [Event.set("env", "a", "t", ts=at(0))])
        before = log.path.read_bytes()
        result = ConflictMerger(log).merge()
        assert not result.merged
        assert log.path.read_bytes() == before

    def test_merge_interleaves_by_timestamp(self, log, tmp_path):
        """Test primary and replica events are sorted together."""
        write(log.path, [
            Event.set("env", "a", "t1", ts=at(0)),
            Event.set("env", "c", "t3", ts=at(2)),
        ])
        replica = tmp_path / "events (phone's conflicted copy).jsonl"
        write(replica, [
            Event.set("env", "b", "t2", ts=at(1)),
            Event.delete("env", "a", ts=at(3)),
        ])
        result = ConflictMerger(log).merge()
        assert result.replicas == [replica]
        assert result.events == 4
        assert not replica.exists()
        assert [e.ts for e in log.read_all()] == [at(0), at(1), at(2), at(3)]
        assert sorted(project(log.read_all())) == ["env:b", "env:c"]

    def test_primary_may_be_missing(self, log, tmp_path):
        """Test a replica alone becomes the primary."""
        write(tmp_path / "events 2.jsonl", [Event.set("env", "a", "t1", ts=at(0))])
        ConflictMerger(log).merge()
        assert [e.identifier for e in log.read_all()] == ["env:a"]

    def test_tie_break_primary_first(self, log, tmp_path):
        """Test equal timestamps keep primary events before replica events."""
        write(log.path, [Event.set("env", "k", "primary", ts=at(0))])
        write(tmp_path / "events.sync-conflict-b.jsonl", [Event.set("env", "k", "replica-b", ts=at(0))])
        write(tmp_path / "events.sync-conflict-a.jsonl", [Event.set("env", "k", "replica-a", ts=at(0))])
        ConflictMerger(log).merge()
        assert [e.val for e in log.read_all()] == ["primary", "replica-a", "replica-b"]
        assert project(log.read_all())["env:k"].value_token == "replica-b"

    def test_duplicates_kept(self, log, tmp_path):
        """Test no deduplication happens; state is unaffected."""
        events = [Event.set("env", "a", "t1", ts=at(0))]
        write(log.path, events)
        write(tmp_path / "events 2.jsonl", events)
        ConflictMerger(log).merge()
        assert len(log.read_all()) == 2
        assert list(project(log.read_all())) == ["env:a"]

    def test_malformed_replica_lines(self, log, tmp_path):
        """Test bad lines in a replica are dropped, good ones merged."""
        write(log.path, [Event.set("env", "a", "t1", ts=at(0))])
        write(
            tmp_path / "events 2.jsonl",
            [Event.set("env", "b", "t2", ts=at(1))],
            extra=b"garbage\n",
        )
        ConflictMerger(log).merge()
        assert [e.identifier for e in log.read_all()] == ["env:a", "env:b"]

    def test_order_independence(self, tmp_path):
        """Test swapping replica contents gives the same final state."""
        primary = [Event.set("env", "a", "t0", ts=at(0))]
        replica_x = [Event.set("env", "a", "x", ts=at(1)), Event.delete("env", "b", ts=at(4))]
        replica_y = [Event.set("env", "b", "y", ts=at(2)), Event.set("env", "a", "y", ts=at(3))]

        states = []
        for first, second in ((replica_x, replica_y), (replica_y, replica_x)):
            directory = tmp_path / f"run{len(states)}"
            directory.mkdir()
            log = EventLog(directory / "events.jsonl")
            write(log.path, primary)
            write(directory / "events.sync-conflict-A.jsonl", first)
            write(directory / "events.sync-conflict-B.jsonl", second)
            ConflictMerger(log).merge()
            states.append(project(log.read_all()))

        assert states[0] == states[1]
        assert states[0]["env:a"].value_token == "y"
        assert "env:b" not in states[0]

    def test_rewrite_keeps_early_year_events(self, log, tmp_path):
        """Test an event dated before year 1000 survives the rewrite."""
        log.path.write_bytes(b'{"ts":"0999-01-01T00:00:00.000Z","op":"delete","ns":"env","key":"a"}\n')
        (tmp_path / "events 2.jsonl").write_bytes(b"")
        assert len(log.read_all()) == 1
        ConflictMerger(log).merge()
        assert [e.ts.year for e in log.read_all()] == [999]
