"""
Tests for state projection.

Tests cover:
- Determinism
- set/overwrite/delete semantics
- Delete of an absent key is a no-op
- Delete-then-set resurrects the entry
"""
from datetime import datetime, timedelta, timezone

from kc.events import Event
from kc.projector import project

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def at(seconds: int) -> datetime:
    return T0 + timedelta(seconds=seconds)


class TestProject:
    """Tests for project()."""

    def test_empty(self):
        """Test no events project to empty state."""
        assert project([]) == {}

    def test_deterministic(self):
        """Test the same sequence always yields the same state."""
        events = [
            Event.set("env", "a", "t1", ts=at(0)),
            Event.set("env", "b", "t2", ts=at(1)),
            Event.delete("env", "a", ts=at(2)),
        ]
        assert project(events) == project(list(events))

    def test_set_overwrites(self):
        """Test a later set wins."""
        state = project([
            Event.set("env", "a", "old", ts=at(0)),
            Event.set("env", "a", "new", ts=at(1)),
        ])
        assert state["env:a"].value_token == "new"
        assert state["env:a"].timestamp == at(1)

    def test_delete_absent_is_noop(self):
        """Test deleting an unknown key leaves state untouched."""
        state = project([
            Event.set("env", "a", "t1", ts=at(0)),
            Event.delete("env", "zzz", ts=at(1)),
        ])
        assert list(state) == ["env:a"]

    def test_delete_then_set(self):
        """Test a set after a tombstone resurrects the key."""
        state = project([
            Event.set("env", "k", "v1", ts=at(0)),
            Event.delete("env", "k", ts=at(1)),
            Event.set("env", "k", "v2", ts=at(2)),
        ])
        assert list(state) == ["env:k"]
        assert state["env:k"].value_token == "v2"

    def test_duplicates_are_idempotent(self):
        """Test repeated events project like a single copy."""
        events = [
            Event.set("env", "a", "t1", ts=at(0)),
            Event.delete("env", "b", ts=at(1)),
        ]
        assert project(events + events) == project(events)

    def test_namespaces_are_separate(self):
        """Test same key in two namespaces are different entries."""
        state = project([
            Event.set("env", "gh", "t1", ts=at(0)),
            Event.set("token", "gh", "t2", ts=at(1)),
            Event.delete("env", "gh", ts=at(2)),
        ])
        assert list(state) == ["token:gh"]
        assert state["token:gh"].namespace == "token"
        assert state["token:gh"].identifier == "token:gh"
