"""State projection: replay an ordered event sequence into current state."""
from datetime import datetime
from collections.abc import Iterable

from pydantic import BaseModel

from .events import Event


class Entry(BaseModel):
    """A live secret in the projected state."""

    model_config = {"frozen": True}

    namespace: str
    key: str
    value_token: str
    timestamp: datetime

    @property
    def identifier(self) -> str:
        return f"{self.namespace}:{self.key}"


def project(events: Iterable[Event]) -> dict[str, Entry]:
    """Replay ``events`` left to right.

    ``set`` inserts or overwrites the ``namespace:key`` entry, ``delete``
    removes it if present. Pure: equal sequences give equal state.

    Args:
        events: Events already in merge order.

    Returns:
        Mapping of ``namespace:key`` to its live :class:`Entry`.
    """
    state: dict[str, Entry] = {}
    for event in events:
        if event.op == "set":
            state[event.identifier] = Entry(
                namespace=event.ns,
                key=event.key,
                value_token=event.val,
                timestamp=event.ts,
            )
        else:
            state.pop(event.identifier, None)
    return state
