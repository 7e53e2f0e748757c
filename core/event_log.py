"""
Event Log for Wand Protocol.

Contracts emit events for indexing; here every component appends to a shared log
that tests and simulations can inspect.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any

from atomic import Stateful

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A single emitted event."""
    name: str
    emitter: str
    args: Dict[str, Any] = field(default_factory=dict)


class EventLog(Stateful):
    """
    Append-only log of protocol events.

    Rolled back together with the rest of the state when a call reverts, so only
    events of committed calls remain.
    """

    def __init__(self):
        self.events = []

    def snapshot_state(self):
        return len(self.events)

    def restore_state(self, snapshot):
        del self.events[snapshot:]

    def emit(self, emitter, name, **args):
        event = Event(name, emitter, dict(args))
        self.events.append(event)
        logger.debug("%s.%s %s", emitter, name, args)
        return event

    def filter(self, name, emitter=None):
        """Returns all events with the given name, optionally from a single emitter."""
        return [e for e in self.events
                if e.name == name and (emitter is None or e.emitter == emitter)]

    def last(self, name, emitter=None):
        """Returns the most recent event with the given name, or None."""
        matches = self.filter(name, emitter)
        return matches[-1] if matches else None

    def clear(self):
        self.events = []
