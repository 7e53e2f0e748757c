"""
Transaction Model for Wand Protocol.

Every state-mutating call on the protocol either fully commits or fully reverts.
Entities that take part in a call expose their plain state through `Stateful`, and
`atomic()` snapshots them on entry and restores them if the call raises.
"""

import copy
from contextlib import contextmanager


class Stateful:
    """
    Mixin for entities whose state can be snapshotted and restored.

    Subclasses list their mutable attributes in `_state_fields`. References to other
    entities must not be listed; only plain values, dicts and sets.
    """

    _state_fields = ()

    def snapshot_state(self):
        return {name: copy.deepcopy(getattr(self, name)) for name in self._state_fields}

    def restore_state(self, snapshot):
        for name, value in snapshot.items():
            setattr(self, name, value)


@contextmanager
def atomic(*entities):
    """
    Runs the enclosed block as a single all-or-nothing step.

    Args:
        entities: Stateful objects the block may mutate (None entries are ignored)

    Nested use is allowed; an inner failure that propagates also unwinds the outer block.
    """
    seen = set()
    snapshots = []
    for entity in entities:
        if entity is None or id(entity) in seen:
            continue
        seen.add(id(entity))
        snapshots.append((entity, entity.snapshot_state()))
    try:
        yield
    except Exception:
        for entity, snapshot in reversed(snapshots):
            entity.restore_state(snapshot)
        raise
