from __future__ import annotations

from typing import FrozenSet, Optional

from uplink_alerts.domain.models import EventKind

# Only these kinds warrant waking someone up.
NOTIFY_KINDS: FrozenSet[EventKind] = frozenset(
    {EventKind.PANIC, EventKind.WALL_REMOVE, EventKind.WALL_RESTORE}
)


def should_notify(kind: Optional[EventKind]) -> bool:
    """Return True if an alert should be dispatched for ``kind``."""
    return kind in NOTIFY_KINDS
