"""
Per-device suppression of repeated panic uplinks.

A single press on a panic button is usually retransmitted several times at
the radio layer. Only the first copy should reach people.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from uplink_alerts.core.state.key_value_store import InMemoryKeyValueStore, KeyValueStore

log = logging.getLogger(__name__)

DEFAULT_PANIC_WINDOW_S = 30.0
MISSING_FRAME_COUNT = -1


@dataclass(frozen=True)
class PanicDedupEntry:
    """
    Last accepted panic for a device.

    Parameters
    ----------
    last_seen_at_ms
        Acceptance time in milliseconds.
    last_frame_count
        Frame count of that uplink, or ``MISSING_FRAME_COUNT``.
    """

    last_seen_at_ms: float
    last_frame_count: int


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class PanicDeduplicator:
    """
    Decide whether a panic uplink is new or a duplicate.

    An uplink is rejected when the device already has an accepted panic and
    either the frame count is the same (regardless of elapsed time) or less
    than ``window_s`` has passed without a known frame count change. A
    frame count that is present on both uplinks and differs marks a new
    press and is accepted immediately. Accepted uplinks become the device's
    new reference.

    Parameters
    ----------
    window_s
        Minimum spacing between accepted panics with different frame counts.
    store
        Keyed state shared by concurrent requests.
    clock
        Returns the current time in milliseconds.
    """

    window_s: float = DEFAULT_PANIC_WINDOW_S
    store: KeyValueStore[PanicDedupEntry] = field(default_factory=InMemoryKeyValueStore)
    clock: Callable[[], float] = _now_ms

    def allow(self, dev_eui: str, frame_count: Optional[int]) -> bool:
        """
        Return True if this panic should be forwarded.

        Parameters
        ----------
        dev_eui
            Device identifier (matched case-insensitively).
        frame_count
            Uplink frame count, or None if the payload had none.
        """
        now = self.clock()
        window_ms = self.window_s * 1000.0

        def _decide(prev: Optional[PanicDedupEntry]) -> Tuple[Optional[PanicDedupEntry], bool]:
            if prev is not None:
                if prev.last_frame_count == frame_count:
                    return None, False
                changed = (
                    frame_count is not None
                    and prev.last_frame_count != MISSING_FRAME_COUNT
                )
                if not changed and (now - prev.last_seen_at_ms) < window_ms:
                    return None, False
            fc = frame_count if frame_count is not None else MISSING_FRAME_COUNT
            return PanicDedupEntry(last_seen_at_ms=now, last_frame_count=fc), True

        accepted = self.store.update(dev_eui.lower(), _decide)
        if not accepted:
            log.info("[DEDUP] duplicate panic suppressed dev=%s fCnt=%s", dev_eui, frame_count)
        return accepted
