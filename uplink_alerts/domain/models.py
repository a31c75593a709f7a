"""
Domain models and enums.

This module defines the core domain-level types used across the uplink
pipeline:
- Event kinds recognised from device payloads
- Gateway reception records and their optional location
- The canonical `DeviceEvent` produced from any supported payload shape
- Per-recipient delivery outcomes reported back to the uplink sender

These are designed as immutable (frozen) dataclasses where appropriate to
support safe sharing across request threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence


class EventKind(str, Enum):
    """
    Semantic meaning of a device uplink.

    Members
    -------
    PANIC : str
        Panic button was pressed.
    WALL_REMOVE : str
        Tamper sensor reports the device was taken off the wall.
    WALL_RESTORE : str
        Tamper sensor reports the device is back on the wall.
    LOW_BATTERY : str
        Device battery is running low.
    ALIVE : str
        Periodic keep-alive.
    UNKNOWN : str
        No label, or a label this system does not recognise.
    """

    PANIC = "panic"
    WALL_REMOVE = "wall_remove"
    WALL_RESTORE = "wall_restore"
    LOW_BATTERY = "low_battery"
    ALIVE = "alive"
    UNKNOWN = "unknown"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "EventKind":
        """
        Map a raw event label onto a member, unknown labels included.

        Parameters
        ----------
        label
            Raw label as found in the decoded object (may be None).

        Returns
        -------
        EventKind
            Matching member, or ``UNKNOWN``.
        """
        if label is None:
            return cls.UNKNOWN
        try:
            return cls(str(label))
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class GatewayLocation:
    """Latitude/longitude reported by a gateway."""
    latitude: float
    longitude: float

    def map_url(self) -> str:
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


@dataclass(frozen=True)
class ReceptionRecord:
    """
    Metadata from one gateway that received an uplink.

    Parameters
    ----------
    gateway_id
        Gateway identifier, when reported.
    snr
        Signal-to-noise ratio (higher is better). None if not reported.
    rssi
        Received signal strength, informational only.
    location
        Gateway location, when reported with numeric coordinates.
    """

    gateway_id: Optional[str] = None
    snr: Optional[float] = None
    rssi: Optional[float] = None
    location: Optional[GatewayLocation] = None


@dataclass(frozen=True)
class DeviceEvent:
    """
    Canonical event produced from one inbound uplink notification.

    Parameters
    ----------
    dev_eui
        Device identifier as received ("UNKNOWN" when absent).
    dev_name
        Display name; falls back to ``dev_eui``.
    frame_count
        Uplink frame counter. None means the payload carried none.
    decoded_object
        Codec-decoded fields, or None when nothing could be decoded.
    receive_info
        Gateway reception records in the order they were reported.
    raw_event_tag
        Transport-level event label ("up", "join", ...). Informational only.
    received_at
        Receive time reported by the network server, if any.
    """

    dev_eui: str
    dev_name: str
    frame_count: Optional[int] = None
    decoded_object: Optional[Mapping[str, Any]] = None
    receive_info: Sequence[ReceptionRecord] = field(default_factory=tuple)
    raw_event_tag: str = "up"
    received_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        """Lower-cased device identifier used for matching."""
        return self.dev_eui.lower()

    @property
    def battery_mv(self) -> Optional[float]:
        """Battery voltage in millivolts if the codec reported one."""
        if not self.decoded_object:
            return None
        v = self.decoded_object.get("battery_mv")
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return v


@dataclass(frozen=True)
class DeliveryOutcome:
    """
    Result of delivering (or not delivering) one message.

    Parameters
    ----------
    to
        Recipient address. Empty for a warning outcome.
    status
        "sent", "failed" or "warning".
    message_id
        Provider delivery identifier when sent.
    error
        Human-readable reason when failed or warning.
    """

    to: str
    status: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"to": self.to, "ok": self.ok}
        if self.message_id is not None:
            out["sid"] = self.message_id
        if self.error is not None:
            out["error"] = self.error
        return out
