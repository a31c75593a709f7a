"""
Event classification.

Device firmware and the network-server codec changed encodings several
times. Classification runs an ordered chain of stateless rules over the
decoded object; the first rule that returns a label wins. New encodings are
added as new rules without touching the older ones.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence

from uplink_alerts.domain.models import EventKind

DecodedObject = Optional[Mapping[str, Any]]
LabelRule = Callable[[Mapping[str, Any]], Optional[str]]

EVENT_FIELD = "event"
PANIC_FLAG_FIELD = "panic"
RAW_FLAGS_FIELD = "flags"


def explicit_label(obj: Mapping[str, Any]) -> Optional[str]:
    """Codec (TLV) objects carry the label verbatim in ``event``."""
    v = obj.get(EVENT_FIELD)
    if v is None or v == "":
        return None
    return str(v)


def legacy_panic_flag(obj: Mapping[str, Any]) -> Optional[str]:
    """Older codecs only reported ``panic: true``."""
    if obj.get(PANIC_FLAG_FIELD) is True:
        return EventKind.PANIC.value
    return None


def raw_flag_byte(obj: Mapping[str, Any]) -> Optional[str]:
    """Raw single-byte payloads: bit 0 set means panic."""
    v = obj.get(RAW_FLAGS_FIELD)
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    if v & 0x01:
        return EventKind.PANIC.value
    return None


DEFAULT_RULES: Sequence[LabelRule] = (
    explicit_label,
    legacy_panic_flag,
    raw_flag_byte,
)


def resolve_label(obj: DecodedObject, rules: Sequence[LabelRule] = DEFAULT_RULES) -> Optional[str]:
    """
    Run the rule chain and return the raw event label.

    Parameters
    ----------
    obj
        Decoded object, may be None.
    rules
        Ordered rules; first non-None result wins.

    Returns
    -------
    str or None
        Raw label, or None when no rule matched.
    """
    if not isinstance(obj, Mapping):
        return None
    for rule in rules:
        label = rule(obj)
        if label is not None:
            return label
    return None


def classify(obj: DecodedObject, rules: Sequence[LabelRule] = DEFAULT_RULES) -> EventKind:
    """
    Classify a decoded object into an `EventKind`.

    Unrecognised labels and objects no rule matches both yield
    ``EventKind.UNKNOWN``; this function never raises.
    """
    return EventKind.from_label(resolve_label(obj, rules))
