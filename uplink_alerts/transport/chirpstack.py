"""
Uplink payload normalisation.

The network server has sent several incompatible JSON shapes over time
(v3 top-level fields, v4 ``deviceInfo`` block, codec objects, raw base64
data). Each logical field is read through one ordered fallback list of
paths declared below; adding a new shape means appending a path, never a new
code branch.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from uplink_alerts.domain.errors import MalformedPayload
from uplink_alerts.domain.models import DeviceEvent, GatewayLocation, ReceptionRecord

Path = Tuple[str, ...]

DEV_EUI_PATHS: Sequence[Path] = (
    ("deviceInfo", "devEui"),
    ("deviceInfo", "devEUI"),
    ("devEUI",),
    ("devEui",),
)
DEV_NAME_PATHS: Sequence[Path] = (
    ("deviceInfo", "deviceName"),
    ("deviceInfo", "name"),
    ("deviceName",),
)
FRAME_COUNT_PATHS: Sequence[Path] = (
    ("fCnt",),
    ("fCntUp",),
    ("uplinkMetaData", "fCnt"),
)
DECODED_PATHS: Sequence[Path] = (
    ("object",),
    ("decoded",),
)
DECODED_JSON_PATHS: Sequence[Path] = (("objectJSON",),)
RAW_DATA_PATHS: Sequence[Path] = (("data",),)
RX_INFO_PATHS: Sequence[Path] = (
    ("rxInfo",),
    ("rx_info",),
)
TIME_PATHS: Sequence[Path] = (("time",),)
RX_TIME_KEYS: Sequence[str] = ("nsTime", "gwTime", "time")

UNKNOWN_DEV_EUI = "UNKNOWN"

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_INT_RE = re.compile(r"-?[0-9]+")


def _dig(body: Mapping[str, Any], path: Path) -> Any:
    cur: Any = body
    for key in path:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(key)
    return cur


def first_present(body: Mapping[str, Any], paths: Sequence[Path]) -> Any:
    """
    Return the first value found along ``paths`` that is neither None nor "".

    Parameters
    ----------
    body
        Parsed uplink body.
    paths
        Ordered key paths, most preferred first.

    Returns
    -------
    Any
        The value, or None when no path yields one.
    """
    for path in paths:
        v = _dig(body, path)
        if v is not None and v != "":
            return v
    return None


def _to_int(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str) and _INT_RE.fullmatch(v.strip()):
        return int(v.strip())
    return None


def _to_float(v: Any) -> Optional[float]:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    return float(v)


def parse_time(v: Any) -> Optional[datetime]:
    """
    Parse an RFC3339 timestamp as sent by the network server.

    Nanosecond fractions are truncated to microseconds and naive values are
    taken as UTC. Returns None for anything unparsable.
    """
    if not isinstance(v, str) or not v:
        return None
    s = _FRACTION_RE.sub(r"\1", v.strip())
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(s)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def decode_raw_data(data: str) -> Optional[Dict[str, Any]]:
    """
    Decode a base64 ``data`` field into a minimal object.

    Returns ``raw_len`` and ``raw_hex``; a single-byte payload also exposes
    that byte as ``flags``. Returns None when ``data`` is not valid base64.
    """
    try:
        buf = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None
    obj: Dict[str, Any] = {"raw_len": len(buf), "raw_hex": buf.hex()}
    if len(buf) == 1:
        obj["flags"] = buf[0]
    return obj


def _decoded_object(body: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    obj = first_present(body, DECODED_PATHS)
    if isinstance(obj, Mapping):
        return dict(obj)

    obj_json = first_present(body, DECODED_JSON_PATHS)
    if isinstance(obj_json, str):
        try:
            parsed = json.loads(obj_json)
        except ValueError:
            parsed = None
        if isinstance(parsed, Mapping):
            return dict(parsed)

    data = first_present(body, RAW_DATA_PATHS)
    if isinstance(data, str):
        return decode_raw_data(data)
    return None


def _reception_record(raw: Any) -> ReceptionRecord:
    if not isinstance(raw, Mapping):
        return ReceptionRecord()

    location = None
    loc = raw.get("location")
    if isinstance(loc, Mapping):
        lat = _to_float(loc.get("latitude"))
        lon = _to_float(loc.get("longitude"))
        if lat is not None and lon is not None:
            location = GatewayLocation(latitude=lat, longitude=lon)

    gw = raw.get("gatewayId") or raw.get("gatewayID")
    return ReceptionRecord(
        gateway_id=str(gw) if gw else None,
        snr=_to_float(raw.get("snr", raw.get("loRaSNR"))),
        rssi=_to_float(raw.get("rssi")),
        location=location,
    )


def _received_at(body: Mapping[str, Any], rx_raw: List[Any]) -> Optional[datetime]:
    ts = parse_time(first_present(body, TIME_PATHS))
    if ts is not None:
        return ts
    for rx in rx_raw[:1]:
        if isinstance(rx, Mapping):
            for k in RX_TIME_KEYS:
                ts = parse_time(rx.get(k))
                if ts is not None:
                    return ts
    return None


def parse_body(raw: bytes | str | None) -> Dict[str, Any]:
    """
    Parse a raw HTTP body into a JSON mapping.

    An empty body is treated as an empty object, and valid JSON that is not
    an object (list, number...) as well.

    Raises
    ------
    MalformedPayload
        If the body is not valid JSON.
    """
    if raw is None:
        return {}
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload(f"body is not UTF-8: {e}") from e
    if not raw.strip():
        return {}
    try:
        obj = json.loads(raw)
    except ValueError as e:
        raise MalformedPayload(f"body is not valid JSON: {e}") from e
    return obj if isinstance(obj, dict) else {}


def normalize(body: Mapping[str, Any], event_tag: str = "up") -> DeviceEvent:
    """
    Build a `DeviceEvent` from a parsed uplink body.

    Never raises on missing or oddly typed fields; every field has a
    fallback.

    Parameters
    ----------
    body
        Parsed JSON body.
    event_tag
        Transport-level event label, kept for logging.

    Returns
    -------
    DeviceEvent
        Canonical event.
    """
    dev_eui = first_present(body, DEV_EUI_PATHS)
    dev_eui = str(dev_eui) if dev_eui is not None else UNKNOWN_DEV_EUI

    dev_name = first_present(body, DEV_NAME_PATHS)
    dev_name = str(dev_name) if dev_name is not None else dev_eui

    rx = first_present(body, RX_INFO_PATHS)
    rx_raw = list(rx) if isinstance(rx, list) else []

    return DeviceEvent(
        dev_eui=dev_eui,
        dev_name=dev_name,
        frame_count=_to_int(first_present(body, FRAME_COUNT_PATHS)),
        decoded_object=_decoded_object(body),
        receive_info=tuple(_reception_record(r) for r in rx_raw),
        raw_event_tag=event_tag,
        received_at=_received_at(body, rx_raw),
    )
