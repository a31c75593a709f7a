"""
Human-readable alert rendering.

`render_alert` turns a classified `DeviceEvent` into the WhatsApp text sent
to recipients. It is a pure function: the receive time and target time zone
are passed in, never read from the host.

Line order is fixed; lines whose source value is missing are omitted:

    title
    Lugar       (house name)
    Tipo        (category)
    Dispositivo (name + DevEUI)
    Frame       (only with a frame count)
    Batería     (only with battery_mv)
    Ubicación   (only with a gateway location)
    Hora        (localised receive time)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

from uplink_alerts.domain.models import DeviceEvent, EventKind, GatewayLocation, ReceptionRecord

GENERIC_PLACE = "Dispositivo"
DEFAULT_TIMEZONE = "America/Bogota"
DEFAULT_TIMEZONE_LABEL = "Bogotá"

# kind -> (title, category)
TITLES: Dict[EventKind, Tuple[str, str]] = {
    EventKind.PANIC: ("🚨 *Alerta de Pánico*", "Botón de Pánico"),
    EventKind.WALL_REMOVE: ("⚠️ *Alerta: Desmonte de Pared*", "Desmonte de Pared"),
    EventKind.WALL_RESTORE: ("✅ *Restaurado en la Pared*", "Restaurado"),
    EventKind.LOW_BATTERY: ("🔋 *Batería baja*", "Batería baja"),
}
GENERIC_TITLE = "ℹ️ Evento"


@dataclass(frozen=True)
class FormatOptions:
    """
    Rendering options owned by the deployment, not the pipeline.

    Parameters
    ----------
    timezone
        IANA zone the receive time is shown in.
    timezone_label
        Short label printed after the time.
    signature
        Optional block appended after a blank line. None disables it.
    """

    timezone: str = DEFAULT_TIMEZONE
    timezone_label: str = DEFAULT_TIMEZONE_LABEL
    signature: Optional[str] = None


def house_name(houses: Mapping[str, str], dev_eui: str, dev_name: Optional[str]) -> str:
    """Resolve a display place: house map, then device name, then DevEUI."""
    return houses.get(str(dev_eui or "").lower()) or dev_name or dev_eui or GENERIC_PLACE


def best_location(receive_info: Sequence[ReceptionRecord]) -> Optional[GatewayLocation]:
    """
    Pick the gateway location to link to.

    The record with the highest SNR wins (first one on ties). If it has no
    location, or no record reports SNR, the first record that has a location
    is used instead.
    """
    best: Optional[ReceptionRecord] = None
    for rx in receive_info:
        if rx.snr is None:
            continue
        if best is None or rx.snr > best.snr:  # type: ignore[operator]
            best = rx
    if best is not None and best.location is not None:
        return best.location

    for rx in receive_info:
        if rx.location is not None:
            return rx.location
    return None


def format_local_time(ts: datetime, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """
    Render ``ts`` in ``tz_name`` as ``dd/mm/yyyy, h:mm:ss a. m.``.

    Independent of the host locale. Naive datetimes are taken as UTC.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=ZoneInfo("UTC"))
    local = ts.astimezone(ZoneInfo(tz_name))
    hour12 = local.hour % 12 or 12
    suffix = "a. m." if local.hour < 12 else "p. m."
    return f"{local:%d/%m/%Y}, {hour12}:{local:%M:%S} {suffix}"


def _title(kind: Union[EventKind, str, None]) -> Tuple[str, str]:
    if isinstance(kind, EventKind) and kind in TITLES:
        return TITLES[kind]
    raw = kind.value if isinstance(kind, EventKind) else kind
    return GENERIC_TITLE, str(raw or "N/A")


def render_alert(
    event: DeviceEvent,
    kind: Union[EventKind, str, None],
    house: str,
    location: Optional[GatewayLocation],
    received_at: datetime,
    options: FormatOptions = FormatOptions(),
) -> str:
    """
    Render the alert text for one event.

    Parameters
    ----------
    event
        Normalised device event.
    kind
        Classified kind; a raw string is echoed as a generic category.
    house
        Resolved place name (see `house_name`).
    location
        Gateway location for the map link (see `best_location`).
    received_at
        Time the uplink was received.
    options
        Time zone and signature settings.

    Returns
    -------
    str
        Newline-joined message body.
    """
    title, category = _title(kind)

    lines = [
        title,
        f"Lugar: *{house}*",
        f"Tipo: {category}",
        f"Dispositivo: *{event.dev_name}* ({event.dev_eui})",
    ]
    if event.frame_count is not None:
        lines.append(f"Frame: {event.frame_count}")

    battery = event.battery_mv
    if battery is not None:
        lines.append(f"Batería: {battery / 1000:.2f} V")

    if location is not None:
        lines.append(f"Ubicación aprox.: {location.map_url()}")

    lines.append(f"Hora: {format_local_time(received_at, options.timezone)} ({options.timezone_label})")

    if options.signature:
        lines.extend(["", options.signature])

    return "\n".join(lines)
