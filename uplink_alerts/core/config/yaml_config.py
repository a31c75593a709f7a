from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

from uplink_alerts.core.dedup import DEFAULT_PANIC_WINDOW_S
from uplink_alerts.core.recipients import AddressRules
from uplink_alerts.notification.message_format import DEFAULT_TIMEZONE, DEFAULT_TIMEZONE_LABEL
from uplink_alerts.notification.twilio_sender import DEFAULT_API_BASE

DEFAULT_FIXED_RECIPIENTS = ("whatsapp:+573134991467",)
DEFAULT_HOUSES = {
    "ffffff100004f749": "Casa Triángulo",
    "ffffff100004f737": "Casa Cuadrado",
}
DEFAULT_SIGNATURE = "\n".join(
    [
        "— DukeVilla Demito",
        "Desarrollado por DukeVilla LLC — 2025",
        "https://www.duke-villa.com | sales@duke-villa.com",
    ]
)


@dataclass(frozen=True)
class TwilioConfigData:
    """Twilio credentials, sender and HTTP options."""
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    from_address: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = 10.0
    verify_tls: bool = True


@dataclass(frozen=True)
class RecipientsConfig:
    """Fixed and initial dynamic recipients plus number completion rules."""
    fixed: List[str] = field(default_factory=lambda: list(DEFAULT_FIXED_RECIPIENTS))
    initial: List[str] = field(default_factory=list)
    rules: AddressRules = field(default_factory=AddressRules)


@dataclass(frozen=True)
class FormatConfig:
    """Alert text rendering settings."""
    timezone: str = DEFAULT_TIMEZONE
    timezone_label: str = DEFAULT_TIMEZONE_LABEL
    signature: Optional[str] = DEFAULT_SIGNATURE


@dataclass(frozen=True)
class ServerConfig:
    """HTTP adapter settings and shared secrets."""
    port: int = 8080
    webhook_secret: str = ""
    admin_token: str = ""
    recent_events: int = 500


@dataclass(frozen=True)
class AppConfig:
    """
    Root application configuration.

    Built from an optional YAML file and then overridden by environment
    variables, so a deployment can run from env alone.
    """
    twilio: TwilioConfigData = field(default_factory=TwilioConfigData)
    recipients: RecipientsConfig = field(default_factory=RecipientsConfig)
    panic_window_s: float = DEFAULT_PANIC_WINDOW_S
    houses: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HOUSES))
    format: FormatConfig = field(default_factory=FormatConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a YAML mapping at the root")
    return data


def _resolve_default_config_path() -> Path:
    """
    Resolve config.yaml location.

    Priority:
    1) APP_CONFIG env var if provided
    2) config.yaml next to the executable
    3) ./config.yaml in current working directory
    """
    env = os.getenv("APP_CONFIG")
    if env:
        return Path(env).expanduser().resolve()

    exe_dir = Path(sys.executable).resolve().parent
    candidate = exe_dir / "config.yaml"
    if candidate.exists():
        return candidate

    return Path("config.yaml").resolve()


def _split_csv(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or value is None or isinstance(value, float):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _as_bool(value: Any, name: str) -> bool:
    """Accept a YAML boolean or a quoted true/false word."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"{name} must be true or false, got {value!r}")


def _signature(raw: Any) -> Optional[str]:
    if raw is None or raw is False:
        return None
    if isinstance(raw, list):
        return "\n".join(str(x) for x in raw)
    return str(raw)


def build_app_config(raw: Mapping[str, Any], env: Mapping[str, str]) -> AppConfig:
    """
    Convert a raw YAML mapping plus environment into typed config objects.

    Parameters
    ----------
    raw
        Parsed YAML (may be empty).
    env
        Environment variables; these override YAML values.

    Raises
    ------
    ValueError
        If a section has the wrong shape or a number does not parse.
    """
    # ---- twilio ----
    t = (raw.get("transport") or {}).get("twilio") or {}
    twilio = TwilioConfigData(
        account_sid=env.get("TWILIO_SID") or t.get("account_sid"),
        auth_token=env.get("TWILIO_TOKEN") or t.get("auth_token"),
        from_address=env.get("WHATSAPP_FROM") or t.get("from"),
        api_base=str(t.get("api_base", DEFAULT_API_BASE)),
        timeout_s=_as_float(t.get("timeout_s", 10.0), "transport.twilio.timeout_s"),
        verify_tls=_as_bool(t.get("verify_tls", True), "transport.twilio.verify_tls"),
    )

    # ---- recipients ----
    r = raw.get("recipients") or {}
    initial = [str(x) for x in r.get("initial", [])]
    if env.get("WHATSAPP_TO"):
        initial = _split_csv(env["WHATSAPP_TO"])
    recipients = RecipientsConfig(
        fixed=[str(x) for x in r.get("fixed", DEFAULT_FIXED_RECIPIENTS)],
        initial=initial,
        rules=AddressRules(
            default_country_code=str(r.get("default_country_code", "57")),
            local_number_length=_as_int(r.get("local_number_length", 10), "recipients.local_number_length"),
            local_number_prefix=str(r.get("local_number_prefix", "3")),
        ),
    )

    # ---- dedup ----
    d = raw.get("dedup") or {}
    panic_window_s = _as_float(d.get("panic_window_s", DEFAULT_PANIC_WINDOW_S), "dedup.panic_window_s")

    # ---- houses ----
    h = raw.get("houses", DEFAULT_HOUSES) or {}
    if not isinstance(h, dict):
        raise ValueError("houses must be a mapping of DevEUI -> name")
    houses = {str(k).lower(): str(v) for k, v in h.items()}

    # ---- format ----
    f = raw.get("format") or {}
    fmt = FormatConfig(
        timezone=str(f.get("timezone", DEFAULT_TIMEZONE)),
        timezone_label=str(f.get("timezone_label", DEFAULT_TIMEZONE_LABEL)),
        signature=_signature(f["signature"]) if "signature" in f else DEFAULT_SIGNATURE,
    )

    # ---- server ----
    s = raw.get("server") or {}
    server = ServerConfig(
        port=_as_int(env.get("PORT") or s.get("port", 8080), "server.port"),
        webhook_secret=env.get("WEBHOOK_SECRET") or str(s.get("webhook_secret", "")),
        admin_token=env.get("ADMIN_TOKEN") or str(s.get("admin_token", "")),
        recent_events=_as_int(s.get("recent_events", 500), "server.recent_events"),
    )

    return AppConfig(
        twilio=twilio,
        recipients=recipients,
        panic_window_s=panic_window_s,
        houses=houses,
        format=fmt,
        server=server,
    )


def load_app_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load application configuration from YAML and the environment.

    A ``.env`` file in the working directory is loaded first (without
    overriding real environment variables).

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution and
        falls back to built-in defaults when no file is found.
    env
        Environment mapping; defaults to ``os.environ``.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If an explicit config path does not exist.
    ValueError
        If fields are invalid.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    if path:
        cfg_path = Path(path).expanduser().resolve()
        if not cfg_path.exists():
            raise FileNotFoundError(f"Config not found: {cfg_path}")
        raw = _read_yaml(cfg_path)
    else:
        cfg_path = _resolve_default_config_path()
        raw = _read_yaml(cfg_path) if cfg_path.exists() else {}

    return build_app_config(raw, env)
