"""
Unit tests for uplink_alerts.core.config.yaml_config.

These tests validate defaults, YAML parsing and environment overrides.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from uplink_alerts.core.config.yaml_config import (
    DEFAULT_FIXED_RECIPIENTS,
    build_app_config,
    load_app_config,
)

YAML = """
transport:
  twilio:
    account_sid: ACyaml
    auth_token: tokyaml
    from: "whatsapp:+14155238886"
    timeout_s: 4
recipients:
  fixed: ["whatsapp:+573134991467"]
  initial: ["3001112233"]
dedup:
  panic_window_s: 45
houses:
  FFFFFF100004F749: Casa Triángulo
format:
  timezone: America/Bogota
  signature: null
server:
  port: 9000
  webhook_secret: yaml-secret
"""


def test_defaults_without_yaml_or_env() -> None:
    cfg = build_app_config({}, {})
    assert cfg.recipients.fixed == list(DEFAULT_FIXED_RECIPIENTS)
    assert cfg.panic_window_s == 30.0
    assert cfg.houses["ffffff100004f749"] == "Casa Triángulo"
    assert cfg.twilio.account_sid is None
    assert cfg.server.port == 8080
    assert cfg.format.signature is not None


def test_load_yaml_file(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text(YAML, encoding="utf-8")

    cfg = load_app_config(str(p), env={})

    assert cfg.twilio.account_sid == "ACyaml"
    assert cfg.twilio.from_address == "whatsapp:+14155238886"
    assert cfg.twilio.timeout_s == 4.0
    assert cfg.recipients.initial == ["3001112233"]
    assert cfg.panic_window_s == 45.0
    assert cfg.houses == {"ffffff100004f749": "Casa Triángulo"}
    assert cfg.format.signature is None
    assert cfg.server.port == 9000
    assert cfg.server.webhook_secret == "yaml-secret"


def test_env_overrides_yaml(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text(YAML, encoding="utf-8")
    env = {
        "TWILIO_SID": "ACenv",
        "TWILIO_TOKEN": "tokenv",
        "WHATSAPP_FROM": "whatsapp:+10000000000",
        "WHATSAPP_TO": " 3001112233 , +573005556677,,",
        "WEBHOOK_SECRET": "env-secret",
        "ADMIN_TOKEN": "adm",
        "PORT": "8181",
    }

    cfg = load_app_config(str(p), env=env)

    assert cfg.twilio.account_sid == "ACenv"
    assert cfg.twilio.auth_token == "tokenv"
    assert cfg.twilio.from_address == "whatsapp:+10000000000"
    assert cfg.recipients.initial == ["3001112233", "+573005556677"]
    assert cfg.server.webhook_secret == "env-secret"
    assert cfg.server.admin_token == "adm"
    assert cfg.server.port == 8181


def test_signature_list_is_joined() -> None:
    cfg = build_app_config({"format": {"signature": ["a", "b"]}}, {})
    assert cfg.format.signature == "a\nb"


def test_missing_explicit_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.yaml"), env={})


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_config(str(p), env={})


def test_houses_must_be_mapping() -> None:
    with pytest.raises(ValueError):
        build_app_config({"houses": ["x"]}, {})


@pytest.mark.parametrize(
    "raw",
    [
        {"transport": {"twilio": {"timeout_s": None}}},
        {"transport": {"twilio": {"timeout_s": "soon"}}},
        {"transport": {"twilio": {"verify_tls": "maybe"}}},
        {"transport": {"twilio": {"verify_tls": None}}},
        {"dedup": {"panic_window_s": None}},
        {"dedup": {"panic_window_s": True}},
        {"recipients": {"local_number_length": 10.5}},
        {"server": {"port": None}},
        {"server": {"recent_events": "many"}},
    ],
)
def test_wrongly_typed_values_raise(raw: dict) -> None:
    """
    Nulls and values of the wrong type are rejected instead of coerced.
    """
    with pytest.raises(ValueError):
        build_app_config(raw, {})


def test_quoted_booleans_are_understood() -> None:
    """
    A quoted "false" must disable TLS verification, not enable it.
    """
    assert build_app_config({"transport": {"twilio": {"verify_tls": "false"}}}, {}).twilio.verify_tls is False
    assert build_app_config({"transport": {"twilio": {"verify_tls": "Yes"}}}, {}).twilio.verify_tls is True
    assert build_app_config({"transport": {"twilio": {"verify_tls": False}}}, {}).twilio.verify_tls is False


def test_non_numeric_port_env_raises() -> None:
    with pytest.raises(ValueError):
        build_app_config({}, {"PORT": "http"})
