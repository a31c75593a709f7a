"""
Unit tests for uplink_alerts.notification.twilio_sender.

These tests validate the Twilio request shape and error mapping using
mocked HTTP calls. No real network requests are made.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple
from unittest.mock import MagicMock

import pytest
import requests

from uplink_alerts.domain.errors import TransportFailure
from uplink_alerts.notification.twilio_sender import TwilioConfig, TwilioWhatsAppSender


def _cfg(**kwargs) -> TwilioConfig:
    base: Dict[str, Any] = dict(account_sid="AC123", auth_token="tok", timeout_s=3.0, verify_tls=False)
    base.update(kwargs)
    return TwilioConfig(**base)


def _response(status: int, payload: Any) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.json.return_value = payload
    return r


def test_send_posts_form_and_returns_sid(monkeypatch) -> None:
    def fake_post(
        url: str,
        data: Dict[str, str],
        auth: Tuple[str, str],
        timeout: float,
        verify: bool,
    ):
        assert url == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert data == {"From": "whatsapp:+1", "To": "whatsapp:+57", "Body": "hola"}
        assert auth == ("AC123", "tok")
        assert timeout == 3.0
        assert verify is False
        return _response(201, {"sid": "SM42"})

    monkeypatch.setattr("requests.post", fake_post)

    sid = TwilioWhatsAppSender(_cfg()).send("whatsapp:+1", "whatsapp:+57", "hola")
    assert sid == "SM42"


def test_send_maps_http_error_to_transport_failure(monkeypatch) -> None:
    monkeypatch.setattr(
        "requests.post",
        lambda *a, **k: _response(400, {"code": 21211, "message": "The 'To' number is not valid"}),
    )

    with pytest.raises(TransportFailure) as exc:
        TwilioWhatsAppSender(_cfg()).send("whatsapp:+1", "whatsapp:+57", "hola")
    assert str(exc.value) == "The 'To' number is not valid"
    assert exc.value.status_code == 400
    assert exc.value.code == 21211


def test_send_maps_network_error(monkeypatch) -> None:
    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr("requests.post", fake_post)

    with pytest.raises(TransportFailure):
        TwilioWhatsAppSender(_cfg()).send("whatsapp:+1", "whatsapp:+57", "hola")


def test_send_non_json_error_body(monkeypatch) -> None:
    r = _response(502, None)
    r.json.side_effect = ValueError("no json")
    monkeypatch.setattr("requests.post", lambda *a, **k: r)

    with pytest.raises(TransportFailure, match="HTTP 502"):
        TwilioWhatsAppSender(_cfg()).send("whatsapp:+1", "whatsapp:+57", "hola")


def test_send_without_credentials_fails_fast(monkeypatch) -> None:
    called = MagicMock()
    monkeypatch.setattr("requests.post", called)

    sender = TwilioWhatsAppSender(_cfg(account_sid=None))
    assert sender.is_configured is False
    with pytest.raises(TransportFailure):
        sender.send("whatsapp:+1", "whatsapp:+57", "hola")
    called.assert_not_called()
