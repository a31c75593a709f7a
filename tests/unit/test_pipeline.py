"""
Unit tests for uplink_alerts.services.pipeline.UplinkPipeline.

These tests run the whole uplink path with in-memory fakes:
- secret verification and malformed bodies
- panic deduplication and policy skips
- misconfigured transport warning
- end-to-end dispatch with a rendered message
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

import pytest

from uplink_alerts.core.dedup import PanicDeduplicator
from uplink_alerts.core.recipients import RecipientRegistry
from uplink_alerts.core.state.key_value_store import InMemoryKeyValueStore
from uplink_alerts.domain.errors import MalformedPayload, TransportFailure, Unauthorized
from uplink_alerts.domain.models import EventKind
from uplink_alerts.notification.dispatcher import NOT_CONFIGURED, Dispatcher
from uplink_alerts.services.pipeline import SKIP_NO_EVENT, SKIP_PANIC_DEDUP, UplinkPipeline

R1 = "whatsapp:+573134991467"
R2 = "whatsapp:+573001112233"
FROM = "whatsapp:+14155238886"
NOW = datetime(2026, 1, 1, 20, 0, 0, tzinfo=timezone.utc)


class FakeSender:
    def __init__(self, fail_for: Optional[Set[str]] = None, configured: bool = True) -> None:
        self.fail_for = fail_for or set()
        self.configured = configured
        self.sent: List[Tuple[str, str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send(self, from_address: str, to_address: str, body: str) -> str:
        if to_address in self.fail_for:
            raise TransportFailure("rejected")
        self.sent.append((from_address, to_address, body))
        return f"SM{len(self.sent)}"


class FakeClock:
    def __init__(self) -> None:
        self.ms = 0.0

    def __call__(self) -> float:
        return self.ms


def _mk_pipeline(
    sender: Optional[FakeSender] = None,
    secret: str = "",
    clock: Optional[FakeClock] = None,
    recipients: Tuple[str, ...] = (R2,),
) -> UplinkPipeline:
    return UplinkPipeline(
        dedup=PanicDeduplicator(window_s=30.0, store=InMemoryKeyValueStore(), clock=clock or FakeClock()),
        registry=RecipientRegistry.from_config(fixed=[R1], initial=recipients),
        dispatcher=Dispatcher(sender=sender if sender is not None else FakeSender(), from_address=FROM),
        houses={"ffffff100004f749": "Casa Triángulo"},
        webhook_secret=secret,
    )


def _uplink(event: Optional[str] = None, f_cnt: Optional[int] = 10, **obj) -> dict:
    body: dict = {"deviceInfo": {"devEui": "ffffff100004f749", "deviceName": "boton-1"}}
    if f_cnt is not None:
        body["fCnt"] = f_cnt
    if event is not None:
        obj["event"] = event
    if obj:
        body["object"] = obj
    return body


def test_end_to_end_wall_remove_sends_to_all_recipients() -> None:
    sender = FakeSender()
    ack = _mk_pipeline(sender).handle(_uplink("wall_remove"), now=NOW)
    out = ack.to_dict()

    assert out["ok"] is True
    assert [s["to"] for s in out["sent"]] == [R1, R2]
    assert all(s["ok"] for s in out["sent"])
    assert ack.kind is EventKind.WALL_REMOVE

    body = sender.sent[0][2]
    assert "Casa Triángulo" in body
    assert "Desmonte de Pared" in body
    assert "Frame: 10" in body


def test_partial_failure_is_reported_not_raised() -> None:
    sender = FakeSender(fail_for={R1})
    out = _mk_pipeline(sender).handle(_uplink("panic"), now=NOW).to_dict()
    assert out["ok"] is True
    assert out["sent"][0] == {"to": R1, "ok": False, "error": "rejected"}
    assert out["sent"][1]["ok"] is True


@pytest.mark.parametrize("event", ["alive", "low_battery", "door_open"])
def test_quiet_events_are_skipped_with_label(event: str) -> None:
    sender = FakeSender()
    out = _mk_pipeline(sender).handle(_uplink(event), now=NOW).to_dict()
    assert out == {"ok": True, "skipped": event}
    assert sender.sent == []


def test_unclassified_event_is_skipped_as_no_event() -> None:
    out = _mk_pipeline().handle(_uplink(battery_mv=3600), now=NOW).to_dict()
    assert out == {"ok": True, "skipped": SKIP_NO_EVENT}
    assert _mk_pipeline().handle({}, now=NOW).to_dict() == {"ok": True, "skipped": SKIP_NO_EVENT}


def test_duplicate_panic_is_skipped() -> None:
    sender = FakeSender()
    p = _mk_pipeline(sender)
    first = p.handle(_uplink("panic", f_cnt=5), now=NOW).to_dict()
    second = p.handle(_uplink("panic", f_cnt=5), now=NOW).to_dict()

    assert "sent" in first
    assert second == {"ok": True, "skipped": SKIP_PANIC_DEDUP}
    assert len(sender.sent) == 2


def test_legacy_and_raw_panic_shapes_are_deduplicated_together() -> None:
    clock = FakeClock()
    p = _mk_pipeline(clock=clock)
    legacy = {"deviceInfo": {"devEui": "ffffff100004f749"}, "decoded": {"panic": True}}
    raw = {"deviceInfo": {"devEui": "FFFFFF100004F749"}, "data": "AQ=="}

    assert "sent" in p.handle(legacy, now=NOW).to_dict()
    clock.ms += 10_000
    assert p.handle(raw, now=NOW).to_dict() == {"ok": True, "skipped": SKIP_PANIC_DEDUP}


def test_non_panic_events_bypass_dedup() -> None:
    sender = FakeSender()
    p = _mk_pipeline(sender)
    p.handle(_uplink("wall_remove", f_cnt=1), now=NOW)
    p.handle(_uplink("wall_remove", f_cnt=1), now=NOW)
    assert len(sender.sent) == 4


def test_misconfigured_transport_warns() -> None:
    sender = FakeSender(configured=False)
    out = _mk_pipeline(sender).handle(_uplink("panic"), now=NOW).to_dict()
    assert out == {"ok": True, "warn": NOT_CONFIGURED}
    assert sender.sent == []


def test_secret_mismatch_raises_unauthorized() -> None:
    p = _mk_pipeline(secret="s3cret")
    with pytest.raises(Unauthorized):
        p.handle(_uplink("panic"), secret="wrong")
    with pytest.raises(Unauthorized):
        p.handle_raw(b"{not json", secret=None)


def test_non_ascii_secret_is_unauthorized() -> None:
    p = _mk_pipeline(secret="s3cret")
    with pytest.raises(Unauthorized):
        p.handle(_uplink("panic"), secret="caf\u00e9")
    with pytest.raises(Unauthorized):
        _mk_pipeline(secret="s\u00e9cret").handle(_uplink("panic"), secret="secret")


def test_secret_match_passes() -> None:
    out = _mk_pipeline(secret="s3cret").handle(_uplink("alive"), secret="s3cret").to_dict()
    assert out == {"ok": True, "skipped": "alive"}


def test_handle_raw_parses_and_rejects_malformed() -> None:
    p = _mk_pipeline()
    ack = p.handle_raw(json.dumps(_uplink("alive")).encode("utf-8"), event_tag="UP")
    assert ack.to_dict() == {"ok": True, "skipped": "alive"}
    assert ack.event is not None and ack.event.raw_event_tag == "up"

    with pytest.raises(MalformedPayload):
        p.handle_raw(b"{not json")


def test_received_time_from_payload_is_rendered() -> None:
    sender = FakeSender()
    body = _uplink("wall_restore")
    body["time"] = "2026-03-01T17:30:00Z"
    _mk_pipeline(sender).handle(body, now=NOW)
    assert "Hora: 01/03/2026, 12:30:00 p. m. (Bogotá)" in sender.sent[0][2]
