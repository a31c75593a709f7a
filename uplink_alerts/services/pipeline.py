from __future__ import annotations

import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from uplink_alerts.core.classifier import resolve_label
from uplink_alerts.core.dedup import PanicDeduplicator
from uplink_alerts.core.policy import should_notify
from uplink_alerts.core.recipients import RecipientRegistry
from uplink_alerts.domain.errors import Unauthorized
from uplink_alerts.domain.models import DeliveryOutcome, DeviceEvent, EventKind
from uplink_alerts.notification.dispatcher import Dispatcher
from uplink_alerts.notification.message_format import (
    FormatOptions,
    best_location,
    house_name,
    render_alert,
)
from uplink_alerts.transport.chirpstack import normalize, parse_body

log = logging.getLogger(__name__)

RAW_LOG_LIMIT = 4000
SKIP_PANIC_DEDUP = "panic dedup"
SKIP_NO_EVENT = "no_event"


@dataclass(frozen=True)
class UplinkAck:
    """
    Acknowledgment returned to the network server.

    Exactly one of ``skipped``, ``sent`` or ``warn`` is set.
    """

    skipped: Optional[str] = None
    sent: Optional[List[DeliveryOutcome]] = None
    warn: Optional[str] = None
    event: Optional[DeviceEvent] = None
    kind: Optional[EventKind] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": True}
        if self.skipped is not None:
            out["skipped"] = self.skipped
        if self.warn is not None:
            out["warn"] = self.warn
        if self.sent is not None:
            out["sent"] = [o.to_dict() for o in self.sent]
        return out


@dataclass
class UplinkPipeline:
    """
    Orchestrate one uplink: normalise, classify, dedup, gate, render, send.

    Responsibilities
    ----------------
    - Verify the shared secret when one is configured.
    - Turn the body into a `DeviceEvent` and classify it.
    - Suppress duplicate panics and events that need no alert.
    - Render the alert and hand it to the dispatcher.

    Notes
    -----
    This class holds no state of its own; the deduplicator and registry are
    injected and shared across concurrent requests.

    Parameters
    ----------
    dedup
        Panic deduplicator.
    registry
        Recipient registry.
    dispatcher
        Outbound fan-out.
    houses
        Lower-cased DevEUI -> place name.
    format_options
        Time zone and signature for rendering.
    webhook_secret
        Expected ``x-secret`` value; empty disables the check.
    """

    dedup: PanicDeduplicator
    registry: RecipientRegistry
    dispatcher: Dispatcher
    houses: Mapping[str, str] = field(default_factory=dict)
    format_options: FormatOptions = field(default_factory=FormatOptions)
    webhook_secret: str = ""

    def check_secret(self, secret: Optional[str]) -> None:
        """
        Raises
        ------
        Unauthorized
            If a secret is configured and ``secret`` does not match it.
        """
        if not self.webhook_secret:
            return
        if not hmac.compare_digest(str(secret or "").encode("utf-8"), self.webhook_secret.encode("utf-8")):
            log.warning("[UPLINK] rejected: invalid x-secret")
            raise Unauthorized("unauthorized")

    def handle_raw(
        self,
        raw_body: bytes | str | None,
        secret: Optional[str] = None,
        event_tag: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UplinkAck:
        """
        Handle an unparsed HTTP body.

        Raises
        ------
        Unauthorized
            On secret mismatch (checked before parsing).
        MalformedPayload
            If the body is not JSON.
        """
        self.check_secret(secret)
        return self._process(parse_body(raw_body), event_tag, now)

    def handle(
        self,
        body: Mapping[str, Any],
        secret: Optional[str] = None,
        event_tag: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UplinkAck:
        """
        Handle an already parsed body.

        Parameters
        ----------
        body
            Parsed JSON uplink.
        secret
            ``x-secret`` header value, if any.
        event_tag
            Network-server event name (``up``, ``join``...), logged only.
        now
            Processing time; defaults to the current UTC time.

        Returns
        -------
        UplinkAck
            Skipped, warned or sent acknowledgment.

        Raises
        ------
        Unauthorized
            On secret mismatch.
        """
        self.check_secret(secret)
        return self._process(body, event_tag, now)

    def _process(self, body: Mapping[str, Any], event_tag: Optional[str], now: Optional[datetime]) -> UplinkAck:
        ts = now or datetime.now(timezone.utc)
        tag = (event_tag or "").strip().lower() or "up"

        try:
            log.debug("[UPLINK] raw: %s", json.dumps(body, ensure_ascii=False, default=str)[:RAW_LOG_LIMIT])
        except (TypeError, ValueError):
            log.debug("[UPLINK] raw body not serialisable")

        event = normalize(body, tag)
        label = resolve_label(event.decoded_object)
        kind = EventKind.from_label(label)

        # Dedup applies to panics only.
        if kind is EventKind.PANIC and not self.dedup.allow(event.dev_eui, event.frame_count):
            return UplinkAck(skipped=SKIP_PANIC_DEDUP, event=event, kind=kind)

        log.info(
            "[UPLINK] (%s) dev=%s/%s fCnt=%s event=%s obj=%s",
            tag, event.dev_name, event.dev_eui, event.frame_count, label, event.decoded_object,
        )

        if not should_notify(kind):
            return UplinkAck(skipped=label or SKIP_NO_EVENT, event=event, kind=kind)

        text = render_alert(
            event,
            kind,
            house=house_name(self.houses, event.dev_eui, event.dev_name),
            location=best_location(event.receive_info),
            received_at=event.received_at or ts,
            options=self.format_options,
        )
        outcomes = self.dispatcher.deliver(text, self.registry.effective())
        if len(outcomes) == 1 and outcomes[0].status == "warning":
            return UplinkAck(warn=outcomes[0].error, event=event, kind=kind)
        return UplinkAck(sent=outcomes, event=event, kind=kind)
