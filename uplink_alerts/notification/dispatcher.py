from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from uplink_alerts.domain.models import DeliveryOutcome
from uplink_alerts.notification.base import MessageSender

log = logging.getLogger(__name__)

NOT_CONFIGURED = "twilio not configured"


@dataclass
class Dispatcher:
    """
    Fan one message out to every recipient.

    Sends are sequential, so outcomes come back in recipient order. A
    failure for one recipient is recorded and the next recipient is still
    tried. Nothing is retried.

    Parameters
    ----------
    sender
        Transport used for each send. None means no transport at all.
    from_address
        Channel address messages are sent from.
    """

    sender: Optional[MessageSender]
    from_address: Optional[str]

    def misconfiguration(self, recipients: Sequence[str]) -> Optional[str]:
        """Return why nothing can be sent, or None when ready."""
        missing = []
        if self.sender is None or not self.sender.is_configured:
            missing.append("TWILIO_SID/TWILIO_TOKEN")
        if not self.from_address:
            missing.append("WHATSAPP_FROM")
        if not recipients:
            missing.append("recipients")
        if missing:
            return "missing " + ", ".join(missing)
        return None

    def deliver(self, message: str, recipients: Sequence[str]) -> List[DeliveryOutcome]:
        """
        Send ``message`` to each recipient.

        Returns
        -------
        list of DeliveryOutcome
            One outcome per recipient, same order; or a single warning
            outcome if the transport is not usable.
        """
        sender, from_address = self.sender, self.from_address
        problem = self.misconfiguration(recipients)
        if problem is not None or sender is None or not from_address:
            log.warning("[DISPATCH] not sending WhatsApp: %s", problem or "no transport")
            return [DeliveryOutcome(to="", status="warning", error=NOT_CONFIGURED)]

        outcomes: List[DeliveryOutcome] = []
        for to in recipients:
            try:
                sid = sender.send(from_address, to, message)
            except Exception as e:  # any transport error is final for this recipient
                log.error("[DISPATCH] ERROR -> %s: %s", to, e)
                outcomes.append(DeliveryOutcome(to=to, status="failed", error=str(e)))
                continue
            log.info("[DISPATCH] OK -> %s %s", to, sid)
            outcomes.append(DeliveryOutcome(to=to, status="sent", message_id=sid))
        return outcomes
