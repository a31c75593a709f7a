from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from uplink_alerts.domain.errors import TransportFailure

DEFAULT_API_BASE = "https://api.twilio.com"


@dataclass(frozen=True)
class TwilioConfig:
    """
    Credentials and HTTP options for the Twilio Messages API.

    Parameters
    ----------
    account_sid
        Account SID (also the basic-auth user).
    auth_token
        Auth token (basic-auth password).
    api_base
        API root URL.
    timeout_s
        HTTP request timeout in seconds.
    verify_tls
        Whether to verify TLS certificates.
    """

    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = 10.0
    verify_tls: bool = True


class TwilioWhatsAppSender:
    """
    Message sender that delivers WhatsApp messages via the Twilio REST API.

    Notes
    -----
    - This class performs side effects (network I/O).
    - Every failure, network or HTTP, is raised as `TransportFailure` so
      the dispatcher can record it per recipient.
    """

    def __init__(self, cfg: TwilioConfig):
        self._cfg = cfg

    @property
    def is_configured(self) -> bool:
        return bool(self._cfg.account_sid and self._cfg.auth_token)

    def _url(self) -> str:
        base = self._cfg.api_base.rstrip("/")
        return f"{base}/2010-04-01/Accounts/{self._cfg.account_sid}/Messages.json"

    def send(self, from_address: str, to_address: str, body: str) -> str:
        """
        Create one message and return its SID.

        Raises
        ------
        TransportFailure
            On missing credentials, network errors, or a non-2xx response.
            The provider's error text is used as the message when available.
        """
        if not self.is_configured:
            raise TransportFailure("Twilio credentials not configured")

        try:
            r = requests.post(
                self._url(),
                data={"From": from_address, "To": to_address, "Body": body},
                auth=(self._cfg.account_sid, self._cfg.auth_token),
                timeout=self._cfg.timeout_s,
                verify=self._cfg.verify_tls,
            )
        except requests.RequestException as e:
            raise TransportFailure(f"Twilio request failed: {e}") from e

        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if r.status_code >= 400:
            msg = data.get("message") or f"HTTP {r.status_code}"
            raise TransportFailure(str(msg), status_code=r.status_code, code=data.get("code"))

        sid = data.get("sid")
        if not sid:
            raise TransportFailure("Twilio response missing message sid", status_code=r.status_code)
        return str(sid)
