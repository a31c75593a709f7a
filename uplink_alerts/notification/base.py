from __future__ import annotations

from typing import Protocol


class MessageSender(Protocol):
    """
    Protocol interface for the outbound messaging transport.

    Any object providing ``send`` and ``is_configured`` can be used by the
    dispatcher. This keeps the pipeline testable with in-memory fakes.

    Methods
    -------
    send(from_address, to_address, body)
        Deliver one message and return the provider's delivery identifier.
    """

    @property
    def is_configured(self) -> bool:
        """True when credentials are present."""
        ...

    def send(self, from_address: str, to_address: str, body: str) -> str:
        """
        Deliver one message.

        Parameters
        ----------
        from_address
            Sender channel address (e.g. ``whatsapp:+14155238886``).
        to_address
            Recipient channel address.
        body
            Plain text with WhatsApp markup.

        Returns
        -------
        str
            Delivery identifier.

        Raises
        ------
        TransportFailure
            If the provider rejects the message or cannot be reached.
        """
        ...
