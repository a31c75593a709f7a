"""
Error taxonomy for the uplink pipeline and recipient administration.

Only conditions that stop an operation are exceptions. Intentionally skipped
uplinks and a misconfigured transport are reported as successful outcomes.
"""

from __future__ import annotations

from typing import Optional


class UplinkError(Exception):
    """Base class for all errors raised by this package."""


class MalformedPayload(UplinkError):
    """The uplink body could not be parsed as JSON."""


class Unauthorized(UplinkError):
    """Shared secret missing or wrong."""


class AddressInvalid(UplinkError):
    """A recipient address could not be normalised."""

    def __init__(self, raw: str):
        super().__init__(f"invalid recipient address: {raw!r}")
        self.raw = raw


class RecipientNotFound(UplinkError):
    """Tried to remove an address that is not registered."""

    def __init__(self, address: str):
        super().__init__(f"recipient not in list: {address}")
        self.address = address


class ProtectedRecipient(UplinkError):
    """Tried to remove a fixed address."""

    def __init__(self, address: str):
        super().__init__(f"fixed recipient cannot be removed: {address}")
        self.address = address


class TransportFailure(UplinkError):
    """
    A single send attempt failed.

    Parameters
    ----------
    message
        Human-readable description, surfaced in the outcome list.
    status_code
        HTTP status from the provider, when there was a response.
    code
        Provider-specific error code, when reported.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
