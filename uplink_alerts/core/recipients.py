"""
WhatsApp recipient registry.

Recipients are stored in canonical form ``whatsapp:+<E.164>``. There are two
disjoint groups: *fixed* addresses, set at startup and never removable, and
*dynamic* addresses managed at runtime through `add` / `remove`.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List

from uplink_alerts.domain.errors import AddressInvalid, ProtectedRecipient, RecipientNotFound

log = logging.getLogger(__name__)

CHANNEL_PREFIX = "whatsapp:"

_STRIP_RE = re.compile(r"[^\d+]")
_E164_RE = re.compile(r"^\+[1-9]\d{7,14}$")


@dataclass(frozen=True)
class AddressRules:
    """
    How loosely-formatted numbers are completed.

    Parameters
    ----------
    default_country_code
        Country code assumed for local and national numbers (no ``+``).
    local_number_length
        Digit count of a local mobile number.
    local_number_prefix
        Leading digit(s) a local mobile number must start with.
    """

    default_country_code: str = "57"
    local_number_length: int = 10
    local_number_prefix: str = "3"


def normalize_address(raw: str, rules: AddressRules = AddressRules()) -> str:
    """
    Normalise a phone/channel string into ``whatsapp:+<digits>``.

    Accepted shapes
    ---------------
    - ``whatsapp:+573134991467`` (returned unchanged)
    - ``+573134991467``
    - ``3134991467`` (local number, default country code prepended)
    - ``573134991467`` (national format with country code, no ``+``)

    Spaces, dashes and parentheses are ignored.

    Raises
    ------
    AddressInvalid
        For any other shape.
    """
    s = str(raw or "").strip()
    if s.lower().startswith(CHANNEL_PREFIX):
        s = s[len(CHANNEL_PREFIX):]
    s = _STRIP_RE.sub("", s)

    if not s.startswith("+"):
        cc = rules.default_country_code
        if s.startswith(cc) and len(s) >= len(cc) + rules.local_number_length:
            s = "+" + s
        elif len(s) == rules.local_number_length and s.startswith(rules.local_number_prefix):
            s = "+" + cc + s
        else:
            raise AddressInvalid(raw)

    if not _E164_RE.match(s):
        raise AddressInvalid(raw)
    return CHANNEL_PREFIX + s


@dataclass
class RecipientRegistry:
    """
    Thread-safe set of destination addresses.

    Concurrency Model
    -----------------
    The dynamic set is guarded by a single lock; `effective` returns a copy
    so callers can iterate while admins edit the list.

    Parameters
    ----------
    fixed
        Canonical addresses that can never be removed.
    rules
        Completion rules for loosely-formatted input.
    """

    fixed: FrozenSet[str] = frozenset()
    rules: AddressRules = field(default_factory=AddressRules)

    # dict keeps insertion order for deterministic delivery order
    _dynamic: Dict[str, None] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def from_config(
        cls,
        fixed: Iterable[str],
        initial: Iterable[str] = (),
        rules: AddressRules = AddressRules(),
    ) -> "RecipientRegistry":
        """
        Build a registry, normalising configured addresses.

        Invalid fixed addresses raise `AddressInvalid`; invalid initial
        dynamic addresses are logged and skipped.
        """
        reg = cls(fixed=frozenset(normalize_address(a, rules) for a in fixed), rules=rules)
        for raw in initial:
            try:
                reg.add(raw)
            except AddressInvalid:
                log.warning("[RECIPIENTS] ignoring invalid initial recipient %r", raw)
        return reg

    def add(self, raw_address: str) -> str:
        """
        Normalise and add an address to the dynamic set.

        Returns
        -------
        str
            Canonical address.

        Raises
        ------
        AddressInvalid
            If the input cannot be normalised.
        """
        addr = normalize_address(raw_address, self.rules)
        with self._lock:
            self._dynamic[addr] = None
        log.info("[RECIPIENTS] ADD %s", addr)
        return addr

    def remove(self, address: str) -> str:
        """
        Remove an address from the dynamic set.

        ``address`` may be canonical or loosely formatted.

        Returns
        -------
        str
            Canonical address that was removed.

        Raises
        ------
        AddressInvalid
            If the input cannot be normalised.
        ProtectedRecipient
            If the address is fixed (even if also present as dynamic).
        RecipientNotFound
            If the address is not in the dynamic set.
        """
        addr = normalize_address(address, self.rules)
        if addr in self.fixed:
            raise ProtectedRecipient(addr)
        with self._lock:
            if addr not in self._dynamic:
                raise RecipientNotFound(addr)
            del self._dynamic[addr]
        log.info("[RECIPIENTS] DEL %s", addr)
        return addr

    def is_fixed(self, address: str) -> bool:
        return address in self.fixed

    def effective(self) -> List[str]:
        """
        Return fixed then dynamic addresses, duplicates collapsed.
        """
        with self._lock:
            dynamic = list(self._dynamic)
        out = sorted(self.fixed)
        out.extend(a for a in dynamic if a not in self.fixed)
        return out
