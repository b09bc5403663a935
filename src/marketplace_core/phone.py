"""Phone number normalization to E.164."""

from __future__ import annotations

import re

from marketplace_core.errors import InvalidIdentity

_E164 = re.compile(r"^\+\d{8,15}$")
_STRIP = re.compile(r"[^\d+]")


def normalize_phone(raw: str, default_country_code: str = "256") -> str:
    """Normalize a user-typed phone number to E.164.

    ``0776 000 000`` and ``776000000`` both become ``+256776000000`` with
    the default country code.  Raises ``InvalidIdentity`` when the result
    is not a plausible E.164 number.
    """
    formatted = _STRIP.sub("", raw or "")
    if formatted.startswith("0"):
        formatted = f"+{default_country_code}{formatted[1:]}"
    elif formatted and not formatted.startswith("+"):
        formatted = f"+{default_country_code}{formatted}"

    if not is_normalized(formatted):
        raise InvalidIdentity()
    return formatted


def is_normalized(identity: str) -> bool:
    return bool(_E164.match(identity))
