"""Phone number normalisation shared by visitor profiles and bans."""

import re

from gatepass.core.config import settings
from gatepass.core.exceptions import ValidationError

_STRIP = re.compile(r"[^0-9+]")
_LOCAL = re.compile(r"^[0-9]{10,11}$")
_VALID = re.compile(r"^\+?[0-9]{10,15}$")


def normalize_phone(raw: str | None, country_code: str | None = None) -> str:
    """Canonical form used as the ban / visitor-profile key.

    Non-digits (except ``+``) are removed; bare local numbers get the
    default country code (``08031234567`` -> ``+2348031234567``).
    """
    cc = country_code or settings.default_country_code
    phone = _STRIP.sub("", raw or "")
    if _LOCAL.match(phone):
        if len(phone) == 11 and phone.startswith("0"):
            phone = cc + phone[1:]
        elif len(phone) == 10:
            phone = cc + phone
    return phone


def is_valid_phone(phone: str) -> bool:
    return bool(_VALID.match(phone or ""))


def clean_phone(raw: str) -> str:
    """Normalise ``raw`` or raise :class:`ValidationError`."""
    phone = normalize_phone(raw)
    if not is_valid_phone(phone):
        raise ValidationError(f"Invalid phone number '{raw}'")
    return phone
