"""QR token issuing.

Tokens are ``<prefix>`` + 32 upper-case hex characters (128 random bits from
:mod:`secrets`), e.g. ``SG_9F2C...``. The token is the only thing a gate
client sends; image rendering happens on the client.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

from gatepass.core.config import settings
from gatepass.domain.visit import Visit
from gatepass.repositories.visit import VisitRepository

logger = logging.getLogger(__name__)

_TOKEN_BYTES = 16
_MAX_COLLISION_RETRIES = 5


def generate_token(prefix: Optional[str] = None) -> str:
    return (prefix if prefix is not None else settings.qr_code_prefix) + secrets.token_hex(_TOKEN_BYTES).upper()


def is_well_formed(code: Optional[str], prefix: Optional[str] = None) -> bool:
    prefix = prefix if prefix is not None else settings.qr_code_prefix
    pattern = rf"^{re.escape(prefix)}[0-9A-F]{{{_TOKEN_BYTES * 2}}}$"
    return bool(code) and re.match(pattern, code) is not None


def compute_expiry(expected_end: Optional[datetime], now: datetime) -> datetime:
    """Token lifetime: ``qr_code_expiry_hours`` from now, cut short by the
    visit's expected end."""
    ceiling = now + timedelta(hours=settings.qr_code_expiry_hours)
    if expected_end is None:
        return ceiling
    return min(expected_end, ceiling)


async def stamp(visit: Visit, repo: VisitRepository, now: datetime) -> Visit:
    """Give ``visit`` a fresh token; the previous one stops resolving.

    Collisions are practically impossible at 128 bits, but the column is
    unique so a clash is re-rolled rather than left to the constraint.
    """
    for _ in range(_MAX_COLLISION_RETRIES):
        token = generate_token()
        if not await repo.code_exists(token):
            break
        logger.warning("QR token collision, regenerating")
    else:
        raise RuntimeError("Could not generate a unique QR token")

    visit.qr_code = token
    visit.qr_issued_at = now
    visit.qr_expires_at = compute_expiry(visit.expected_end, now)
    return visit
