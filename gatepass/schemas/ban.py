"""Visitor ban Pydantic schemas (request DTOs and response models)."""


from datetime import datetime

from pydantic import Field

from gatepass.domain.ban import BanScope, BanSeverity
from gatepass.schemas.common import CamelModel, UTCInputModel

class BanCreate(UTCInputModel):
    scope: BanScope = BanScope.PERSONAL
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=7, max_length=32)
    reason: str = Field(min_length=1)
    severity: BanSeverity = BanSeverity.MEDIUM
    expires_at: datetime | None = None
    notes: str | None = None
    # Defaults to the caller's building / the caller themself for personal bans
    building_id: str | None = None
    host_id: str | None = None

class UnbanRequest(CamelModel):
    reason: str | None = None

class BanOut(CamelModel):
    id: str
    scope: str
    building_id: str
    host_id: str | None = None
    created_by: str | None = None
    name: str
    phone: str
    reason: str
    severity: str
    ban_type: str
    is_active: bool
    banned_at: datetime
    expires_at: datetime | None = None
    unbanned_at: datetime | None = None
    unban_reason: str | None = None
    unbanned_by: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

class BanCheckOut(CamelModel):
    phone: str
    is_banned: bool
    ban: BanOut | None = None

class BanExpiryOut(CamelModel):
    expired: int
