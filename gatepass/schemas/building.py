"""Building license and user onboarding schemas."""


from datetime import datetime

from pydantic import Field

from gatepass.core.context import UserRole
from gatepass.schemas.common import CamelModel

class LicenseStateOut(CamelModel):
    building_id: str
    total_licenses: int
    used_licenses: int
    available_licenses: int
    has_available: bool

class UserCreate(CamelModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=7, max_length=32)
    apartment_number: str | None = None
    role: UserRole = UserRole.RESIDENT
    uses_license: bool = True

class UserStatusUpdate(CamelModel):
    is_active: bool

class UserOut(CamelModel):
    id: str
    building_id: str
    email: str
    first_name: str
    last_name: str
    phone: str
    apartment_number: str | None = None
    role: str
    is_active: bool
    uses_license: bool
    created_at: datetime
