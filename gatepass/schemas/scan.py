"""Gate scan request/response schemas."""


from datetime import datetime
from typing import Any

from pydantic import Field

from gatepass.schemas.common import CamelModel
from gatepass.schemas.visit import VisitOut
from gatepass.services.state_machine import ScanKind, ScanOutcome

class ScanRequest(CamelModel):
    code: str = Field(min_length=1, max_length=128)
    scan_kind: ScanKind = ScanKind.AUTO
    # Defaults to the calling officer
    officer_id: str | None = None
    gate_label: str | None = Field(default=None, max_length=50)
    location_hint: Any | None = None

class ScanResponse(CamelModel):
    success: bool
    outcome: ScanOutcome
    message: str
    resulting_action: str | None = None
    visit_snapshot: VisitOut | None = None
    scanned_at: datetime
