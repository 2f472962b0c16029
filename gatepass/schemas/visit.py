"""Visit Pydantic schemas (request DTOs and response models)."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gatepass.domain.visit import Visit, VisitorStatus, VisitType, VisitVisitor
from gatepass.schemas.common import CamelModel, UTCInputModel


class VisitorIn(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=7, max_length=32)
    email: str | None = None
    company: str | None = None


class VisitCreate(UTCInputModel):
    # Residents always invite as themselves; admins may name the host
    host_id: str | None = None
    building_id: str | None = None
    visit_type: VisitType = VisitType.SINGLE
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    purpose: str | None = None
    expected_start: datetime
    expected_end: datetime | None = None
    max_visitors: int | None = Field(default=None, ge=1, le=100)
    visitors: list[VisitorIn] = Field(min_length=1)


class VisitCreated(CamelModel):
    visit_id: str
    status: str
    qr_token: str
    qr_expiry: datetime
    visitor_count: int


class AttachmentOut(CamelModel):
    id: str
    visitor_id: str
    name: str | None = None
    phone: str | None = None
    status: str
    arrival_time: datetime | None = None
    departure_time: datetime | None = None
    notes: str | None = None

    @classmethod
    def from_attachment(cls, attachment: VisitVisitor) -> "AttachmentOut":
        profile = attachment.visitor
        return cls(
            id=attachment.id,
            visitor_id=attachment.visitor_id,
            name=profile.name if profile else None,
            phone=profile.phone if profile else None,
            status=attachment.status,
            arrival_time=attachment.arrival_time,
            departure_time=attachment.departure_time,
            notes=attachment.notes,
        )


class VisitOut(CamelModel):
    id: str
    building_id: str
    host_id: str
    visit_type: str
    title: str
    description: str | None = None
    purpose: str | None = None
    expected_start: datetime
    expected_end: datetime | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    status: str
    qr_code: str | None = None
    qr_issued_at: datetime | None = None
    qr_expires_at: datetime | None = None
    entry: bool
    exit: bool
    max_visitors: int
    current_visitor_count: int
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    version: int
    visitors: list[AttachmentOut] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_visit(cls, visit: Visit) -> "VisitOut":
        data = {
            name: getattr(visit, name)
            for name in cls.model_fields
            if name != "visitors"
        }
        data["visitors"] = [AttachmentOut.from_attachment(a) for a in visit.attachments]
        return cls(**data)


class CancelRequest(CamelModel):
    reason: str | None = None


class VisitorStatusUpdate(CamelModel):
    status: VisitorStatus
    gate_label: str | None = None
    notes: str | None = None


class ExpiredVisitsOut(CamelModel):
    count: int
    visit_ids: list[str]
