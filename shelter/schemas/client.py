# shelter/schemas/client.py
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from shelter.models.enums import ApprovalStatus


class ClientResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    dob: date | None = None
    sex: str | None = None
    approval_status: ApprovalStatus
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class ActiveAssignmentInfo(BaseModel):
    id: UUID
    bed_id: UUID
    bed_number: str | None = None


class ClientRosterEntry(ClientResponse):
    is_assigned: bool = False
    active_assignment: ActiveAssignmentInfo | None = None
    active_enrollment_id: UUID | None = None


class ClientSearchResult(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    dob: date | None = None
    has_national_id: bool = False
