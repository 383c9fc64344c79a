# shelter/schemas/assignment.py
from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from shelter.utils.datetime_utils import today
from shelter.utils.shelter_constants import DESTINATION_OPTIONS, EXIT_REASON_MAX_LENGTH


class AssignRequest(BaseModel):
    client_id: UUID


class ReserveRequest(BaseModel):
    client_id: UUID


class CheckOutRequest(BaseModel):
    exit_date: date = Field(default_factory=today)
    # Active assignment already known from the loaded snapshot, if any
    assignment_id: UUID | None = None


class ExitMetadata(BaseModel):
    exit_date: date = Field(default_factory=today)
    destination: int
    exit_reason: str | None = Field(default=None, max_length=EXIT_REASON_MAX_LENGTH)
    housing_status_at_exit: int | None = None

    @field_validator("destination")
    @classmethod
    def _known_destination(cls, value: int) -> int:
        if value not in DESTINATION_OPTIONS:
            raise ValueError(f"Unknown destination code: {value}")
        return value


class DischargeRequest(ExitMetadata):
    enrollment_id: UUID | None = None


class QuickCheckInRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    dob: date | None = None
    sex: str = Field(min_length=1, max_length=20)
    bed_id: UUID


class AssignmentResponse(BaseModel):
    id: UUID
    bed_id: UUID
    client_id: UUID
    enrollment_id: UUID | None
    start_date: date
    end_date: date | None

    class Config:
        from_attributes = True


class EnrollmentResponse(BaseModel):
    id: UUID
    client_id: UUID
    project_id: UUID
    entry_date: date
    exit_date: date | None
    is_active: bool
    destination: int | None = None
    exit_reason: str | None = None
    housing_status_at_exit: int | None = None

    class Config:
        from_attributes = True
