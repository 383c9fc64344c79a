# shelter/schemas/room.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from shelter.models.enums import GenderRestriction, RoomType


class RoomCreate(BaseModel):
    ward_id: UUID
    name: str = Field(min_length=1, max_length=100)
    room_type: RoomType = RoomType.GENERAL
    gender_specific: GenderRestriction = GenderRestriction.ANY
    capacity: int | None = Field(default=None, ge=0)


class RoomBatchCreate(BaseModel):
    """count == 1 keeps the name as given; otherwise "<name> 1" .. "<name> N"."""

    ward_id: UUID
    name: str = Field(min_length=1, max_length=90)
    count: int = Field(ge=1, le=50)
    room_type: RoomType = RoomType.GENERAL
    gender_specific: GenderRestriction = GenderRestriction.ANY
    capacity: int | None = Field(default=None, ge=0)


class RoomUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    room_type: RoomType | None = None
    gender_specific: GenderRestriction | None = None
    capacity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class RoomResponse(BaseModel):
    id: UUID
    ward_id: UUID
    name: str
    room_type: RoomType
    gender_specific: GenderRestriction | None
    capacity: int | None
    is_active: bool
    created_at: datetime | None = None

    # Computed for convenience
    ward_name: str | None = None

    class Config:
        from_attributes = True
