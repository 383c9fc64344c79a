# shelter/schemas/ward.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from shelter.models.enums import GenderRestriction, WardType


class WardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    ward_type: WardType = WardType.GENERAL
    gender_specific: GenderRestriction = GenderRestriction.ANY
    capacity: int | None = Field(default=None, ge=0)


class WardBatchCreate(BaseModel):
    """Creates "<base_name> 1" .. "<base_name> N"."""

    base_name: str = Field(min_length=1, max_length=90)
    count: int = Field(ge=1, le=50)
    ward_type: WardType = WardType.GENERAL
    gender_specific: GenderRestriction = GenderRestriction.ANY
    capacity: int | None = Field(default=None, ge=0)


class WardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    ward_type: WardType | None = None
    gender_specific: GenderRestriction | None = None
    capacity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class WardResponse(BaseModel):
    id: UUID
    name: str
    ward_type: WardType
    gender_specific: GenderRestriction
    capacity: int | None
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True
