# shelter/schemas/bed.py
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from shelter.models.enums import BedStatus, BedType, GenderRestriction, RoomType, WardType
from shelter.schemas.room import RoomResponse
from shelter.schemas.ward import WardResponse


class BedCreate(BaseModel):
    room_id: UUID
    bed_number: str = Field(min_length=1, max_length=50)
    bed_type: BedType = BedType.EMERGENCY


class BedBatchCreate(BaseModel):
    room_id: UUID | None = None
    count: int = Field(default=1, ge=1)
    bed_type: BedType = BedType.EMERGENCY


class RemoveBedsRequest(BaseModel):
    count: int = Field(ge=1)


class BedResponse(BaseModel):
    id: UUID
    room_id: UUID | None
    bed_number: str
    bed_type: BedType
    status: BedStatus
    is_active: bool

    class Config:
        from_attributes = True


# Occupancy snapshot


class ClientSummary(BaseModel):
    id: UUID
    first_name: str
    last_name: str

    class Config:
        from_attributes = True


class AssignmentSummary(BaseModel):
    id: UUID
    client_id: UUID
    enrollment_id: UUID | None = None
    start_date: date
    end_date: date | None = None
    client: ClientSummary | None = None

    class Config:
        from_attributes = True


class WardSummary(BaseModel):
    id: UUID
    name: str
    ward_type: WardType

    class Config:
        from_attributes = True


class RoomSummary(BaseModel):
    id: UUID
    name: str
    room_type: RoomType
    gender_specific: GenderRestriction | None = None
    capacity: int | None = None
    ward_id: UUID
    ward: WardSummary | None = None

    class Config:
        from_attributes = True


class BedSnapshot(BaseModel):
    id: UUID
    room_id: UUID | None
    bed_number: str
    bed_type: BedType
    status: BedStatus
    is_active: bool
    room: RoomSummary | None = None
    assignments: list[AssignmentSummary] = Field(default_factory=list)
    current_assignment: AssignmentSummary | None = None

    class Config:
        from_attributes = True


class OccupancyStats(BaseModel):
    available: int = 0
    occupied: int = 0
    total: int = 0
    occupancy_rate: int = 0


class OccupancySnapshot(BaseModel):
    beds: list[BedSnapshot] = Field(default_factory=list)
    stats: OccupancyStats = Field(default_factory=OccupancyStats)
    # Set when the load failed or timed out; beds is then empty
    error: str | None = None
    loaded_at: datetime


class RoomNode(BaseModel):
    room: RoomResponse
    beds: list[BedSnapshot] = Field(default_factory=list)


class WardNode(BaseModel):
    ward: WardResponse
    rooms: list[RoomNode] = Field(default_factory=list)


class BedHierarchy(BaseModel):
    wards: list[WardNode] = Field(default_factory=list)
    # Beds with no room (legacy) or whose room is not among the active rooms
    unassigned: list[BedSnapshot] = Field(default_factory=list)


class BedBoardResponse(BaseModel):
    snapshot: OccupancySnapshot
    hierarchy: BedHierarchy
