# shelter/schemas/bulk.py
from uuid import UUID

from pydantic import BaseModel, Field


class BulkOutcome(BaseModel):
    succeeded: int = 0
    failed: int = 0
    total: int = 0


class CheckOutAllRequest(BaseModel):
    """
    Scope: a room, the unassigned (legacy) bucket, or an explicit bed set.
    """

    room_id: UUID | None = None
    unassigned: bool = False
    bed_ids: list[UUID] | None = None


class AssignAllPlan(BaseModel):
    # None in a preview when the ward or room does not exist yet
    ward_id: UUID | None = None
    ward_name: str
    room_id: UUID | None = None
    room_name: str
    unassigned_clients: int
    available_beds: int
    beds_needed: int
    created_ward: bool = False
    created_room: bool = False

    @property
    def needs_confirmation(self) -> bool:
        return self.beds_needed > 0


class AssignAllRequest(BaseModel):
    # Required when the plan reports beds_needed > 0
    create_missing_beds: bool | None = None


class AssignAllResult(BulkOutcome):
    assigned: int = 0
    remaining: int = 0
    created_beds: int = 0
    plan: AssignAllPlan | None = None


class ClientSelection(BaseModel):
    # None means every eligible client
    client_ids: list[UUID] | None = Field(default=None)
