# shelter/api/v1/endpoints/beds.py
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from shelter.api.deps import bad_request, get_store, http_error, within_page_load
from shelter.core.store import InventoryStore
from shelter.models.enums import BedStatus
from shelter.schemas.assignment import AssignmentResponse, AssignRequest, CheckOutRequest, ReserveRequest
from shelter.schemas.bed import (
    BedBatchCreate,
    BedBoardResponse,
    BedCreate,
    BedResponse,
)
from shelter.schemas.bulk import BulkOutcome, CheckOutAllRequest
from shelter.schemas.ward import WardResponse
from shelter.services import assignment_service, bulk_service, inventory_service
from shelter.services.errors import ShelterError
from shelter.services.occupancy_service import filter_by_status, group_by_hierarchy, load_snapshot

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/snapshot", response_model=BedBoardResponse)
async def get_bed_board(
    status_filter: Optional[BedStatus] = Query(default=None, alias="status"),
    store: InventoryStore = Depends(get_store),
) -> BedBoardResponse:
    """
    Every active bed with its room, ward and occupant, the derived stats, and
    the Ward -> Room -> Bed nesting. A failed or timed-out load returns an
    empty snapshot with `error` set rather than an error status.
    """
    snapshot = await load_snapshot(store)
    wards = await within_page_load(store, inventory_service.list_wards(store))
    rooms = await within_page_load(store, inventory_service.list_rooms(store))

    beds = filter_by_status(snapshot.beds, status_filter)
    hierarchy = group_by_hierarchy(
        [WardResponse.model_validate(w) for w in wards],
        rooms,
        beds,
    )
    return BedBoardResponse(snapshot=snapshot, hierarchy=hierarchy)


@router.post("", response_model=BedResponse, status_code=status.HTTP_201_CREATED)
async def add_bed(
    payload: BedCreate,
    store: InventoryStore = Depends(get_store),
) -> BedResponse:
    try:
        bed = await inventory_service.add_bed(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return BedResponse.model_validate(bed)


@router.post("/batch", response_model=list[BedResponse], status_code=status.HTTP_201_CREATED)
async def quick_add_beds(
    payload: BedBatchCreate,
    store: InventoryStore = Depends(get_store),
) -> list[BedResponse]:
    """
    Add `count` beds to a room, numbered after the room's highest bed number.
    """
    try:
        beds = await inventory_service.quick_add_beds(
            store, payload.room_id, payload.count, bed_type=payload.bed_type
        )
    except ShelterError as e:
        raise http_error(e) from e
    except ValueError as e:
        raise bad_request(e) from e
    return [BedResponse.model_validate(b) for b in beds]


@router.get("/quick-check-in", response_model=list[BedResponse])
async def list_quick_check_in_beds(
    sex: str = Query(min_length=1),
    store: InventoryStore = Depends(get_store),
) -> list[BedResponse]:
    beds = await within_page_load(store, assignment_service.list_quick_check_in_beds(store, sex))
    return [BedResponse.model_validate(b) for b in beds]


@router.post("/check-out-all", response_model=BulkOutcome)
async def check_out_all(
    payload: CheckOutAllRequest,
    store: InventoryStore = Depends(get_store),
) -> BulkOutcome:
    try:
        return await bulk_service.check_out_all(
            store,
            room_id=payload.room_id,
            unassigned=payload.unassigned,
            bed_ids=payload.bed_ids,
        )
    except ShelterError as e:
        raise http_error(e) from e
    except ValueError as e:
        raise bad_request(e) from e


@router.delete("/{bed_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_bed(
    bed_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    try:
        await inventory_service.deactivate_bed(store, bed_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{bed_id}/maintenance", status_code=status.HTTP_204_NO_CONTENT)
async def start_maintenance(
    bed_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    try:
        await inventory_service.start_maintenance(store, bed_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{bed_id}/maintenance", status_code=status.HTTP_204_NO_CONTENT)
async def end_maintenance(
    bed_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    try:
        await inventory_service.end_maintenance(store, bed_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Assignment workflow


@router.post("/{bed_id}/assign", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def assign_bed(
    bed_id: UUID,
    payload: AssignRequest,
    store: InventoryStore = Depends(get_store),
) -> AssignmentResponse:
    try:
        assignment = await assignment_service.assign(store, bed_id, payload.client_id)
    except ShelterError as e:
        raise http_error(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post("/{bed_id}/reserve", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def reserve_bed(
    bed_id: UUID,
    payload: ReserveRequest,
    store: InventoryStore = Depends(get_store),
) -> AssignmentResponse:
    try:
        assignment = await assignment_service.reserve(store, bed_id, payload.client_id)
    except ShelterError as e:
        raise http_error(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post("/{bed_id}/check-in", status_code=status.HTTP_204_NO_CONTENT)
async def check_in_reservation(
    bed_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    try:
        await assignment_service.check_in(store, bed_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{bed_id}/release", response_model=dict)
async def release_reservation(
    bed_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> dict:
    try:
        closed = await assignment_service.release(store, bed_id)
    except ShelterError as e:
        raise http_error(e) from e
    return {"bed_id": str(bed_id), "closed_assignments": closed}


@router.post("/{bed_id}/check-out", response_model=AssignmentResponse)
async def check_out_bed(
    bed_id: UUID,
    payload: Optional[CheckOutRequest] = None,
    store: InventoryStore = Depends(get_store),
) -> AssignmentResponse:
    """
    End the bed's active assignment. The client's enrollment stays open;
    use the client discharge endpoint to close it.
    """
    payload = payload or CheckOutRequest()
    try:
        assignment = await assignment_service.check_out(
            store,
            bed_id,
            payload.exit_date,
            assignment_id=payload.assignment_id,
        )
    except ShelterError as e:
        raise http_error(e) from e
    return AssignmentResponse.model_validate(assignment)
