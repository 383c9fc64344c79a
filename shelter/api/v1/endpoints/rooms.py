# shelter/api/v1/endpoints/rooms.py
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from shelter.api.deps import bad_request, get_store, http_error, within_page_load
from shelter.core.store import InventoryStore
from shelter.schemas.bed import RemoveBedsRequest
from shelter.schemas.room import RoomBatchCreate, RoomCreate, RoomResponse, RoomUpdate
from shelter.services import inventory_service
from shelter.services.errors import ShelterError

router = APIRouter()


def _room_response(room) -> RoomResponse:
    return RoomResponse.model_validate(room)


@router.get("", response_model=list[RoomResponse])
async def list_rooms(
    ward_id: Optional[UUID] = None,
    include_inactive: bool = False,
    store: InventoryStore = Depends(get_store),
) -> list[RoomResponse]:
    return await within_page_load(
        store,
        inventory_service.list_rooms(store, ward_id, include_inactive=include_inactive),
    )


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    store: InventoryStore = Depends(get_store),
) -> RoomResponse:
    try:
        room = await inventory_service.create_room(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return _room_response(room)


@router.post("/batch", response_model=list[RoomResponse], status_code=status.HTTP_201_CREATED)
async def create_rooms_batch(
    payload: RoomBatchCreate,
    store: InventoryStore = Depends(get_store),
) -> list[RoomResponse]:
    try:
        rooms = await inventory_service.create_rooms_batch(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return [_room_response(r) for r in rooms]


@router.patch("/{room_id}", response_model=RoomResponse)
async def update_room(
    room_id: UUID,
    payload: RoomUpdate,
    store: InventoryStore = Depends(get_store),
) -> RoomResponse:
    try:
        room = await inventory_service.update_room(store, room_id, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return _room_response(room)


@router.post("/{room_id}/deactivate", response_model=RoomResponse)
async def deactivate_room(
    room_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> RoomResponse:
    try:
        room = await inventory_service.deactivate_room(store, room_id)
    except ShelterError as e:
        raise http_error(e) from e
    return _room_response(room)


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(
    room_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    try:
        await inventory_service.delete_room(store, room_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{room_id}/beds/remove", response_model=dict)
async def remove_available_beds(
    room_id: UUID,
    payload: RemoveBedsRequest,
    store: InventoryStore = Depends(get_store),
) -> dict:
    """
    Remove `count` available beds, highest bed number first.
    """
    try:
        removed = await inventory_service.remove_available_beds(store, room_id, payload.count)
    except ShelterError as e:
        raise http_error(e) from e
    except ValueError as e:
        raise bad_request(e) from e
    return {"removed": [str(bed_id) for bed_id in removed]}
