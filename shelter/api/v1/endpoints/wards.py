# shelter/api/v1/endpoints/wards.py
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from shelter.api.deps import get_store, http_error, within_page_load
from shelter.core.store import InventoryStore
from shelter.schemas.ward import WardBatchCreate, WardCreate, WardResponse, WardUpdate
from shelter.services import inventory_service
from shelter.services.errors import ShelterError

router = APIRouter()


@router.get("", response_model=list[WardResponse])
async def list_wards(
    include_inactive: bool = False,
    store: InventoryStore = Depends(get_store),
) -> list[WardResponse]:
    wards = await within_page_load(
        store, inventory_service.list_wards(store, include_inactive=include_inactive)
    )
    return [WardResponse.model_validate(w) for w in wards]


@router.post("", response_model=WardResponse, status_code=status.HTTP_201_CREATED)
async def create_ward(
    payload: WardCreate,
    store: InventoryStore = Depends(get_store),
) -> WardResponse:
    try:
        ward = await inventory_service.create_ward(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return WardResponse.model_validate(ward)


@router.post("/batch", response_model=list[WardResponse], status_code=status.HTTP_201_CREATED)
async def create_wards_batch(
    payload: WardBatchCreate,
    store: InventoryStore = Depends(get_store),
) -> list[WardResponse]:
    """
    Create "<base_name> 1" .. "<base_name> N" in one transaction.
    """
    try:
        wards = await inventory_service.create_wards_batch(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return [WardResponse.model_validate(w) for w in wards]


@router.patch("/{ward_id}", response_model=WardResponse)
async def update_ward(
    ward_id: UUID,
    payload: WardUpdate,
    store: InventoryStore = Depends(get_store),
) -> WardResponse:
    try:
        ward = await inventory_service.update_ward(store, ward_id, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return WardResponse.model_validate(ward)


@router.post("/{ward_id}/deactivate", response_model=WardResponse)
async def deactivate_ward(
    ward_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> WardResponse:
    try:
        ward = await inventory_service.deactivate_ward(store, ward_id)
    except ShelterError as e:
        raise http_error(e) from e
    return WardResponse.model_validate(ward)


@router.delete("/{ward_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ward(
    ward_id: UUID,
    store: InventoryStore = Depends(get_store),
) -> Response:
    """
    Hard delete with its rooms and beds. Refused while any bed in the ward
    is occupied or reserved.
    """
    try:
        await inventory_service.delete_ward(store, ward_id)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
