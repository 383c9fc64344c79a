# shelter/api/v1/endpoints/clients.py
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from shelter.api.deps import get_store, http_error, within_page_load
from shelter.core.store import InventoryStore
from shelter.models.enums import ApprovalStatus
from shelter.schemas.assignment import AssignmentResponse, DischargeRequest, QuickCheckInRequest
from shelter.schemas.bulk import AssignAllPlan, AssignAllRequest, AssignAllResult, BulkOutcome, ClientSelection
from shelter.schemas.client import ClientResponse, ClientRosterEntry, ClientSearchResult
from shelter.services import assignment_service, bulk_service, client_service
from shelter.services.errors import ShelterError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=list[ClientRosterEntry])
async def list_clients(
    include_inactive: bool = True,
    approval_status: Optional[ApprovalStatus] = None,
    store: InventoryStore = Depends(get_store),
) -> list[ClientRosterEntry]:
    return await within_page_load(
        store,
        client_service.list_clients(
            store, include_inactive=include_inactive, approval_status=approval_status
        ),
    )


@router.get("/unassigned", response_model=list[ClientResponse])
async def list_unassigned_clients(
    store: InventoryStore = Depends(get_store),
) -> list[ClientResponse]:
    """
    Active, approved clients without a bed.
    """
    clients = await within_page_load(store, client_service.list_unassigned_clients(store))
    return [ClientResponse.model_validate(c) for c in clients]


@router.get("/search", response_model=list[ClientSearchResult])
async def search_clients(
    q: str = Query(default=""),
    store: InventoryStore = Depends(get_store),
) -> list[ClientSearchResult]:
    return await client_service.search_clients(store, q)


@router.post("/quick-check-in", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def quick_check_in(
    payload: QuickCheckInRequest,
    store: InventoryStore = Depends(get_store),
) -> AssignmentResponse:
    """
    Create an approved client, enroll them and occupy the chosen bed.
    """
    try:
        assignment = await assignment_service.quick_check_in(store, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post("/approve", response_model=BulkOutcome)
async def approve_clients(
    payload: Optional[ClientSelection] = None,
    store: InventoryStore = Depends(get_store),
) -> BulkOutcome:
    """
    Approve the selected clients, or every pending client when no ids are given.
    """
    client_ids = payload.client_ids if payload else None
    return await bulk_service.approve_clients(store, client_ids)


@router.post("/archive", response_model=BulkOutcome)
async def archive_clients(
    payload: ClientSelection,
    store: InventoryStore = Depends(get_store),
) -> BulkOutcome:
    if not payload.client_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Select at least one client")
    return await bulk_service.archive_clients(store, payload.client_ids)


@router.get("/assign-all/plan", response_model=AssignAllPlan)
async def plan_assign_all(
    store: InventoryStore = Depends(get_store),
) -> AssignAllPlan:
    """
    Counts for the bulk assignment confirmation. Read-only: a General ward
    or room that does not exist yet is reported with a null id and is
    created by the assignment itself.
    """
    return await bulk_service.plan_assign_all(store, create_missing=False)


@router.post("/assign-all", response_model=AssignAllResult)
async def assign_all_unassigned(
    payload: Optional[AssignAllRequest] = None,
    store: InventoryStore = Depends(get_store),
) -> AssignAllResult:
    """
    Give every unassigned client a General-ward bed, in list order.

    With fewer beds than clients and no `create_missing_beds` decision the
    response is 409 carrying the plan.
    """
    payload = payload or AssignAllRequest()
    try:
        return await bulk_service.assign_all_unassigned(
            store, create_missing_beds=payload.create_missing_beds
        )
    except ShelterError as e:
        raise http_error(e) from e


@router.post("/{client_id}/discharge", status_code=status.HTTP_204_NO_CONTENT)
async def discharge_client(
    client_id: UUID,
    payload: DischargeRequest,
    store: InventoryStore = Depends(get_store),
) -> Response:
    """
    Close the enrollment and archive the client. Bed assignments are not
    touched; check the client out first.
    """
    try:
        await assignment_service.discharge(store, client_id, payload.enrollment_id, payload)
    except ShelterError as e:
        raise http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
