# shelter/services/client_service.py
import logging
from typing import Optional

from sqlalchemy import exists, or_, select
from sqlalchemy.orm import selectinload

from shelter.core.store import InventoryStore
from shelter.models.bed_assignment import BedAssignment
from shelter.models.client import Client
from shelter.models.enrollment import Enrollment
from shelter.models.enums import ApprovalStatus
from shelter.schemas.client import ActiveAssignmentInfo, ClientRosterEntry, ClientSearchResult

logger = logging.getLogger(__name__)


def _has_active_assignment():
    return exists().where(
        BedAssignment.client_id == Client.id,
        BedAssignment.end_date.is_(None),
    )


def unassigned_clients_query():
    """Active, approved clients holding no open bed assignment."""
    return (
        select(Client)
        .where(
            Client.is_active.is_(True),
            Client.approval_status == ApprovalStatus.APPROVED,
            ~_has_active_assignment(),
        )
        .order_by(Client.last_name, Client.first_name, Client.id)
    )


async def list_unassigned_clients(store: InventoryStore) -> list[Client]:
    async with store.session() as db:
        result = await db.execute(unassigned_clients_query())
        return list(result.scalars().all())


async def list_clients(
    store: InventoryStore,
    *,
    include_inactive: bool = True,
    approval_status: Optional[ApprovalStatus] = None,
) -> list[ClientRosterEntry]:
    """
    Client roster annotated with the open bed assignment and the open
    enrollment of each client.
    """
    async with store.session() as db:
        query = select(Client)
        if not include_inactive:
            query = query.where(Client.is_active.is_(True))
        if approval_status:
            query = query.where(Client.approval_status == approval_status)
        clients = (
            await db.execute(query.order_by(Client.last_name, Client.first_name, Client.id))
        ).scalars().all()

        assignments = (
            await db.execute(
                select(BedAssignment)
                .options(selectinload(BedAssignment.bed))
                .where(BedAssignment.end_date.is_(None))
                .order_by(BedAssignment.start_date, BedAssignment.id)
            )
        ).scalars().all()
        enrollments = (
            await db.execute(
                select(Enrollment.id, Enrollment.client_id)
                .where(Enrollment.is_active.is_(True), Enrollment.exit_date.is_(None))
                .order_by(Enrollment.entry_date.desc(), Enrollment.id)
            )
        ).all()

    assignment_by_client: dict = {}
    for assignment in assignments:
        assignment_by_client.setdefault(assignment.client_id, assignment)
    enrollment_by_client: dict = {}
    for enrollment_id, client_id in enrollments:
        enrollment_by_client.setdefault(client_id, enrollment_id)

    roster = []
    for client in clients:
        entry = ClientRosterEntry.model_validate(client)
        assignment = assignment_by_client.get(client.id)
        if assignment:
            entry.is_assigned = True
            entry.active_assignment = ActiveAssignmentInfo(
                id=assignment.id,
                bed_id=assignment.bed_id,
                bed_number=assignment.bed.bed_number if assignment.bed else None,
            )
        entry.active_enrollment_id = enrollment_by_client.get(client.id)
        roster.append(entry)
    return roster


async def search_clients(
    store: InventoryStore,
    term: str,
    *,
    limit: Optional[int] = None,
) -> list[ClientSearchResult]:
    """
    Case-insensitive substring match on first or last name among active
    clients. Terms shorter than the configured minimum return nothing
    without touching the database.
    """
    term = (term or "").strip()
    if len(term) < store.settings.client_search_min_length:
        return []
    limit = limit or store.settings.client_search_limit

    pattern = f"%{term}%"
    async with store.session() as db:
        result = await db.execute(
            select(Client)
            .where(
                Client.is_active.is_(True),
                or_(Client.first_name.ilike(pattern), Client.last_name.ilike(pattern)),
            )
            .order_by(Client.last_name, Client.first_name, Client.id)
            .limit(limit)
        )
        clients = result.scalars().all()

    logger.debug(f"Client search '{term}' matched {len(clients)} client(s)")
    return [
        ClientSearchResult(
            id=c.id,
            first_name=c.first_name,
            last_name=c.last_name,
            dob=c.dob,
            has_national_id=bool(c.national_id_encrypted),
        )
        for c in clients
    ]
