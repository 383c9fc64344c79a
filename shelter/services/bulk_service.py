# shelter/services/bulk_service.py
"""
Bulk operations over many beds or clients in one user action.

check_out_all is two batched writes in one transaction. assign_all_unassigned
is best-effort sequential: it stops at the first failing pair, and the
assignments made before it stay committed.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shelter.core.store import InventoryStore, record_change
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.client import Client
from shelter.models.enums import ApprovalStatus, BedStatus, GenderRestriction, RoomType, WardType
from shelter.models.room import Room
from shelter.models.ward import Ward
from shelter.realtime.change_feed import ChangeType
from shelter.schemas.bulk import AssignAllPlan, AssignAllResult, BulkOutcome
from shelter.services.assignment_service import assign, get_default_project_id
from shelter.services.audit_service import log_action
from shelter.services.client_service import unassigned_clients_query
from shelter.services.errors import (
    BedConflictError,
    BulkOperationAborted,
    ConfirmationRequiredError,
    DuplicateNameError,
    ShelterError,
    is_unique_violation,
)
from shelter.services.inventory_service import create_beds_in_session
from shelter.utils.datetime_utils import today as current_date

logger = logging.getLogger(__name__)


async def check_out_all(
    store: InventoryStore,
    *,
    room_id: Optional[UUID] = None,
    unassigned: bool = False,
    bed_ids: Optional[list[UUID]] = None,
) -> BulkOutcome:
    """
    Check out every occupied bed in scope: a room, the beds without a room,
    or an explicit bed set. The bed-status write and the assignment write
    commit together.
    """
    if room_id is None and not unassigned and bed_ids is None:
        raise ValueError("Select a room, the unassigned beds, or a set of beds")

    end_date = current_date()
    async with store.transaction() as db:
        query = select(Bed.id).where(Bed.is_active.is_(True), Bed.status == BedStatus.OCCUPIED)
        if room_id is not None:
            query = query.where(Bed.room_id == room_id)
        if unassigned:
            query = query.where(Bed.room_id.is_(None))
        if bed_ids is not None:
            query = query.where(Bed.id.in_(bed_ids))
        occupied = list((await db.scalars(query.order_by(Bed.bed_number, Bed.id))).all())

        if not occupied:
            return BulkOutcome(succeeded=0, failed=0, total=0)

        result = await db.execute(
            update(Bed)
            .where(Bed.id.in_(occupied), Bed.status == BedStatus.OCCUPIED)
            .values(status=BedStatus.AVAILABLE)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(occupied):
            raise BedConflictError(occupied[0], expected="occupied", actual="changed")
        record_change(db, "beds", ChangeType.UPDATE, occupied)

        closed = await db.execute(
            update(BedAssignment)
            .where(BedAssignment.bed_id.in_(occupied), BedAssignment.end_date.is_(None))
            .values(end_date=end_date)
            .execution_options(synchronize_session=False)
        )
        record_change(db, "bed_assignments", ChangeType.UPDATE)
        if closed.rowcount != len(occupied):
            logger.warning(
                f"Data integrity: checked out {len(occupied)} occupied bed(s) "
                f"but closed {closed.rowcount} active assignment(s)"
            )

    outcome = BulkOutcome(succeeded=len(occupied), failed=0, total=len(occupied))
    logger.info(f"Checked out {outcome.succeeded} bed(s)")
    await log_action(
        store,
        "CHECK_OUT_ALL",
        "beds",
        details={"room_id": room_id, "unassigned": unassigned, "bed_ids": occupied},
    )
    return outcome


async def _find_general_ward(db, settings) -> Optional[Ward]:
    return await db.scalar(
        select(Ward).where(Ward.name.ilike(settings.general_ward_name)).order_by(Ward.created_at, Ward.id).limit(1)
    )


async def _find_general_room(db, settings, ward_id: UUID) -> Optional[Room]:
    # any "General..." room in the ward counts
    return await db.scalar(
        select(Room)
        .where(Room.ward_id == ward_id, Room.name.ilike(f"{settings.general_ward_name}%"))
        .order_by(Room.created_at, Room.id)
        .limit(1)
    )


async def _resolve_plan(store: InventoryStore, create_missing: bool) -> AssignAllPlan:
    settings = store.settings
    created_ward = created_room = False
    async with store.transaction() as db:
        ward = await _find_general_ward(db, settings)
        if ward is None and create_missing:
            ward = Ward(
                name=settings.general_ward_name,
                ward_type=WardType.GENERAL,
                gender_specific=GenderRestriction.ANY,
                is_active=True,
            )
            db.add(ward)
            await db.flush()
            record_change(db, "wards", ChangeType.INSERT, ward.id)
            created_ward = True

        room = await _find_general_room(db, settings, ward.id) if ward is not None else None
        if room is None and create_missing:
            room = Room(
                ward_id=ward.id,
                name=settings.general_room_name,
                room_type=RoomType.GENERAL,
                gender_specific=GenderRestriction.ANY,
                is_active=True,
            )
            db.add(room)
            await db.flush()
            record_change(db, "rooms", ChangeType.INSERT, room.id)
            created_room = True

        available_beds = 0
        if ward is not None:
            available_beds = await db.scalar(
                select(func.count(Bed.id))
                .join(Room, Bed.room_id == Room.id)
                .where(
                    Room.ward_id == ward.id,
                    Bed.is_active.is_(True),
                    Bed.status == BedStatus.AVAILABLE,
                )
            )
        unassigned_clients = await db.scalar(
            select(func.count()).select_from(unassigned_clients_query().subquery())
        )

    if created_ward:
        logger.info(f"Created fallback ward '{ward.name}'")
    if created_room:
        logger.info(f"Created fallback room '{room.name}' in ward '{ward.name}'")

    return AssignAllPlan(
        ward_id=ward.id if ward is not None else None,
        ward_name=ward.name if ward is not None else settings.general_ward_name,
        room_id=room.id if room is not None else None,
        room_name=room.name if room is not None else settings.general_room_name,
        unassigned_clients=unassigned_clients,
        available_beds=available_beds,
        beds_needed=max(0, unassigned_clients - available_beds),
        created_ward=created_ward,
        created_room=created_room,
    )


async def plan_assign_all(store: InventoryStore, *, create_missing: bool = True) -> AssignAllPlan:
    """
    Resolve the General ward and its General room, then count unassigned
    clients against available beds in that ward.

    With `create_missing` the ward and room are created when absent. Without
    it nothing is written: a missing ward or room comes back with a None id
    and the name it would be created under.

    Two callers creating the General ward or room at once collide on its
    unique name; the loser looks again once and uses the winner's rows.
    """
    try:
        return await _resolve_plan(store, create_missing)
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        logger.info("General ward or room was created concurrently; looking it up again")

    try:
        return await _resolve_plan(store, create_missing)
    except IntegrityError as e:
        if is_unique_violation(e):
            raise DuplicateNameError(
                "name",
                f"Could not set up the '{store.settings.general_ward_name}' ward. Please try again.",
            ) from e
        raise


async def _available_ward_beds(store: InventoryStore, ward_id: UUID) -> list[Bed]:
    async with store.session() as db:
        result = await db.execute(
            select(Bed)
            .join(Room, Bed.room_id == Room.id)
            .where(
                Room.ward_id == ward_id,
                Bed.is_active.is_(True),
                Bed.status == BedStatus.AVAILABLE,
            )
            .order_by(Bed.bed_number, Bed.id)
        )
        return list(result.scalars().all())


async def assign_all_unassigned(
    store: InventoryStore,
    *,
    create_missing_beds: Optional[bool] = None,
) -> AssignAllResult:
    """
    Pair unassigned clients with available General-ward beds in list order.

    When there are fewer beds than clients the caller must decide:
    `create_missing_beds=True` adds the missing beds to the General room,
    False assigns only what fits. Left undecided, ConfirmationRequiredError
    carries the plan with the exact counts.
    """
    plan = await plan_assign_all(store)
    if plan.unassigned_clients == 0:
        logger.info("Assign all: every active client already has a bed")
        return AssignAllResult(plan=plan)

    if plan.needs_confirmation and create_missing_beds is None:
        raise ConfirmationRequiredError(plan)

    async with store.session() as db:
        await get_default_project_id(db)

    created_beds = 0
    if plan.needs_confirmation and create_missing_beds:
        async with store.transaction() as db:
            beds = await create_beds_in_session(db, plan.room_id, plan.beds_needed)
        created_beds = len(beds)
        logger.info(f"Assign all: added {created_beds} bed(s) to room '{plan.room_name}'")

    async with store.session() as db:
        clients = list((await db.execute(unassigned_clients_query())).scalars().all())
    beds = await _available_ward_beds(store, plan.ward_id)

    pairs = list(zip(clients, beds))
    outcome = BulkOutcome(total=len(pairs))
    for client, bed in pairs:
        try:
            await assign(store, bed.id, client.id)
        except (ShelterError, SQLAlchemyError) as e:
            outcome.failed += 1
            logger.error(
                f"Assign all stopped at client {client.id} / bed {bed.id} "
                f"after {outcome.succeeded} of {outcome.total}: {e}"
            )
            raise BulkOperationAborted(outcome, e) from e
        outcome.succeeded += 1

    remaining = len(clients) - outcome.succeeded
    logger.info(f"Assign all: {outcome.succeeded} assigned, {remaining} still without a bed")
    return AssignAllResult(
        succeeded=outcome.succeeded,
        failed=outcome.failed,
        total=outcome.total,
        assigned=outcome.succeeded,
        remaining=remaining,
        created_beds=created_beds,
        plan=plan,
    )


async def approve_clients(
    store: InventoryStore,
    client_ids: Optional[list[UUID]] = None,
) -> BulkOutcome:
    """
    Approve the selected clients, or every pending client when no selection
    is given. One batched write.
    """
    async with store.transaction() as db:
        query = update(Client).where(Client.approval_status == ApprovalStatus.PENDING)
        if client_ids is not None:
            query = query.where(Client.id.in_(client_ids))
        result = await db.execute(
            query.values(approval_status=ApprovalStatus.APPROVED).execution_options(synchronize_session=False)
        )
        succeeded = result.rowcount
        if succeeded:
            record_change(db, "clients", ChangeType.UPDATE, client_ids)

    total = len(set(client_ids)) if client_ids is not None else succeeded
    outcome = BulkOutcome(succeeded=succeeded, failed=total - succeeded, total=total)
    logger.info(f"Approved {succeeded} of {total} client(s)")
    await log_action(store, "APPROVE_CLIENTS", "clients", details=outcome.model_dump())
    return outcome


async def archive_clients(store: InventoryStore, client_ids: list[UUID]) -> BulkOutcome:
    """Mark the selected clients inactive. Bed assignments are not touched."""
    if not client_ids:
        return BulkOutcome()

    async with store.transaction() as db:
        result = await db.execute(
            update(Client)
            .where(Client.id.in_(client_ids), Client.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        succeeded = result.rowcount
        if succeeded:
            record_change(db, "clients", ChangeType.UPDATE, client_ids)

    total = len(set(client_ids))
    outcome = BulkOutcome(succeeded=succeeded, failed=total - succeeded, total=total)
    logger.info(f"Archived {succeeded} of {total} client(s)")
    await log_action(store, "ARCHIVE_CLIENTS", "clients", details=outcome.model_dump())
    return outcome
