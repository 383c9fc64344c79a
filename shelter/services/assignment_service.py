# shelter/services/assignment_service.py
"""
Assignment workflow: the multi-record transitions that move a bed between
available, reserved and occupied.

Each operation runs in a single Store transaction. The bed's conditional
status write comes first, so a competing session is rejected before any
dependent row (enrollment, assignment) is written; any later failure rolls
the whole step back.

Ending an assignment (check-out, release) never closes the enrollment;
only discharge does.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from shelter.core.store import InventoryStore, record_change
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.client import Client
from shelter.models.enrollment import Enrollment
from shelter.models.enums import ApprovalStatus, BedStatus, GenderRestriction
from shelter.models.project import Project
from shelter.models.room import Room
from shelter.realtime.change_feed import ChangeType
from shelter.schemas.assignment import ExitMetadata, QuickCheckInRequest
from shelter.services.audit_service import log_action
from shelter.services.bed_state import transition_bed
from shelter.services.errors import (
    BedNotFoundError,
    ClientNotFoundError,
    EnrollmentNotFoundError,
    GenderRestrictionError,
    NoActiveAssignmentError,
    NoProjectConfiguredError,
)
from shelter.utils.datetime_utils import today as current_date

logger = logging.getLogger(__name__)


async def _get_client(db: AsyncSession, client_id: UUID) -> Client:
    client = await db.get(Client, client_id)
    if not client:
        raise ClientNotFoundError(client_id)
    return client


async def get_default_project_id(db: AsyncSession) -> UUID:
    project_id = await db.scalar(select(Project.id).order_by(Project.created_at, Project.id).limit(1))
    if project_id is None:
        raise NoProjectConfiguredError()
    return project_id


async def find_active_enrollment(db: AsyncSession, client_id: UUID) -> Optional[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.client_id == client_id,
            Enrollment.is_active.is_(True),
            Enrollment.exit_date.is_(None),
        )
        .order_by(Enrollment.entry_date.desc(), Enrollment.id)
    )
    enrollments = result.scalars().all()
    if len(enrollments) > 1:
        logger.warning(
            f"Data integrity: client {client_id} has {len(enrollments)} active enrollments"
        )
    return enrollments[0] if enrollments else None


async def resolve_active_enrollment(
    db: AsyncSession,
    client_id: UUID,
    *,
    entry_date: Optional[date] = None,
) -> Enrollment:
    """
    The client's open enrollment, created against the configured project
    when there is none. Raises NoProjectConfiguredError without a project.
    """
    enrollment = await find_active_enrollment(db, client_id)
    if enrollment:
        return enrollment

    project_id = await get_default_project_id(db)
    enrollment = Enrollment(
        client_id=client_id,
        project_id=project_id,
        entry_date=entry_date or current_date(),
        is_active=True,
    )
    db.add(enrollment)
    await db.flush()
    record_change(db, "enrollments", ChangeType.INSERT, enrollment.id)
    return enrollment


async def find_active_assignment(db: AsyncSession, bed_id: UUID) -> Optional[BedAssignment]:
    result = await db.execute(
        select(BedAssignment)
        .where(BedAssignment.bed_id == bed_id, BedAssignment.end_date.is_(None))
        .order_by(BedAssignment.start_date, BedAssignment.id)
    )
    assignments = result.scalars().all()
    if len(assignments) > 1:
        logger.warning(f"Data integrity: bed {bed_id} has {len(assignments)} active assignments")
    return assignments[0] if assignments else None


async def _create_assignment(
    db: AsyncSession,
    *,
    bed_id: UUID,
    client_id: UUID,
    enrollment_id: Optional[UUID],
    start_date: date,
) -> BedAssignment:
    assignment = BedAssignment(
        bed_id=bed_id,
        client_id=client_id,
        enrollment_id=enrollment_id,
        start_date=start_date,
        end_date=None,
    )
    db.add(assignment)
    await db.flush()
    record_change(db, "bed_assignments", ChangeType.INSERT, assignment.id)
    return assignment


async def assign_in_session(
    db: AsyncSession,
    bed_id: UUID,
    client_id: UUID,
    *,
    on_date: Optional[date] = None,
) -> BedAssignment:
    """
    available -> occupied inside an open transaction: claim the bed, resolve
    or create the enrollment, then create the assignment.
    """
    on_date = on_date or current_date()
    await _get_client(db, client_id)
    await transition_bed(db, bed_id, BedStatus.AVAILABLE, BedStatus.OCCUPIED)
    enrollment = await resolve_active_enrollment(db, client_id, entry_date=on_date)
    return await _create_assignment(
        db,
        bed_id=bed_id,
        client_id=client_id,
        enrollment_id=enrollment.id,
        start_date=on_date,
    )


async def assign(
    store: InventoryStore,
    bed_id: UUID,
    client_id: UUID,
    *,
    on_date: Optional[date] = None,
) -> BedAssignment:
    async with store.transaction() as db:
        assignment = await assign_in_session(db, bed_id, client_id, on_date=on_date)

    logger.info(f"Bed {bed_id} assigned to client {client_id} (assignment {assignment.id})")
    await log_action(
        store,
        "ASSIGN",
        "bed_assignments",
        assignment.id,
        {"bed_id": bed_id, "client_id": client_id, "enrollment_id": assignment.enrollment_id},
    )
    return assignment


async def reserve(
    store: InventoryStore,
    bed_id: UUID,
    client_id: UUID,
    *,
    on_date: Optional[date] = None,
) -> BedAssignment:
    """
    available -> reserved. The reservation's assignment carries no
    enrollment; enrollments are only touched on assign.
    """
    on_date = on_date or current_date()
    async with store.transaction() as db:
        await _get_client(db, client_id)
        await transition_bed(db, bed_id, BedStatus.AVAILABLE, BedStatus.RESERVED)
        assignment = await _create_assignment(
            db,
            bed_id=bed_id,
            client_id=client_id,
            enrollment_id=None,
            start_date=on_date,
        )

    logger.info(f"Bed {bed_id} reserved for client {client_id}")
    await log_action(store, "RESERVE", "bed_assignments", assignment.id, {"bed_id": bed_id, "client_id": client_id})
    return assignment


async def check_in(store: InventoryStore, bed_id: UUID) -> None:
    """reserved -> occupied; status only."""
    async with store.transaction() as db:
        await transition_bed(db, bed_id, BedStatus.RESERVED, BedStatus.OCCUPIED)

    logger.info(f"Reservation on bed {bed_id} checked in")
    await log_action(store, "CHECK_IN", "beds", bed_id)


async def _close_active_assignments(db: AsyncSession, bed_id: UUID, end_date: date) -> int:
    result = await db.execute(
        update(BedAssignment)
        .where(BedAssignment.bed_id == bed_id, BedAssignment.end_date.is_(None))
        .values(end_date=end_date)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def release(
    store: InventoryStore,
    bed_id: UUID,
    *,
    on_date: Optional[date] = None,
) -> int:
    """
    reserved -> available: ends the reservation's assignment today.
    Returns the number of assignments closed.
    """
    on_date = on_date or current_date()
    async with store.transaction() as db:
        await transition_bed(db, bed_id, BedStatus.RESERVED, BedStatus.AVAILABLE)
        closed = await _close_active_assignments(db, bed_id, on_date)
        if closed == 0:
            logger.warning(f"Data integrity: reserved bed {bed_id} had no active assignment to release")
        else:
            record_change(db, "bed_assignments", ChangeType.UPDATE)

    logger.info(f"Reservation on bed {bed_id} released")
    await log_action(store, "RELEASE", "beds", bed_id, {"closed_assignments": closed})
    return closed


async def check_out(
    store: InventoryStore,
    bed_id: UUID,
    exit_date: Optional[date] = None,
    *,
    assignment_id: Optional[UUID] = None,
) -> BedAssignment:
    """
    occupied -> available: set end_date on the bed's active assignment.

    `assignment_id` may come from an already loaded snapshot; otherwise the
    active assignment is looked up. Raises NoActiveAssignmentError when there
    is none (e.g. already checked out). The enrollment stays open.
    """
    exit_date = exit_date or current_date()
    async with store.transaction() as db:
        assignment = None
        if assignment_id is not None:
            assignment = await db.get(BedAssignment, assignment_id)
            if assignment is None or assignment.bed_id != bed_id or assignment.end_date is not None:
                assignment = None
        if assignment is None:
            assignment = await find_active_assignment(db, bed_id)
        if assignment is None:
            if await db.get(Bed, bed_id) is None:
                raise BedNotFoundError(bed_id)
            raise NoActiveAssignmentError(bed_id)

        result = await db.execute(
            update(BedAssignment)
            .where(BedAssignment.id == assignment.id, BedAssignment.end_date.is_(None))
            .values(end_date=exit_date)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NoActiveAssignmentError(bed_id)
        record_change(db, "bed_assignments", ChangeType.UPDATE, assignment.id)

        await transition_bed(db, bed_id, BedStatus.OCCUPIED, BedStatus.AVAILABLE)
        set_committed_value(assignment, "end_date", exit_date)

    logger.info(f"Bed {bed_id} checked out (assignment {assignment.id}, exit {exit_date})")
    await log_action(
        store,
        "CHECK_OUT",
        "bed_assignments",
        assignment.id,
        {"bed_id": bed_id, "exit_date": exit_date},
    )
    return assignment


async def discharge(
    store: InventoryStore,
    client_id: UUID,
    enrollment_id: Optional[UUID],
    exit_meta: ExitMetadata,
) -> None:
    """
    Close the enrollment (when given) and archive the client. Independent of
    bed state: callers check the client out of any bed first.
    """
    async with store.transaction() as db:
        await _get_client(db, client_id)

        if enrollment_id is not None:
            result = await db.execute(
                update(Enrollment)
                .where(Enrollment.id == enrollment_id, Enrollment.client_id == client_id)
                .values(
                    exit_date=exit_meta.exit_date,
                    destination=exit_meta.destination,
                    exit_reason=exit_meta.exit_reason,
                    housing_status_at_exit=exit_meta.housing_status_at_exit,
                    is_active=False,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise EnrollmentNotFoundError(enrollment_id)
            record_change(db, "enrollments", ChangeType.UPDATE, enrollment_id)

        await db.execute(
            update(Client)
            .where(Client.id == client_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        record_change(db, "clients", ChangeType.UPDATE, client_id)

    logger.info(f"Client {client_id} discharged (enrollment {enrollment_id})")
    await log_action(
        store,
        "DISCHARGE",
        "clients",
        client_id,
        {"enrollment_id": enrollment_id, **exit_meta.model_dump()},
    )


def _gender_filter(sex: str):
    """Rooms open to any client, or restricted to `sex`."""
    sex = sex.strip().lower()
    clauses = [Room.gender_specific.is_(None), Room.gender_specific == GenderRestriction.ANY]
    if sex in {g.value for g in GenderRestriction}:
        clauses.append(Room.gender_specific == GenderRestriction(sex))
    return or_(*clauses)


async def list_quick_check_in_beds(store: InventoryStore, sex: str) -> list[Bed]:
    """
    Available active beds a client of `sex` may take. Beds without a room
    carry no restriction.
    """
    async with store.session() as db:
        result = await db.execute(
            select(Bed)
            .outerjoin(Room, Bed.room_id == Room.id)
            .options(selectinload(Bed.room))
            .where(
                Bed.status == BedStatus.AVAILABLE,
                Bed.is_active.is_(True),
                or_(Bed.room_id.is_(None), and_(Room.is_active.is_(True), _gender_filter(sex))),
            )
            .order_by(Bed.bed_number, Bed.id)
        )
        return list(result.scalars().all())


async def quick_check_in(store: InventoryStore, payload: QuickCheckInRequest) -> BedAssignment:
    """
    Staff-initiated intake: create an approved client, enroll them and
    occupy the chosen bed, all in one transaction. The bed's room must
    accept the client's sex.
    """
    on_date = current_date()
    async with store.transaction() as db:
        bed = await db.get(Bed, payload.bed_id, options=[selectinload(Bed.room)])
        if bed is None or not bed.is_active:
            raise BedNotFoundError(payload.bed_id)
        room_gender = bed.room.gender_specific if bed.room else None
        if room_gender not in (None, GenderRestriction.ANY) and room_gender.value != payload.sex.strip().lower():
            raise GenderRestrictionError(room_gender.value, payload.sex)

        # Project must exist before anything is written
        await get_default_project_id(db)

        client = Client(
            first_name=payload.first_name,
            last_name=payload.last_name,
            dob=payload.dob,
            sex=payload.sex,
            approval_status=ApprovalStatus.APPROVED,
            is_active=True,
        )
        db.add(client)
        await db.flush()
        record_change(db, "clients", ChangeType.INSERT, client.id)

        assignment = await assign_in_session(db, payload.bed_id, client.id, on_date=on_date)

    logger.info(f"Quick check-in: client {assignment.client_id} to bed {payload.bed_id}")
    await log_action(
        store,
        "QUICK_CHECK_IN",
        "bed_assignments",
        assignment.id,
        {"bed_id": payload.bed_id, "client_id": assignment.client_id},
    )
    return assignment
