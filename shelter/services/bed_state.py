# shelter/services/bed_state.py
"""
Bed status state machine.

    available --assign-->   occupied
    available --reserve-->  reserved
    reserved  --check_in--> occupied
    reserved  --release-->  available
    occupied  --check_out-> available
    available <-maintenance-> maintenance

Every transition is a conditional write ("... WHERE status = <from>") whose
affected-row count is checked, so two sessions racing for the same bed
cannot both win.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shelter.core.store import record_change
from shelter.models.bed import Bed
from shelter.models.enums import BedStatus
from shelter.realtime.change_feed import ChangeType
from shelter.services.errors import BedConflictError, BedNotFoundError

ALLOWED_TRANSITIONS: dict[tuple[BedStatus, BedStatus], str] = {
    (BedStatus.AVAILABLE, BedStatus.OCCUPIED): "assign",
    (BedStatus.AVAILABLE, BedStatus.RESERVED): "reserve",
    (BedStatus.RESERVED, BedStatus.OCCUPIED): "check_in",
    (BedStatus.RESERVED, BedStatus.AVAILABLE): "release",
    (BedStatus.OCCUPIED, BedStatus.AVAILABLE): "check_out",
    (BedStatus.AVAILABLE, BedStatus.MAINTENANCE): "start_maintenance",
    (BedStatus.MAINTENANCE, BedStatus.AVAILABLE): "end_maintenance",
}


async def get_bed_status(db: AsyncSession, bed_id: UUID) -> BedStatus | None:
    return await db.scalar(
        select(Bed.status).where(Bed.id == bed_id, Bed.is_active.is_(True))
    )


async def transition_bed(
    db: AsyncSession,
    bed_id: UUID,
    from_status: BedStatus,
    to_status: BedStatus,
) -> None:
    """
    Move an active bed from `from_status` to `to_status`.

    Raises BedNotFoundError for a missing/inactive bed and BedConflictError
    when the bed is in any other status (including losing a race).
    """
    if (from_status, to_status) not in ALLOWED_TRANSITIONS:
        raise ValueError(f"Invalid bed transition: {from_status.value} -> {to_status.value}")

    result = await db.execute(
        update(Bed)
        .where(
            Bed.id == bed_id,
            Bed.is_active.is_(True),
            Bed.status == from_status,
        )
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        actual = await get_bed_status(db, bed_id)
        if actual is None:
            raise BedNotFoundError(bed_id)
        raise BedConflictError(bed_id, expected=from_status.value, actual=actual.value)

    record_change(db, "beds", ChangeType.UPDATE, bed_id)
