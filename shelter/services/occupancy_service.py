# shelter/services/occupancy_service.py
"""
Occupancy projection: a denormalized Ward -> Room -> Bed -> occupant view
derived from the inventory tables.

Everything except load_snapshot() is a pure function of its inputs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from shelter.core.store import InventoryStore
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.enums import BedStatus
from shelter.models.room import Room
from shelter.schemas.bed import (
    AssignmentSummary,
    BedHierarchy,
    BedSnapshot,
    OccupancySnapshot,
    OccupancyStats,
    RoomNode,
    WardNode,
)
from shelter.schemas.room import RoomResponse
from shelter.schemas.ward import WardResponse
from shelter.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (BedStatus.OCCUPIED, BedStatus.RESERVED)


def current_assignment(
    assignments: Sequence[AssignmentSummary],
    *,
    bed_id=None,
) -> AssignmentSummary | None:
    """
    The assignment with no end_date, if any.

    More than one open assignment on a bed breaks the occupancy invariant; it
    is reported as a data-integrity warning and the first one is returned
    unchanged (nothing is closed or merged here).
    """
    open_assignments = [a for a in assignments if a.end_date is None]
    if len(open_assignments) > 1:
        logger.warning(
            f"Data integrity: bed {bed_id} has {len(open_assignments)} active assignments "
            f"({', '.join(str(a.id) for a in open_assignments)})"
        )
    return open_assignments[0] if open_assignments else None


def check_status_consistency(bed: BedSnapshot) -> bool:
    """
    occupied/reserved <=> an active assignment exists. Logs and returns
    False on disagreement.
    """
    has_active = bed.current_assignment is not None
    expects_active = bed.status in ACTIVE_STATUSES
    if has_active != expects_active:
        logger.warning(
            f"Data integrity: bed {bed.id} is {bed.status.value} but "
            f"{'has' if has_active else 'has no'} active assignment"
        )
        return False
    return True


def compute_stats(beds: Iterable[BedSnapshot]) -> OccupancyStats:
    available = occupied = total = 0
    for bed in beds:
        if bed.status == BedStatus.AVAILABLE:
            available += 1
        if bed.status == BedStatus.OCCUPIED:
            occupied += 1
        if bed.status != BedStatus.MAINTENANCE:
            total += 1

    if total == 0:
        rate = 0
    else:
        # round half up, integer arithmetic
        rate = (occupied * 200 + total) // (2 * total)

    return OccupancyStats(
        available=available,
        occupied=occupied,
        total=total,
        occupancy_rate=rate,
    )


def build_bed_snapshot(bed: Bed) -> BedSnapshot:
    snapshot = BedSnapshot.model_validate(bed)
    snapshot.current_assignment = current_assignment(snapshot.assignments, bed_id=bed.id)
    check_status_consistency(snapshot)
    return snapshot


def _empty_snapshot(error: str) -> OccupancySnapshot:
    return OccupancySnapshot(beds=[], stats=OccupancyStats(), error=error, loaded_at=utc_now())


async def _query_active_beds(store: InventoryStore) -> list[BedSnapshot]:
    async with store.session() as db:
        result = await db.execute(
            select(Bed)
            .options(
                selectinload(Bed.room).selectinload(Room.ward),
                selectinload(Bed.assignments).selectinload(BedAssignment.client),
            )
            .where(Bed.is_active.is_(True))
            .order_by(Bed.bed_number, Bed.id)
        )
        beds = result.scalars().all()
        return [build_bed_snapshot(bed) for bed in beds]


async def load_snapshot(
    store: InventoryStore,
    *,
    timeout: float | None = None,
) -> OccupancySnapshot:
    """
    Load every active bed with its room, ward and assignments.

    Bounded by `timeout` (default: settings.snapshot_timeout_seconds). On
    timeout or a Store error the result is an empty snapshot with `error`
    set, so a loading view always settles.
    """
    timeout = store.settings.snapshot_timeout_seconds if timeout is None else timeout
    try:
        beds = await asyncio.wait_for(_query_active_beds(store), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Bed snapshot load timed out after {timeout}s")
        return _empty_snapshot("Data fetch timeout")
    except (SQLAlchemyError, OSError) as e:
        # OSError: the driver could not reach the database at all
        logger.error(f"Bed snapshot load failed: {e}", exc_info=True)
        return _empty_snapshot(str(e) or type(e).__name__)

    return OccupancySnapshot(
        beds=beds,
        stats=compute_stats(beds),
        error=None,
        loaded_at=utc_now(),
    )


def filter_by_status(beds: Iterable[BedSnapshot], status: BedStatus | None) -> list[BedSnapshot]:
    if status is None:
        return list(beds)
    return [bed for bed in beds if bed.status == status]


def group_by_hierarchy(
    wards: Sequence[WardResponse],
    rooms: Sequence[RoomResponse],
    beds: Sequence[BedSnapshot],
) -> BedHierarchy:
    """
    Nest beds under their room and rooms under their ward, keeping the
    given orders. Beds without a room go to `unassigned`, and so do beds
    whose room is not in `rooms`: no bed is ever dropped.
    """
    beds_by_room: dict = {}
    unassigned: list[BedSnapshot] = []
    room_ids = {room.id for room in rooms}

    for bed in beds:
        if bed.room_id is None:
            unassigned.append(bed)
        elif bed.room_id not in room_ids:
            logger.warning(f"Bed {bed.id} belongs to room {bed.room_id} outside the loaded rooms")
            unassigned.append(bed)
        else:
            beds_by_room.setdefault(bed.room_id, []).append(bed)

    rooms_by_ward: dict = {}
    for room in rooms:
        rooms_by_ward.setdefault(room.ward_id, []).append(
            RoomNode(room=room, beds=beds_by_room.get(room.id, []))
        )

    ward_nodes = [WardNode(ward=ward, rooms=rooms_by_ward.get(ward.id, [])) for ward in wards]

    ward_ids = {ward.id for ward in wards}
    for ward_id, room_nodes in rooms_by_ward.items():
        if ward_id not in ward_ids:
            for node in room_nodes:
                logger.warning(f"Room {node.room.id} belongs to ward {ward_id} outside the loaded wards")
                unassigned.extend(node.beds)

    return BedHierarchy(wards=ward_nodes, unassigned=unassigned)
