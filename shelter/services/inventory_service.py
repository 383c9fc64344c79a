# shelter/services/inventory_service.py
"""
Ward / room / bed administration.

Unique and foreign-key violations from the Store are translated into
DuplicateNameError / ReferentialIntegrityError with a message naming the
conflicting field.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shelter.core.store import InventoryStore, record_change
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.enums import BedStatus, BedType
from shelter.models.room import Room
from shelter.models.ward import Ward
from shelter.realtime.change_feed import ChangeType
from shelter.schemas.bed import BedCreate
from shelter.schemas.room import RoomBatchCreate, RoomCreate, RoomResponse, RoomUpdate
from shelter.schemas.ward import WardBatchCreate, WardCreate, WardUpdate
from shelter.services.bed_state import transition_bed
from shelter.services.errors import (
    BedConflictError,
    BedNotFoundError,
    DuplicateNameError,
    NoRoomSelectedError,
    ReferentialIntegrityError,
    RoomNotFoundError,
    WardNotFoundError,
    is_foreign_key_violation,
    is_unique_violation,
)

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"\d+")


def extract_bed_number(bed_number: str) -> Optional[int]:
    """First run of digits in a bed number ("B-7" -> 7), None without digits."""
    match = _DIGITS.search(bed_number or "")
    return int(match.group(0)) if match else None


def next_bed_number(existing: Iterable[str]) -> int:
    """
    max(numeric part) + 1 over the room's bed numbers; entries without
    digits do not contribute. 1 for an empty room.
    """
    numbers = [n for n in (extract_bed_number(b) for b in existing) if n is not None]
    return max(numbers) + 1 if numbers else 1


def _translate_integrity_error(e: IntegrityError, *, field: str, duplicate_message: str, reference_message: str):
    if is_unique_violation(e):
        return DuplicateNameError(field, duplicate_message)
    if is_foreign_key_violation(e):
        return ReferentialIntegrityError(reference_message)
    return None


# Wards


async def list_wards(store: InventoryStore, *, include_inactive: bool = False) -> list[Ward]:
    async with store.session() as db:
        query = select(Ward)
        if not include_inactive:
            query = query.where(Ward.is_active.is_(True))
        result = await db.execute(query.order_by(Ward.name))
        return list(result.scalars().all())


async def _get_ward(db: AsyncSession, ward_id: UUID) -> Ward:
    ward = await db.get(Ward, ward_id)
    if not ward:
        raise WardNotFoundError(ward_id)
    return ward


async def create_wards(store: InventoryStore, payloads: list[WardCreate]) -> list[Ward]:
    duplicate_message = (
        "A ward with this name already exists."
        if len(payloads) == 1
        else "One or more of these wards already exist. Try a different base name."
    )
    try:
        async with store.transaction() as db:
            wards = [Ward(**payload.model_dump()) for payload in payloads]
            db.add_all(wards)
            await db.flush()
            record_change(db, "wards", ChangeType.INSERT, [w.id for w in wards])
    except IntegrityError as e:
        translated = _translate_integrity_error(
            e,
            field="name",
            duplicate_message=duplicate_message,
            reference_message="Ward could not be created.",
        )
        if translated:
            raise translated from e
        raise

    logger.info(f"Created {len(wards)} ward(s)")
    return wards


async def create_ward(store: InventoryStore, payload: WardCreate) -> Ward:
    wards = await create_wards(store, [payload])
    return wards[0]


async def create_wards_batch(store: InventoryStore, payload: WardBatchCreate) -> list[Ward]:
    payloads = [
        WardCreate(
            name=f"{payload.base_name} {i}",
            ward_type=payload.ward_type,
            gender_specific=payload.gender_specific,
            capacity=payload.capacity,
        )
        for i in range(1, payload.count + 1)
    ]
    return await create_wards(store, payloads)


async def update_ward(store: InventoryStore, ward_id: UUID, payload: WardUpdate) -> Ward:
    try:
        async with store.transaction() as db:
            ward = await _get_ward(db, ward_id)
            for key, value in payload.model_dump(exclude_unset=True).items():
                setattr(ward, key, value)
            await db.flush()
            record_change(db, "wards", ChangeType.UPDATE, ward.id)
    except IntegrityError as e:
        translated = _translate_integrity_error(
            e,
            field="name",
            duplicate_message="A ward with this name already exists.",
            reference_message="Ward could not be updated.",
        )
        if translated:
            raise translated from e
        raise
    return ward


async def deactivate_ward(store: InventoryStore, ward_id: UUID) -> Ward:
    return await update_ward(store, ward_id, WardUpdate(is_active=False))


async def delete_ward(store: InventoryStore, ward_id: UUID) -> int:
    """
    Hard delete: removes the ward, its rooms and their beds (assignment
    history goes with the beds). Refused while any of those beds is occupied
    or reserved. Returns the number of beds removed.
    """
    async with store.transaction() as db:
        await _get_ward(db, ward_id)
        room_ids = list((await db.scalars(select(Room.id).where(Room.ward_id == ward_id))).all())

        bed_ids: list[UUID] = []
        if room_ids:
            held = await db.scalar(
                select(func.count(Bed.id)).where(
                    Bed.room_id.in_(room_ids),
                    Bed.status.in_([BedStatus.OCCUPIED, BedStatus.RESERVED]),
                )
            )
            if held:
                raise ReferentialIntegrityError(
                    f"Cannot delete ward: {held} bed(s) in it are occupied or reserved. "
                    "Check out or release them first."
                )
            bed_ids = list((await db.scalars(select(Bed.id).where(Bed.room_id.in_(room_ids)))).all())

        if bed_ids:
            await db.execute(delete(BedAssignment).where(BedAssignment.bed_id.in_(bed_ids)))
            await db.execute(delete(Bed).where(Bed.id.in_(bed_ids)))
            record_change(db, "beds", ChangeType.DELETE, bed_ids)
        if room_ids:
            await db.execute(delete(Room).where(Room.id.in_(room_ids)))
            record_change(db, "rooms", ChangeType.DELETE, room_ids)
        await db.execute(delete(Ward).where(Ward.id == ward_id))
        record_change(db, "wards", ChangeType.DELETE, ward_id)

    logger.info(f"Deleted ward {ward_id} with {len(room_ids)} room(s) and {len(bed_ids)} bed(s)")
    return len(bed_ids)


# Rooms


async def list_rooms(
    store: InventoryStore,
    ward_id: Optional[UUID] = None,
    *,
    include_inactive: bool = False,
) -> list[RoomResponse]:
    async with store.session() as db:
        query = select(Room).options(selectinload(Room.ward))
        if not include_inactive:
            query = query.where(Room.is_active.is_(True))
        if ward_id:
            query = query.where(Room.ward_id == ward_id)
        result = await db.execute(query.order_by(Room.name))
        rooms = []
        for room in result.scalars().all():
            response = RoomResponse.model_validate(room)
            response.ward_name = room.ward.name if room.ward else None
            rooms.append(response)
        return rooms


async def _get_room(db: AsyncSession, room_id: UUID) -> Room:
    room = await db.get(Room, room_id)
    if not room:
        raise RoomNotFoundError(room_id)
    return room


async def create_rooms(store: InventoryStore, payloads: list[RoomCreate]) -> list[Room]:
    duplicate_message = (
        "A room with this name already exists in this ward."
        if len(payloads) == 1
        else "One or more of these rooms already exist in this ward."
    )
    try:
        async with store.transaction() as db:
            for ward_id in {p.ward_id for p in payloads}:
                await _get_ward(db, ward_id)
            rooms = [Room(**payload.model_dump()) for payload in payloads]
            db.add_all(rooms)
            await db.flush()
            record_change(db, "rooms", ChangeType.INSERT, [r.id for r in rooms])
    except IntegrityError as e:
        translated = _translate_integrity_error(
            e,
            field="name",
            duplicate_message=duplicate_message,
            reference_message="Please select a valid ward.",
        )
        if translated:
            raise translated from e
        raise

    logger.info(f"Created {len(rooms)} room(s)")
    return rooms


async def create_room(store: InventoryStore, payload: RoomCreate) -> Room:
    rooms = await create_rooms(store, [payload])
    return rooms[0]


async def create_rooms_batch(store: InventoryStore, payload: RoomBatchCreate) -> list[Room]:
    payloads = [
        RoomCreate(
            ward_id=payload.ward_id,
            name=payload.name if payload.count == 1 else f"{payload.name} {i}",
            room_type=payload.room_type,
            gender_specific=payload.gender_specific,
            capacity=payload.capacity,
        )
        for i in range(1, payload.count + 1)
    ]
    return await create_rooms(store, payloads)


async def update_room(store: InventoryStore, room_id: UUID, payload: RoomUpdate) -> Room:
    try:
        async with store.transaction() as db:
            room = await _get_room(db, room_id)
            for key, value in payload.model_dump(exclude_unset=True).items():
                setattr(room, key, value)
            await db.flush()
            record_change(db, "rooms", ChangeType.UPDATE, room.id)
    except IntegrityError as e:
        translated = _translate_integrity_error(
            e,
            field="name",
            duplicate_message="A room with this name already exists in this ward.",
            reference_message="Room could not be updated.",
        )
        if translated:
            raise translated from e
        raise
    return room


async def deactivate_room(store: InventoryStore, room_id: UUID) -> Room:
    return await update_room(store, room_id, RoomUpdate(is_active=False))


async def delete_room(store: InventoryStore, room_id: UUID) -> None:
    """Only an empty room can be deleted."""
    message = "Cannot delete room because it contains beds. Please remove or move the beds first."
    try:
        async with store.transaction() as db:
            await _get_room(db, room_id)
            has_beds = await db.scalar(select(exists().where(Bed.room_id == room_id)))
            if has_beds:
                raise ReferentialIntegrityError(message)
            await db.execute(delete(Room).where(Room.id == room_id))
            record_change(db, "rooms", ChangeType.DELETE, room_id)
    except IntegrityError as e:
        if is_foreign_key_violation(e):
            raise ReferentialIntegrityError(message) from e
        raise
    logger.info(f"Deleted room {room_id}")


# Beds


async def add_bed(store: InventoryStore, payload: BedCreate) -> Bed:
    try:
        async with store.transaction() as db:
            await _get_room(db, payload.room_id)
            bed = Bed(
                room_id=payload.room_id,
                bed_number=payload.bed_number.strip(),
                bed_type=payload.bed_type,
                status=BedStatus.AVAILABLE,
                is_active=True,
            )
            db.add(bed)
            await db.flush()
            record_change(db, "beds", ChangeType.INSERT, bed.id)
    except IntegrityError as e:
        translated = _translate_integrity_error(
            e,
            field="bed_number",
            duplicate_message="A bed with this number already exists in this room.",
            reference_message="Please select a valid room.",
        )
        if translated:
            raise translated from e
        raise
    return bed


async def create_beds_in_session(
    db: AsyncSession,
    room_id: UUID,
    count: int,
    *,
    bed_type: BedType = BedType.EMERGENCY,
) -> list[Bed]:
    """
    Add `count` available beds to a room, numbered after the room's highest
    numeric bed number (inactive beds included, so numbers are not reused).
    """
    existing = (await db.scalars(select(Bed.bed_number).where(Bed.room_id == room_id))).all()
    start = next_bed_number(existing)
    beds = [
        Bed(
            room_id=room_id,
            bed_number=str(start + i),
            bed_type=bed_type,
            status=BedStatus.AVAILABLE,
            is_active=True,
        )
        for i in range(count)
    ]
    db.add_all(beds)
    await db.flush()
    record_change(db, "beds", ChangeType.INSERT, [b.id for b in beds])
    return beds


async def quick_add_beds(
    store: InventoryStore,
    room_id: Optional[UUID],
    count: int = 1,
    *,
    bed_type: BedType = BedType.EMERGENCY,
) -> list[Bed]:
    if room_id is None:
        raise NoRoomSelectedError()
    max_batch = store.settings.max_batch_beds
    if count < 1 or count > max_batch:
        raise ValueError(f"Batch size must be between 1 and {max_batch}")

    try:
        async with store.transaction() as db:
            await _get_room(db, room_id)
            beds = await create_beds_in_session(db, room_id, count, bed_type=bed_type)
    except IntegrityError as e:
        # another session numbered the same beds concurrently
        translated = _translate_integrity_error(
            e,
            field="bed_number",
            duplicate_message="Bed numbers changed while adding beds. Please try again.",
            reference_message="Please select a valid room.",
        )
        if translated:
            raise translated from e
        raise

    logger.info(f"Quick-added {count} bed(s) to room {room_id}: {[b.bed_number for b in beds]}")
    return beds


async def deactivate_bed(store: InventoryStore, bed_id: UUID) -> None:
    """
    Soft-delete a bed that holds no active assignment.
    """
    async with store.transaction() as db:
        has_active_assignment = (
            exists()
            .where(BedAssignment.bed_id == Bed.id, BedAssignment.end_date.is_(None))
        )
        result = await db.execute(
            update(Bed)
            .where(
                Bed.id == bed_id,
                Bed.is_active.is_(True),
                Bed.status.in_([BedStatus.AVAILABLE, BedStatus.MAINTENANCE]),
                ~has_active_assignment,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            bed = await db.get(Bed, bed_id)
            if bed is None or not bed.is_active:
                raise BedNotFoundError(bed_id)
            raise BedConflictError(bed_id, expected="available", actual=bed.status.value)
        record_change(db, "beds", ChangeType.UPDATE, bed_id)
    logger.info(f"Deactivated bed {bed_id}")


def _removal_order_key(bed: Bed) -> int:
    return extract_bed_number(bed.bed_number) or 0


async def remove_available_beds(store: InventoryStore, room_id: UUID, count: int) -> list[UUID]:
    """
    Hard-delete `count` available beds from a room, highest bed number
    first. Occupied, reserved and maintenance beds are never touched.
    """
    async with store.transaction() as db:
        await _get_room(db, room_id)
        result = await db.execute(
            select(Bed).where(
                Bed.room_id == room_id,
                Bed.is_active.is_(True),
                Bed.status == BedStatus.AVAILABLE,
            )
        )
        available = list(result.scalars().all())
        if count < 1 or count > len(available):
            raise ValueError(f"Only {len(available)} available bed(s) can be removed from this room")

        chosen = sorted(available, key=_removal_order_key, reverse=True)[:count]
        bed_ids = [bed.id for bed in chosen]
        await db.execute(
            delete(BedAssignment)
            .where(BedAssignment.bed_id.in_(bed_ids))
            .execution_options(synchronize_session=False)
        )
        deleted = await db.execute(
            delete(Bed)
            .where(Bed.id.in_(bed_ids), Bed.status == BedStatus.AVAILABLE)
            .execution_options(synchronize_session=False)
        )
        if deleted.rowcount != len(bed_ids):
            # a chosen bed was taken in the meantime; keep the room untouched
            raise BedConflictError(room_id, expected="available", actual="changed")
        record_change(db, "beds", ChangeType.DELETE, bed_ids)

    logger.info(f"Removed {len(bed_ids)} bed(s) from room {room_id}")
    return bed_ids


async def start_maintenance(store: InventoryStore, bed_id: UUID) -> None:
    async with store.transaction() as db:
        await transition_bed(db, bed_id, BedStatus.AVAILABLE, BedStatus.MAINTENANCE)


async def end_maintenance(store: InventoryStore, bed_id: UUID) -> None:
    async with store.transaction() as db:
        await transition_bed(db, bed_id, BedStatus.MAINTENANCE, BedStatus.AVAILABLE)
