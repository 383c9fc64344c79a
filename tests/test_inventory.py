# tests/test_inventory.py
from uuid import uuid4

import pytest
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.enums import BedStatus, BedType
from shelter.models.room import Room
from shelter.schemas.bed import BedCreate
from shelter.schemas.room import RoomBatchCreate, RoomCreate, RoomUpdate
from shelter.schemas.ward import WardBatchCreate, WardCreate, WardUpdate
from shelter.services import assignment_service, inventory_service
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
from shelter.services.inventory_service import extract_bed_number, next_bed_number
from shelter.services.occupancy_service import load_snapshot


# Numbering


@pytest.mark.parametrize(
    "bed_number, expected",
    [("01", 1), ("B-7", 7), ("12A", 12), ("Bed 3 / 4", 3), ("Mat", None), ("", None)],
)
def test_extract_bed_number(bed_number, expected):
    assert extract_bed_number(bed_number) == expected


def test_next_bed_number_skips_entries_without_digits():
    assert next_bed_number(["01", "03", "B-7"]) == 8
    assert next_bed_number(["Mat", "Cot"]) == 1
    assert next_bed_number([]) == 1


async def test_quick_add_continues_numeric_sequence(factory, room):
    for number in ("01", "03", "B-7", "Cot"):
        await factory.bed(room, number)

    beds = await inventory_service.quick_add_beds(factory.store, room.id, 2)

    assert [b.bed_number for b in beds] == ["8", "9"]
    assert all(b.status == BedStatus.AVAILABLE for b in beds)
    numbers = {b.bed_number for b in await factory.beds_in(room)}
    assert numbers == {"01", "03", "B-7", "Cot", "8", "9"}


async def test_quick_add_numbering_counts_inactive_beds(factory, room):
    await factory.bed(room, "5", is_active=False)

    [bed] = await inventory_service.quick_add_beds(factory.store, room.id, 1, bed_type=BedType.MAT)

    assert bed.bed_number == "6"
    assert bed.bed_type == BedType.MAT


async def test_quick_add_requires_a_room(store):
    with pytest.raises(NoRoomSelectedError):
        await inventory_service.quick_add_beds(store, None, 1)


async def test_quick_add_batch_size_is_bounded(factory, room):
    with pytest.raises(ValueError):
        await inventory_service.quick_add_beds(factory.store, room.id, 51)
    with pytest.raises(ValueError):
        await inventory_service.quick_add_beds(factory.store, room.id, 0)
    with pytest.raises(RoomNotFoundError):
        await inventory_service.quick_add_beds(factory.store, uuid4(), 1)


# Beds


async def test_add_bed_duplicate_number_names_the_field(factory, room):
    await inventory_service.add_bed(factory.store, BedCreate(room_id=room.id, bed_number="12"))

    with pytest.raises(DuplicateNameError) as exc_info:
        await inventory_service.add_bed(factory.store, BedCreate(room_id=room.id, bed_number="12"))

    assert exc_info.value.field == "bed_number"
    assert exc_info.value.status_code == 409


async def test_same_bed_number_in_another_room_is_fine(factory, room):
    other = await factory.room(await factory.ward(), "Room B")
    await inventory_service.add_bed(factory.store, BedCreate(room_id=room.id, bed_number="1"))

    bed = await inventory_service.add_bed(factory.store, BedCreate(room_id=other.id, bed_number="1"))

    assert bed.room_id == other.id


async def test_deactivate_bed_hides_it_from_snapshot(factory, room):
    bed = await factory.bed(room)

    await inventory_service.deactivate_bed(factory.store, bed.id)

    assert not (await factory.get_bed(bed.id)).is_active
    assert (await load_snapshot(factory.store)).beds == []
    with pytest.raises(BedNotFoundError):
        await inventory_service.deactivate_bed(factory.store, bed.id)


async def test_deactivate_occupied_bed_is_refused(factory, project, room):
    bed = await factory.bed(room)
    await assignment_service.assign(factory.store, bed.id, (await factory.client()).id)

    with pytest.raises(BedConflictError):
        await inventory_service.deactivate_bed(factory.store, bed.id)

    assert (await factory.get_bed(bed.id)).is_active


async def test_remove_available_beds_takes_highest_numbers_first(factory, project, room):
    for number in ("1", "2", "10", "9"):
        await factory.bed(room, number)
    occupied = await factory.bed(room, "11")
    await assignment_service.assign(factory.store, occupied.id, (await factory.client()).id)

    removed = await inventory_service.remove_available_beds(factory.store, room.id, 2)

    assert len(removed) == 2
    remaining = {b.bed_number for b in await factory.beds_in(room)}
    assert remaining == {"1", "2", "11"}


async def test_remove_more_beds_than_available_is_refused(factory, project, room):
    await factory.bed(room, "1")
    await factory.bed(room, "2", status=BedStatus.MAINTENANCE)

    with pytest.raises(ValueError):
        await inventory_service.remove_available_beds(factory.store, room.id, 2)

    assert len(await factory.beds_in(room)) == 2


async def test_removed_beds_take_their_history_with_them(factory, project, room):
    bed = await factory.bed(room, "1")
    await assignment_service.assign(factory.store, bed.id, (await factory.client()).id)
    await assignment_service.check_out(factory.store, bed.id)

    await inventory_service.remove_available_beds(factory.store, room.id, 1)

    async with factory.store.session() as db:
        assert (await db.scalars(select(BedAssignment))).all() == []


async def test_maintenance_round_trip(factory, project, room):
    bed = await factory.bed(room)

    await inventory_service.start_maintenance(factory.store, bed.id)
    snapshot = await load_snapshot(factory.store)
    assert snapshot.beds[0].status == BedStatus.MAINTENANCE
    assert snapshot.stats.total == 0

    await inventory_service.end_maintenance(factory.store, bed.id)
    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE


async def test_occupied_bed_cannot_go_into_maintenance(factory, project, room):
    bed = await factory.bed(room)
    await assignment_service.assign(factory.store, bed.id, (await factory.client()).id)

    with pytest.raises(BedConflictError):
        await inventory_service.start_maintenance(factory.store, bed.id)


# Wards


async def test_duplicate_ward_name_names_the_field(store):
    await inventory_service.create_ward(store, WardCreate(name="East"))

    with pytest.raises(DuplicateNameError) as exc_info:
        await inventory_service.create_ward(store, WardCreate(name="East"))

    assert exc_info.value.field == "name"
    assert "already exists" in exc_info.value.message


async def test_ward_batch_is_numbered_and_atomic(store):
    await inventory_service.create_ward(store, WardCreate(name="Wing 2"))

    with pytest.raises(DuplicateNameError):
        await inventory_service.create_wards_batch(store, WardBatchCreate(base_name="Wing", count=3))
    assert [w.name for w in await inventory_service.list_wards(store)] == ["Wing 2"]

    wards = await inventory_service.create_wards_batch(store, WardBatchCreate(base_name="Annex", count=2))
    assert [w.name for w in wards] == ["Annex 1", "Annex 2"]


async def test_update_and_deactivate_ward(store):
    ward = await inventory_service.create_ward(store, WardCreate(name="East"))

    updated = await inventory_service.update_ward(store, ward.id, WardUpdate(name="East Wing", capacity=20))
    assert updated.name == "East Wing"
    assert updated.capacity == 20

    await inventory_service.deactivate_ward(store, ward.id)
    assert await inventory_service.list_wards(store) == []
    assert len(await inventory_service.list_wards(store, include_inactive=True)) == 1

    with pytest.raises(WardNotFoundError):
        await inventory_service.update_ward(store, uuid4(), WardUpdate(name="Nope"))


async def test_delete_ward_with_occupied_bed_is_refused(factory, project, room):
    bed = await factory.bed(room)
    await assignment_service.assign(factory.store, bed.id, (await factory.client()).id)

    with pytest.raises(ReferentialIntegrityError) as exc_info:
        await inventory_service.delete_ward(factory.store, room.ward_id)

    assert "occupied or reserved" in exc_info.value.message
    assert (await factory.get_bed(bed.id)) is not None


async def test_delete_ward_removes_rooms_and_free_beds(factory, room):
    await factory.bed(room, "1")
    await factory.bed(room, "2")

    removed = await inventory_service.delete_ward(factory.store, room.ward_id)

    assert removed == 2
    async with factory.store.session() as db:
        assert (await db.scalars(select(Room))).all() == []
        assert (await db.scalars(select(Bed))).all() == []


# Rooms


async def test_room_names_are_unique_per_ward(store):
    east = await inventory_service.create_ward(store, WardCreate(name="East"))
    west = await inventory_service.create_ward(store, WardCreate(name="West"))
    await inventory_service.create_room(store, RoomCreate(ward_id=east.id, name="Dorm"))
    await inventory_service.create_room(store, RoomCreate(ward_id=west.id, name="Dorm"))

    with pytest.raises(DuplicateNameError) as exc_info:
        await inventory_service.create_room(store, RoomCreate(ward_id=east.id, name="Dorm"))

    assert exc_info.value.field == "name"


async def test_create_room_in_unknown_ward(store):
    with pytest.raises(WardNotFoundError):
        await inventory_service.create_room(store, RoomCreate(ward_id=uuid4(), name="Dorm"))


async def test_room_batch_naming(store):
    ward = await inventory_service.create_ward(store, WardCreate(name="East"))

    [single] = await inventory_service.create_rooms_batch(
        store, RoomBatchCreate(ward_id=ward.id, name="Family Suite", count=1)
    )
    many = await inventory_service.create_rooms_batch(
        store, RoomBatchCreate(ward_id=ward.id, name="Dorm", count=3)
    )

    assert single.name == "Family Suite"
    assert [r.name for r in many] == ["Dorm 1", "Dorm 2", "Dorm 3"]


async def test_list_rooms_by_ward_carries_ward_name(factory):
    east = await factory.ward("East")
    west = await factory.ward("West")
    await factory.room(east, "A")
    await factory.room(west, "B")
    await factory.room(east, "C", is_active=False)

    rooms = await inventory_service.list_rooms(factory.store, east.id)

    assert [(r.name, r.ward_name) for r in rooms] == [("A", "East")]


async def test_update_and_deactivate_room(factory, room):
    updated = await inventory_service.update_room(factory.store, room.id, RoomUpdate(name="Room Z"))
    assert updated.name == "Room Z"

    await inventory_service.deactivate_room(factory.store, room.id)
    assert await inventory_service.list_rooms(factory.store) == []


async def test_delete_room_with_beds_is_refused(factory, room):
    await factory.bed(room)

    with pytest.raises(ReferentialIntegrityError) as exc_info:
        await inventory_service.delete_room(factory.store, room.id)

    assert "contains beds" in exc_info.value.message


async def test_delete_empty_room(factory, room):
    await inventory_service.delete_room(factory.store, room.id)

    assert await inventory_service.list_rooms(factory.store, include_inactive=True) == []
    with pytest.raises(RoomNotFoundError):
        await inventory_service.delete_room(factory.store, room.id)


async def test_store_rejects_deleting_room_with_beds(factory, room):
    """The RESTRICT foreign key backs the service-level check."""
    await factory.bed(room)

    with pytest.raises(IntegrityError) as exc_info:
        async with factory.store.transaction() as db:
            await db.execute(delete(Room).where(Room.id == room.id))

    assert is_foreign_key_violation(exc_info.value)
    assert not is_unique_violation(exc_info.value)
