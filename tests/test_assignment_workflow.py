# tests/test_assignment_workflow.py
import asyncio
from datetime import date
from uuid import uuid4

import pytest
from pydantic import ValidationError

from shelter.models.enums import ApprovalStatus, BedStatus, GenderRestriction
from shelter.schemas.assignment import ExitMetadata, QuickCheckInRequest
from shelter.services import assignment_service
from shelter.services.errors import (
    BedConflictError,
    BedNotFoundError,
    ClientNotFoundError,
    EnrollmentNotFoundError,
    GenderRestrictionError,
    NoActiveAssignmentError,
    NoProjectConfiguredError,
)
from shelter.utils.datetime_utils import today


async def assert_status_matches_assignments(factory, beds):
    """occupied/reserved <=> exactly one open assignment."""
    for bed in beds:
        current = await factory.get_bed(bed.id)
        active = await factory.assignments(bed_id=bed.id, active_only=True)
        if current.status in (BedStatus.OCCUPIED, BedStatus.RESERVED):
            assert len(active) == 1, f"bed {current.bed_number} is {current.status} with {len(active)} open"
        else:
            assert active == [], f"bed {current.bed_number} is {current.status} with open assignments"


# assign


async def test_assign_creates_enrollment_and_occupies_bed(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()

    assignment = await assignment_service.assign(factory.store, bed.id, client.id)

    assert (await factory.get_bed(bed.id)).status == BedStatus.OCCUPIED
    assert assignment.bed_id == bed.id
    assert assignment.start_date == today()
    assert assignment.end_date is None
    enrollments = await factory.enrollments(client.id)
    assert len(enrollments) == 1
    assert enrollments[0].is_active
    assert enrollments[0].project_id == project.id
    assert enrollments[0].entry_date == today()
    assert assignment.enrollment_id == enrollments[0].id


async def test_assign_reuses_the_active_enrollment(factory, project, room):
    bed_1 = await factory.bed(room)
    bed_2 = await factory.bed(room)
    client = await factory.client()

    first = await assignment_service.assign(factory.store, bed_1.id, client.id)
    await assignment_service.check_out(factory.store, bed_1.id)
    second = await assignment_service.assign(factory.store, bed_2.id, client.id)

    enrollments = await factory.enrollments(client.id)
    assert len(enrollments) == 1
    assert first.enrollment_id == second.enrollment_id == enrollments[0].id


async def test_assign_without_project_fails_and_leaves_bed_available(factory, room):
    bed = await factory.bed(room)
    client = await factory.client()

    with pytest.raises(NoProjectConfiguredError):
        await assignment_service.assign(factory.store, bed.id, client.id)

    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE
    assert await factory.assignments(bed_id=bed.id) == []
    assert await factory.enrollments(client.id) == []


async def test_assign_to_occupied_bed_is_a_conflict(factory, project, room):
    bed = await factory.bed(room)
    first = await factory.client()
    second = await factory.client()
    await assignment_service.assign(factory.store, bed.id, first.id)

    with pytest.raises(BedConflictError) as exc_info:
        await assignment_service.assign(factory.store, bed.id, second.id)

    assert exc_info.value.actual == "occupied"
    assert len(await factory.assignments(bed_id=bed.id)) == 1
    assert await factory.enrollments(second.id) == []


async def test_assign_unknown_bed_or_client(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()

    with pytest.raises(ClientNotFoundError):
        await assignment_service.assign(factory.store, bed.id, uuid4())
    with pytest.raises(BedNotFoundError):
        await assignment_service.assign(factory.store, uuid4(), client.id)


async def test_concurrent_assigns_to_one_bed_have_one_winner(factory, project, room):
    bed = await factory.bed(room)
    client_x = await factory.client("X")
    client_y = await factory.client("Y")

    results = await asyncio.gather(
        assignment_service.assign(factory.store, bed.id, client_x.id),
        assignment_service.assign(factory.store, bed.id, client_y.id),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], BedConflictError)
    assert (await factory.get_bed(bed.id)).status == BedStatus.OCCUPIED
    assert len(await factory.assignments(bed_id=bed.id, active_only=True)) == 1


# reserve / check_in / release


async def test_reserve_then_release_touches_no_enrollment(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()

    reservation = await assignment_service.reserve(factory.store, bed.id, client.id)
    assert (await factory.get_bed(bed.id)).status == BedStatus.RESERVED
    assert reservation.enrollment_id is None

    closed = await assignment_service.release(factory.store, bed.id)

    assert closed == 1
    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE
    [assignment] = await factory.assignments(bed_id=bed.id)
    assert assignment.end_date == today()
    assert await factory.enrollments(client.id) == []


async def test_reserve_does_not_need_a_project(factory, room):
    bed = await factory.bed(room)
    client = await factory.client()

    await assignment_service.reserve(factory.store, bed.id, client.id)

    assert (await factory.get_bed(bed.id)).status == BedStatus.RESERVED


async def test_check_in_only_changes_status(factory, room):
    bed = await factory.bed(room)
    client = await factory.client()
    reservation = await assignment_service.reserve(factory.store, bed.id, client.id)

    await assignment_service.check_in(factory.store, bed.id)

    assert (await factory.get_bed(bed.id)).status == BedStatus.OCCUPIED
    [assignment] = await factory.assignments(bed_id=bed.id)
    assert assignment.id == reservation.id
    assert assignment.end_date is None
    assert assignment.enrollment_id is None
    assert await factory.enrollments(client.id) == []


async def test_check_in_and_release_require_a_reservation(factory, room):
    bed = await factory.bed(room)

    with pytest.raises(BedConflictError):
        await assignment_service.check_in(factory.store, bed.id)
    with pytest.raises(BedConflictError):
        await assignment_service.release(factory.store, bed.id)


# check_out


async def test_check_out_keeps_enrollment_open(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()
    assignment = await assignment_service.assign(factory.store, bed.id, client.id)

    result = await assignment_service.check_out(factory.store, bed.id, date(2024, 1, 15))

    assert result.id == assignment.id
    assert result.end_date == date(2024, 1, 15)
    [stored] = await factory.assignments(bed_id=bed.id)
    assert stored.end_date == date(2024, 1, 15)
    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE
    [enrollment] = await factory.enrollments(client.id)
    assert enrollment.is_active
    assert enrollment.exit_date is None


async def test_second_check_out_fails_without_touching_state(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()
    await assignment_service.assign(factory.store, bed.id, client.id)
    await assignment_service.check_out(factory.store, bed.id, date(2024, 1, 15))

    with pytest.raises(NoActiveAssignmentError):
        await assignment_service.check_out(factory.store, bed.id, date(2024, 2, 1))

    [stored] = await factory.assignments(bed_id=bed.id)
    assert stored.end_date == date(2024, 1, 15)
    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE


async def test_check_out_with_stale_assignment_id_falls_back_to_lookup(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()
    first = await assignment_service.assign(factory.store, bed.id, client.id)
    await assignment_service.check_out(factory.store, bed.id)
    second = await assignment_service.assign(factory.store, bed.id, client.id)

    result = await assignment_service.check_out(factory.store, bed.id, assignment_id=first.id)

    assert result.id == second.id


async def test_check_out_unknown_bed(store):
    with pytest.raises(BedNotFoundError):
        await assignment_service.check_out(store, uuid4())


async def test_status_invariant_holds_across_a_sequence(factory, project, room):
    beds = [await factory.bed(room) for _ in range(3)]
    clients = [await factory.client() for _ in range(3)]
    store = factory.store

    await assignment_service.assign(store, beds[0].id, clients[0].id)
    await assignment_service.reserve(store, beds[1].id, clients[1].id)
    await assignment_service.check_out(store, beds[0].id)
    await assignment_service.assign(store, beds[0].id, clients[2].id)
    await assignment_service.check_in(store, beds[1].id)
    await assignment_service.reserve(store, beds[2].id, clients[0].id)
    await assignment_service.release(store, beds[2].id)
    with pytest.raises(BedConflictError):
        await assignment_service.assign(store, beds[1].id, clients[0].id)
    await assignment_service.check_out(store, beds[1].id)

    await assert_status_matches_assignments(factory, beds)
    for client in clients:
        active = [e for e in await factory.enrollments(client.id) if e.is_active and e.exit_date is None]
        assert len(active) <= 1


# discharge


async def test_discharge_closes_enrollment_and_archives_client(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()
    assignment = await assignment_service.assign(factory.store, bed.id, client.id)
    await assignment_service.check_out(factory.store, bed.id)

    meta = ExitMetadata(exit_date=date(2024, 3, 1), destination=3, exit_reason="Moved to family shelter")
    await assignment_service.discharge(factory.store, client.id, assignment.enrollment_id, meta)

    [enrollment] = await factory.enrollments(client.id)
    assert not enrollment.is_active
    assert enrollment.exit_date == date(2024, 3, 1)
    assert enrollment.destination == 3
    assert enrollment.exit_reason == "Moved to family shelter"
    assert not (await factory.get_client(client.id)).is_active


async def test_discharge_without_enrollment_only_archives(factory):
    client = await factory.client()

    await assignment_service.discharge(factory.store, client.id, None, ExitMetadata(destination=17))

    assert not (await factory.get_client(client.id)).is_active


async def test_discharge_with_someone_elses_enrollment(factory, project, room):
    bed = await factory.bed(room)
    owner = await factory.client()
    other = await factory.client()
    assignment = await assignment_service.assign(factory.store, bed.id, owner.id)

    with pytest.raises(EnrollmentNotFoundError):
        await assignment_service.discharge(
            factory.store, other.id, assignment.enrollment_id, ExitMetadata(destination=1)
        )

    assert (await factory.get_client(other.id)).is_active


def test_exit_destination_must_be_a_known_code():
    with pytest.raises(ValidationError):
        ExitMetadata(destination=99)
    assert ExitMetadata(destination=24).destination == 24


# quick check-in


async def test_quick_check_in_lists_only_gender_compatible_beds(factory, project):
    ward = await factory.ward("Main")
    men = await factory.room(ward, "Men", gender_specific=GenderRestriction.MALE)
    women = await factory.room(ward, "Women", gender_specific=GenderRestriction.FEMALE)
    shared = await factory.room(ward, "Shared", gender_specific=GenderRestriction.ANY)
    bed_m = await factory.bed(men, "M1")
    bed_w = await factory.bed(women, "W1")
    bed_s = await factory.bed(shared, "S1")
    legacy = await factory.bed(None, "L1")
    await factory.bed(shared, "S2", status=BedStatus.MAINTENANCE)

    beds = await assignment_service.list_quick_check_in_beds(factory.store, "Female")

    assert {b.id for b in beds} == {bed_w.id, bed_s.id, legacy.id}
    assert bed_m.id not in {b.id for b in beds}


async def test_quick_check_in_creates_approved_client_on_bed(factory, project):
    ward = await factory.ward("Main")
    room = await factory.room(ward, "Women", gender_specific=GenderRestriction.FEMALE)
    bed = await factory.bed(room)

    assignment = await assignment_service.quick_check_in(
        factory.store,
        QuickCheckInRequest(first_name="Dana", last_name="Okafor", sex="female", bed_id=bed.id),
    )

    client = await factory.get_client(assignment.client_id)
    assert client.approval_status == ApprovalStatus.APPROVED
    assert client.is_active
    assert (await factory.get_bed(bed.id)).status == BedStatus.OCCUPIED
    assert len(await factory.enrollments(client.id)) == 1


async def test_quick_check_in_rejects_restricted_room(factory, project):
    ward = await factory.ward("Main")
    room = await factory.room(ward, "Men", gender_specific=GenderRestriction.MALE)
    bed = await factory.bed(room)

    with pytest.raises(GenderRestrictionError):
        await assignment_service.quick_check_in(
            factory.store,
            QuickCheckInRequest(first_name="Dana", last_name="Okafor", sex="female", bed_id=bed.id),
        )

    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE


async def test_quick_check_in_needs_a_project(factory, room):
    bed = await factory.bed(room)

    with pytest.raises(NoProjectConfiguredError):
        await assignment_service.quick_check_in(
            factory.store,
            QuickCheckInRequest(first_name="Dana", last_name="Okafor", sex="female", bed_id=bed.id),
        )

    assert (await factory.get_bed(bed.id)).status == BedStatus.AVAILABLE


# change events


async def test_committed_workflow_publishes_changes(factory, project, room):
    bed = await factory.bed(room)
    client = await factory.client()
    received = []

    async def on_change(event):
        received.append((event.table, event.event_type.value))

    factory.store.subscribe("beds", "*", on_change)
    factory.store.subscribe("bed_assignments", "*", on_change)

    await assignment_service.assign(factory.store, bed.id, client.id)
    await factory.store.feed.drain()

    assert ("beds", "UPDATE") in received
    assert ("bed_assignments", "INSERT") in received


async def test_failed_workflow_publishes_nothing(factory, room):
    bed = await factory.bed(room)
    client = await factory.client()
    received = []

    async def on_change(event):
        received.append(event)

    factory.store.subscribe("beds", "*", on_change)

    with pytest.raises(NoProjectConfiguredError):
        await assignment_service.assign(factory.store, bed.id, client.id)
    await factory.store.feed.drain()

    assert received == []
