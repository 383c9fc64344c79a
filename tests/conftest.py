# tests/conftest.py
import asyncio
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

import shelter.main as shelter_main
from shelter.core.config import Settings
from shelter.core.database import create_engine
from shelter.core.store import InventoryStore, record_change
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.client import Client
from shelter.models.enrollment import Enrollment
from shelter.models.enums import ApprovalStatus, BedStatus, GenderRestriction
from shelter.models.project import Project
from shelter.models.room import Room
from shelter.models.ward import Ward
from shelter.realtime.change_feed import ChangeType, LocalChangeFeed


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'shelter_test.db'}",
        redis_url=None,
        snapshot_timeout_seconds=5.0,
        page_load_timeout_seconds=5.0,
        client_search_debounce_ms=20,
    )


@pytest.fixture
async def store(settings):
    engine = create_engine(settings.database_url, echo=False)
    store = InventoryStore(engine, LocalChangeFeed(), settings=settings)
    await store.create_schema()
    await store.start()
    yield store
    await store.close()


class InventoryFactory:
    """Direct row creation for test setup, bypassing the workflows."""

    def __init__(self, store: InventoryStore):
        self.store = store
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _add(self, table: str, row):
        async with self.store.transaction() as db:
            db.add(row)
            await db.flush()
            record_change(db, table, ChangeType.INSERT, row.id)
        return row

    async def project(self, name: str = "Emergency Shelter") -> Project:
        return await self._add("projects", Project(name=name))

    async def ward(self, name: Optional[str] = None, **kwargs) -> Ward:
        return await self._add("wards", Ward(name=name or f"Ward {self._next()}", **kwargs))

    async def room(self, ward: Ward, name: Optional[str] = None, **kwargs) -> Room:
        kwargs.setdefault("gender_specific", GenderRestriction.ANY)
        return await self._add("rooms", Room(ward_id=ward.id, name=name or f"Room {self._next()}", **kwargs))

    async def bed(
        self,
        room: Optional[Room] = None,
        bed_number: Optional[str] = None,
        status: BedStatus = BedStatus.AVAILABLE,
        **kwargs,
    ) -> Bed:
        return await self._add(
            "beds",
            Bed(
                room_id=room.id if room else None,
                bed_number=bed_number or str(self._next()),
                status=status,
                **kwargs,
            ),
        )

    async def client(
        self,
        first_name: str = "Alex",
        last_name: Optional[str] = None,
        *,
        sex: str = "female",
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
        is_active: bool = True,
        **kwargs,
    ) -> Client:
        return await self._add(
            "clients",
            Client(
                first_name=first_name,
                last_name=last_name or f"Client{self._next():03d}",
                sex=sex,
                approval_status=approval_status,
                is_active=is_active,
                **kwargs,
            ),
        )

    # Readers

    async def get_bed(self, bed_id) -> Bed:
        async with self.store.session() as db:
            return await db.get(Bed, bed_id)

    async def get_client(self, client_id) -> Client:
        async with self.store.session() as db:
            return await db.get(Client, client_id)

    async def assignments(self, *, bed_id=None, client_id=None, active_only: bool = False) -> list[BedAssignment]:
        async with self.store.session() as db:
            query = select(BedAssignment).order_by(BedAssignment.created_at, BedAssignment.id)
            if bed_id is not None:
                query = query.where(BedAssignment.bed_id == bed_id)
            if client_id is not None:
                query = query.where(BedAssignment.client_id == client_id)
            if active_only:
                query = query.where(BedAssignment.end_date.is_(None))
            return list((await db.scalars(query)).all())

    async def enrollments(self, client_id=None) -> list[Enrollment]:
        async with self.store.session() as db:
            query = select(Enrollment)
            if client_id is not None:
                query = query.where(Enrollment.client_id == client_id)
            return list((await db.scalars(query)).all())

    async def beds_in(self, room: Room) -> list[Bed]:
        async with self.store.session() as db:
            result = await db.scalars(select(Bed).where(Bed.room_id == room.id).order_by(Bed.bed_number))
            return list(result.all())


@pytest.fixture
def factory(store) -> InventoryFactory:
    return InventoryFactory(store)


@pytest.fixture
async def project(factory) -> Project:
    return await factory.project()


@pytest.fixture
async def room(factory) -> Room:
    ward = await factory.ward("North Wing")
    return await factory.room(ward, "Room A")


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll `predicate` until it holds; fail the test on timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def eventually():
    return wait_until


class LiveApp:
    """
    The app served by Starlette's TestClient. The store lives on the
    client's event loop, so async setup goes through `run`.
    """

    def __init__(self, client: TestClient, store: InventoryStore):
        self.client = client
        self.store = store
        self.factory = InventoryFactory(store)

    def run(self, func, *args):
        return self.client.portal.call(func, *args)


@pytest.fixture
def live_app(settings, monkeypatch):
    monkeypatch.setattr(shelter_main, "get_settings", lambda: settings)
    app = shelter_main.create_app()
    with TestClient(app) as client:
        store = app.state.store
        client.portal.call(store.create_schema)
        yield LiveApp(client, store)
