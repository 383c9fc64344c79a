#!/usr/bin/env python3
# scripts/seed_inventory.py
"""
Inventory setup.
This script is safe to run many times (idempotent).

- Ensures the single Project row enrollments are created against.
- Optionally ensures the General ward and General Room used by bulk
  assignment, and N beds in that room.

Examples:
  # Project only
  python -m scripts.seed_inventory --ensure-project --project-name "Emergency Shelter"

  # Local SQLite database from scratch (no Alembic), with 10 general beds
  python -m scripts.seed_inventory --create-schema --ensure-project --ensure-general --beds 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sqlalchemy import func, select

from shelter.core.logging import configure_logging
from shelter.core.store import InventoryStore, record_change
from shelter.models.bed import Bed
from shelter.models.enums import GenderRestriction, RoomType, WardType
from shelter.models.project import Project
from shelter.models.room import Room
from shelter.models.ward import Ward
from shelter.realtime.change_feed import ChangeType
from shelter.services.inventory_service import create_beds_in_session

logger = logging.getLogger(__name__)


async def ensure_project(store: InventoryStore, name: str) -> Project:
    async with store.transaction() as db:
        existing = await db.scalar(select(Project).order_by(Project.created_at, Project.id).limit(1))
        if existing:
            print(f"project exists: {existing.name}")
            return existing

        project = Project(name=name)
        db.add(project)
        await db.flush()
        record_change(db, "projects", ChangeType.INSERT, project.id)
    print(f"project created: {name}")
    return project


async def ensure_general_room(store: InventoryStore, beds: int = 0) -> Room:
    """
    Ensure the General ward, its General Room, and at least `beds` beds in it.
    """
    settings = store.settings
    async with store.transaction() as db:
        ward = await db.scalar(select(Ward).where(Ward.name == settings.general_ward_name))
        if ward is None:
            ward = Ward(
                name=settings.general_ward_name,
                ward_type=WardType.GENERAL,
                gender_specific=GenderRestriction.ANY,
            )
            db.add(ward)
            await db.flush()
            record_change(db, "wards", ChangeType.INSERT, ward.id)
            print(f"ward created: {ward.name}")

        room = await db.scalar(
            select(Room).where(Room.ward_id == ward.id, Room.name == settings.general_room_name)
        )
        if room is None:
            room = Room(
                ward_id=ward.id,
                name=settings.general_room_name,
                room_type=RoomType.GENERAL,
                gender_specific=GenderRestriction.ANY,
            )
            db.add(room)
            await db.flush()
            record_change(db, "rooms", ChangeType.INSERT, room.id)
            print(f"room created: {room.name}")

        existing = await db.scalar(select(func.count(Bed.id)).where(Bed.room_id == room.id))
        missing = max(0, beds - existing)
        if missing:
            await create_beds_in_session(db, room.id, missing)
            print(f"beds added to {room.name}: {missing}")
    return room


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Shelter inventory setup")
    p.add_argument("--create-schema", action="store_true", help="Create tables directly (local SQLite, no Alembic)")
    p.add_argument("--ensure-project", action="store_true", help="Ensure the project row exists")
    p.add_argument("--project-name", type=str, default="Emergency Shelter", help="Name for a new project")
    p.add_argument("--ensure-general", action="store_true", help="Ensure the General ward and room exist")
    p.add_argument("--beds", type=int, default=0, help="Minimum number of beds in the General room")
    return p.parse_args()


async def run(args: argparse.Namespace) -> None:
    store = InventoryStore.from_settings()
    try:
        if args.create_schema:
            await store.create_schema()
            print("schema created")
        if args.ensure_project:
            await ensure_project(store, args.project_name)
        if args.ensure_general:
            await ensure_general_room(store, beds=args.beds)
    except Exception:
        logger.exception("Inventory setup failed")
        raise
    finally:
        await store.close()


def main() -> None:
    args = parse_args()

    if not (args.create_schema or args.ensure_project or args.ensure_general):
        print("Nothing to do. Use --create-schema, --ensure-project and/or --ensure-general.")
        sys.exit(1)

    configure_logging()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
