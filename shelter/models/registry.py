# shelter/models/registry.py
"""
Import every model so Base.metadata is complete (create_all, Alembic)
and string relationship targets resolve.
"""

from shelter.models.audit_log import AuditLog
from shelter.models.base import Base
from shelter.models.bed import Bed
from shelter.models.bed_assignment import BedAssignment
from shelter.models.client import Client
from shelter.models.enrollment import Enrollment
from shelter.models.project import Project
from shelter.models.room import Room
from shelter.models.ward import Ward

__all__ = [
    "AuditLog",
    "Base",
    "Bed",
    "BedAssignment",
    "Client",
    "Enrollment",
    "Project",
    "Room",
    "Ward",
]
