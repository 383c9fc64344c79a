# shelter/services/errors.py
"""
Domain errors raised by the occupancy services.

Endpoints translate these into HTTP responses; nothing here knows about
FastAPI.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class ShelterError(Exception):
    """Base class for errors surfaced to the initiating action."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Precondition errors


class NoProjectConfiguredError(ShelterError):
    status_code = 412

    def __init__(self, message: str = "No project found. Please set up a project first."):
        super().__init__(message)


class NoActiveAssignmentError(ShelterError):
    status_code = 409

    def __init__(self, bed_id: UUID):
        super().__init__(
            "Could not find an active assignment for this bed. "
            "It may have already been checked out."
        )
        self.bed_id = bed_id


class NoRoomSelectedError(ShelterError):
    def __init__(self, message: str = "Please select a room first."):
        super().__init__(message)


class NotFoundError(ShelterError):
    status_code = 404


class BedNotFoundError(NotFoundError):
    def __init__(self, bed_id: UUID):
        super().__init__("Bed not found")
        self.bed_id = bed_id


class ClientNotFoundError(NotFoundError):
    def __init__(self, client_id: UUID):
        super().__init__("Client not found")
        self.client_id = client_id


class EnrollmentNotFoundError(NotFoundError):
    def __init__(self, enrollment_id: UUID):
        super().__init__("Enrollment not found")
        self.enrollment_id = enrollment_id


class WardNotFoundError(NotFoundError):
    def __init__(self, ward_id: UUID):
        super().__init__("Ward not found")
        self.ward_id = ward_id


class RoomNotFoundError(NotFoundError):
    def __init__(self, room_id: UUID):
        super().__init__("Room not found")
        self.room_id = room_id


class GenderRestrictionError(ShelterError):
    def __init__(self, room_gender: str, client_sex: str | None):
        super().__init__(
            f"This bed is in a {room_gender}-only room and cannot be used for this client."
        )
        self.room_gender = room_gender
        self.client_sex = client_sex


# Conflict errors


class BedConflictError(ShelterError):
    """
    The bed is not in the status the transition requires, usually because
    another session changed it first.
    """

    status_code = 409

    def __init__(self, bed_id: UUID, expected: str, actual: str | None):
        super().__init__(
            f"Bed is {actual or 'unavailable'}; this action requires it to be {expected}. "
            "It may have been changed by another user."
        )
        self.bed_id = bed_id
        self.expected = expected
        self.actual = actual


class DuplicateNameError(ShelterError):
    status_code = 409

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ReferentialIntegrityError(ShelterError):
    status_code = 409


# Bulk workflow outcomes


class ConfirmationRequiredError(ShelterError):
    """
    Bulk assignment found fewer beds than clients and needs the caller to
    choose between creating the missing beds or assigning what fits.
    """

    status_code = 409

    def __init__(self, plan: Any):
        super().__init__(
            f"You have {plan.unassigned_clients} unassigned clients but only "
            f"{plan.available_beds} available beds in the {plan.ward_name} ward. "
            f"Confirm whether to add {plan.beds_needed} more bed(s) or assign what's possible."
        )
        self.plan = plan


class BulkOperationAborted(ShelterError):
    """
    A bulk loop stopped at a failing item. Items before it stay committed.
    """

    status_code = 409

    def __init__(self, outcome: Any, cause: Exception):
        cause_message = getattr(cause, "message", None) or str(cause)
        super().__init__(
            f"Bulk operation stopped after {outcome.succeeded} of {outcome.total} items: {cause_message}"
        )
        self.outcome = outcome
        self.cause = cause


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(exc.orig)


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == FOREIGN_KEY_VIOLATION:
        return True
    return "FOREIGN KEY constraint failed" in str(exc.orig)
