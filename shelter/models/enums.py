# shelter/models/enums.py
from enum import Enum as PyEnum


class WardType(str, PyEnum):
    GENERAL = "general"
    MEDICAL = "medical"
    FAMILY = "family"


class RoomType(str, PyEnum):
    GENERAL = "general"
    MEDICAL = "medical"
    FAMILY = "family"
    ISOLATION = "isolation"


class GenderRestriction(str, PyEnum):
    ANY = "any"
    MALE = "male"
    FEMALE = "female"


class BedType(str, PyEnum):
    EMERGENCY = "emergency"
    MAT = "mat"
    OVERFLOW = "overflow"
    TRANSITIONAL = "transitional"


class BedStatus(str, PyEnum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"


class ApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
