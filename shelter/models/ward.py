# shelter/models/ward.py
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelter.models.base import Base, enum_type
from shelter.models.enums import GenderRestriction, WardType
from shelter.utils.datetime_utils import utc_now


class Ward(Base):
    """
    Top-level physical section of the facility (e.g. a building wing).
    Soft-deleted via is_active; a hard delete cascades to its rooms.
    """

    __tablename__ = "wards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    ward_type: Mapped[WardType] = mapped_column(
        enum_type(WardType, "ward_type_enum"),
        nullable=False,
        default=WardType.GENERAL,
    )
    gender_specific: Mapped[GenderRestriction] = mapped_column(
        enum_type(GenderRestriction, "gender_restriction_enum"),
        nullable=False,
        default=GenderRestriction.ANY,
    )
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=utc_now,
    )

    rooms: Mapped[list["Room"]] = relationship(
        "Room",
        back_populates="ward",
        passive_deletes=True,
    )
