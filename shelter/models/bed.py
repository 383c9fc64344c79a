# shelter/models/bed.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelter.models.base import Base, enum_type
from shelter.models.enums import BedStatus, BedType
from shelter.utils.datetime_utils import utc_now


class Bed(Base):
    """
    Smallest assignable sleeping unit (bed or floor mat).

    status must agree with the bed's assignments:
    - occupied / reserved  -> exactly one assignment with end_date NULL
    - available / maintenance -> none
    Status only changes through conditional writes in assignment_service.
    """

    __tablename__ = "beds"
    __table_args__ = (UniqueConstraint("room_id", "bed_number", name="uq_beds_room_id_bed_number"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Nullable: legacy beds created before rooms existed
    room_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    bed_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bed_type: Mapped[BedType] = mapped_column(
        enum_type(BedType, "bed_type_enum"),
        nullable=False,
        default=BedType.EMERGENCY,
    )
    status: Mapped[BedStatus] = mapped_column(
        enum_type(BedStatus, "bed_status_enum"),
        nullable=False,
        default=BedStatus.AVAILABLE,
        index=True,
    )
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

    room: Mapped[Optional["Room"]] = relationship("Room", back_populates="beds")
    assignments: Mapped[list["BedAssignment"]] = relationship(
        "BedAssignment",
        back_populates="bed",
        passive_deletes=True,
        order_by="BedAssignment.start_date",
    )
