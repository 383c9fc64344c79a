# shelter/models/room.py
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelter.models.base import Base, enum_type
from shelter.models.enums import GenderRestriction, RoomType
from shelter.utils.datetime_utils import utc_now


class Room(Base):
    """
    Subdivision of a ward that holds beds. Names are unique within a ward.
    """

    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("ward_id", "name", name="uq_rooms_ward_id_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    ward_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("wards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    room_type: Mapped[RoomType] = mapped_column(
        enum_type(RoomType, "room_type_enum"),
        nullable=False,
        default=RoomType.GENERAL,
    )
    gender_specific: Mapped[GenderRestriction | None] = mapped_column(
        enum_type(GenderRestriction, "gender_restriction_enum"),
        nullable=True,
        default=GenderRestriction.ANY,
        doc="None or 'any' means the room accepts any client",
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

    ward: Mapped["Ward"] = relationship("Ward", back_populates="rooms")
    beds: Mapped[list["Bed"]] = relationship("Bed", back_populates="room")
