# shelter/models/bed_assignment.py
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelter.models.base import Base
from shelter.utils.datetime_utils import utc_now


class BedAssignment(Base):
    """
    A client occupying or holding a reservation on a bed.

    end_date NULL marks the active assignment; at most one per bed, backed by
    a partial unique index. Rows are closed, never deleted, in normal flow.
    Reservations carry no enrollment.
    """

    __tablename__ = "bed_assignments"
    __table_args__ = (
        Index(
            "uq_bed_assignments_active_bed",
            "bed_id",
            unique=True,
            postgresql_where=text("end_date IS NULL"),
            sqlite_where=text("end_date IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    bed_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("beds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    enrollment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("enrollments.id", ondelete="SET NULL"),
        nullable=True,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    bed: Mapped["Bed"] = relationship("Bed", back_populates="assignments")
    client: Mapped["Client"] = relationship("Client")
