# shelter/models/audit_log.py
import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from shelter.models.base import Base
from shelter.utils.datetime_utils import utc_now


class AuditLog(Base):
    """
    Best-effort record of occupancy workflow actions.
    """

    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="ASSIGN, RESERVE, CHECK_IN, RELEASE, CHECK_OUT, DISCHARGE, CHECK_OUT_ALL, ...",
    )
    table_name: Mapped[str] = mapped_column(String(50), nullable=False)
    record_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True, doc="JSON details")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
