import datetime as dt
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.clock import utcnow

from .base import Base


class Medication(Base):
    __tablename__ = "medications"
    __table_args__ = (
        Index("ix_medications_pending_time", "is_taken", "time"),
        Index("ix_medications_pending_called", "is_taken", "last_called_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(120))
    dosage: Mapped[str] = mapped_column(String(120), default="")
    time: Mapped[str] = mapped_column(String(5))  # "HH:MM" in settings.TZ

    is_taken: Mapped[bool] = mapped_column(Boolean, default=False)
    # naive UTC; set together with retry_count by the scheduler
    last_called_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

    user = relationship("User", back_populates="medications")
