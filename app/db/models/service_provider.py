from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timeutils import as_utc
from app.db.base import Base


class ServiceProvider(Base):
    __tablename__ = "service_providers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    profession: Mapped[str] = mapped_column(String(120), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    documents_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    documents_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reliability_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancellation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recent_cancellations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_penalty_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    penalty_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    booking_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="provider_profile")
    services = relationship("Service", back_populates="provider", cascade="all, delete-orphan")
    availability = relationship(
        "ProviderAvailability",
        back_populates="provider",
        uselist=False,
        cascade="all, delete-orphan",
    )
    bookings = relationship("Booking", back_populates="provider")

    def penalty_expired(self, now: datetime) -> bool:
        """True when bookings are disabled by a penalty whose end date has passed."""
        if self.booking_enabled or self.penalty_end_date is None:
            return False
        return as_utc(self.penalty_end_date) < now
