from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timeutils import as_utc
from app.db.base import Base


class UserRole(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.CLIENT.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    suspension_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    suspension_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reinstated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    provider_profile = relationship(
        "ServiceProvider",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    bookings = relationship("Booking", back_populates="client")

    def suspension_expired(self, now: datetime) -> bool:
        if not self.suspended or self.suspension_end_date is None:
            return False
        return as_utc(self.suspension_end_date) <= now

    def is_suspended(self, now: datetime) -> bool:
        return self.suspended and not self.suspension_expired(now)
