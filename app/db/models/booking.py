import datetime as dt
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class BookingState(str, Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    CANCELLATION_REQUESTED = "cancellation_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"


class BookingStatus(str, Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"


class CancelledBy(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


class CancellationResolution(str, Enum):
    DECLINED_BY_CLIENT = "declined_by_client"
    REJECTED_BY_ADMIN = "rejected_by_admin"
    ACCEPTED_BY_CLIENT = "accepted_by_client"
    APPROVED_BY_ADMIN = "approved_by_admin"
    THIRD_STRIKE = "third_strike"


TERMINAL_STATES = frozenset({BookingState.COMPLETED, BookingState.CANCELLED, BookingState.DECLINED})


@dataclass(frozen=True)
class PendingCancellation:
    attempts: int
    reason: str | None
    requested_at: dt.datetime | None


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    provider_id: Mapped[int] = mapped_column(
        ForeignKey("service_providers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    service_id: Mapped[int | None] = mapped_column(
        ForeignKey("services.id", ondelete="SET NULL"), nullable=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    state: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingState.PENDING_CONFIRMATION.value, index=True
    )
    cancellation_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancellation_resolution: Mapped[str | None] = mapped_column(String(32), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_requested_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_cancellation_attempt_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    client = relationship("User", back_populates="bookings")
    provider = relationship("ServiceProvider", back_populates="bookings")
    service = relationship("Service")

    @property
    def lifecycle_state(self) -> BookingState:
        return BookingState(self.state)

    @property
    def status(self) -> BookingStatus:
        if self.lifecycle_state is BookingState.CANCELLATION_REQUESTED:
            return BookingStatus.CONFIRMED
        return BookingStatus(self.state)

    @property
    def cancellation_requested(self) -> bool:
        return self.lifecycle_state is BookingState.CANCELLATION_REQUESTED

    @property
    def cancellation_declined(self) -> bool:
        return self.cancellation_resolution == CancellationResolution.DECLINED_BY_CLIENT.value

    @property
    def third_strike_cancellation(self) -> bool:
        return self.cancellation_resolution == CancellationResolution.THIRD_STRIKE.value

    @property
    def pending_cancellation(self) -> PendingCancellation | None:
        if not self.cancellation_requested:
            return None
        return PendingCancellation(
            attempts=self.cancellation_attempts,
            reason=self.cancellation_reason,
            requested_at=self.cancellation_requested_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.lifecycle_state in TERMINAL_STATES
