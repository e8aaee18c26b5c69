from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class ProviderAvailability(Base):
    __tablename__ = "provider_availability"

    provider_id: Mapped[int] = mapped_column(
        ForeignKey("service_providers.id", ondelete="CASCADE"), primary_key=True
    )
    weekly_schedule: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    special_dates: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    time_slot_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    buffer_time: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    provider = relationship("ServiceProvider", back_populates="availability")
