from app.db.models.availability import ProviderAvailability
from app.db.models.booking import (
    Booking,
    BookingState,
    BookingStatus,
    CancellationResolution,
    CancelledBy,
)
from app.db.models.notification import Notification
from app.db.models.review import Review
from app.db.models.service import Service
from app.db.models.service_provider import ServiceProvider
from app.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "ServiceProvider",
    "ProviderAvailability",
    "Service",
    "Booking",
    "BookingState",
    "BookingStatus",
    "CancelledBy",
    "CancellationResolution",
    "Notification",
    "Review",
]
