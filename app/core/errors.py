from typing import Any

from fastapi import status


class DomainError(Exception):
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = context


class NotFound(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class NotAuthorized(DomainError):
    code = "not_authorized"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTransition(DomainError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class SlotUnavailable(DomainError):
    code = "slot_unavailable"
    status_code = status.HTTP_409_CONFLICT


class InvalidAvailabilityConfig(DomainError):
    code = "invalid_availability_config"
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class ProviderNotBookable(DomainError):
    code = "provider_not_bookable"
    status_code = status.HTTP_409_CONFLICT


class ConcurrentUpdate(DomainError):
    code = "concurrent_update"
    status_code = status.HTTP_409_CONFLICT


class AlreadyExists(DomainError):
    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT


class AccountSuspended(DomainError):
    code = "account_suspended"
    status_code = status.HTTP_403_FORBIDDEN
