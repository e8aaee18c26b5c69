from pydantic import BaseModel

from app.db.models.user import UserRole


class Actor(BaseModel):
    """The authenticated caller on whose behalf a core operation runs."""

    id: int
    role: UserRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN
