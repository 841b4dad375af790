from dataclasses import dataclass
from typing import Optional

from campus_voice.models.enums import Role


@dataclass(frozen=True)
class Session:
    """The signed-in user as seen by views and routes."""
    user_id: str
    role: Role
    email: str
    token: str
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
