from dataclasses import dataclass

from marketplace.core.exceptions import Forbidden
from marketplace.models.user import UserRole


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved once per request from the bearer token."""

    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_sell(self) -> bool:
        return self.role in (UserRole.SELLER, UserRole.ADMIN)

    def ensure_can_act_for(self, user_id: int, message: str = None) -> None:
        """Owners act on their own resources; admins act on anyone's."""
        if self.is_admin or self.id == user_id:
            return
        raise Forbidden(message)

    def ensure_admin(self) -> None:
        if not self.is_admin:
            raise Forbidden("Admin access required")
