import re
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    InvalidInput,
    UserNotFound,
)
from marketplace.core.principal import Principal
from marketplace.core.security import create_access_token, hash_password, verify_password
from marketplace.models.user import User, UserRole
from marketplace.repositories.user import UserRepository

logger = structlog.get_logger()

PROFILE_FIELDS = ("email", "fullname", "phone", "address")


class UserService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    def register(
        self,
        username: str,
        email: str,
        password: str,
        role: str = "buyer",
        fullname: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        if self.users.get_by_email(email):
            raise Conflict("Email already registered")
        if self.users.get_by_username(username):
            raise Conflict("Username already taken")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            fullname=fullname,
            phone=phone,
            role=UserRole(role),
        )
        try:
            self.users.add(user)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Email or username already registered") from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        logger.info("user_registered", user_id=user.id, role=user.role.value)
        return user

    def login(self, email: str, password: str) -> tuple:
        """Return ``(user, access_token)`` for valid credentials."""
        user = self.users.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.warning("login_failed", email=email)
            raise InvalidCredentials()
        if not user.is_active:
            raise Forbidden("Account is inactive")

        token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
        logger.info("user_logged_in", user_id=user.id)
        return user, token

    def list_users(self, principal: Principal) -> List[User]:
        principal.ensure_admin()
        return self.users.list()

    def get_user(self, principal: Principal, user_id: int) -> User:
        principal.ensure_can_act_for(user_id, "You can only view your own profile")
        user = self.users.get(user_id)
        if not user:
            raise UserNotFound()
        return user

    def update_user(self, principal: Principal, user_id: int, changes: dict) -> User:
        principal.ensure_can_act_for(user_id, "You can only update your own profile")
        user = self.users.get(user_id)
        if not user:
            raise UserNotFound()

        email = changes.get("email")
        if email and self.users.email_taken(email, exclude_user_id=user.id):
            raise Conflict("Email already registered")

        for field in PROFILE_FIELDS:
            if changes.get(field) is not None:
                setattr(user, field, changes[field])

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Email already registered") from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        return user

    def change_password(
        self,
        principal: Principal,
        user_id: int,
        old_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        if principal.id != user_id:
            raise Forbidden("You can only change your own password")
        if not old_password or not new_password:
            raise InvalidInput("Old and new password are required")
        if len(new_password) < 8 or not re.search(r"[A-Za-z]", new_password) or not re.search(r"\d", new_password):
            raise InvalidInput("Password must be at least 8 characters and contain letters and digits")

        user = self.users.get(user_id)
        if not user:
            raise UserNotFound()
        if not verify_password(old_password, user.password_hash):
            raise InvalidInput("Old password is incorrect")

        try:
            user.password_hash = hash_password(new_password)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("password_changed", user_id=user_id)

    def set_active(self, principal: Principal, user_id: int, is_active: bool) -> User:
        principal.ensure_admin()
        user = self.users.get(user_id)
        if not user:
            raise UserNotFound()
        try:
            user.is_active = is_active
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        logger.info("user_activation_changed", user_id=user_id, is_active=is_active, changed_by=principal.id)
        return user

    def delete_user(self, principal: Principal, user_id: int) -> None:
        principal.ensure_admin()
        user = self.users.get(user_id)
        if not user:
            raise UserNotFound()
        if self.users.has_orders(user_id) or self.users.has_products(user_id):
            raise Conflict("User still owns orders or products")

        try:
            self.users.delete(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("user_deleted", user_id=user_id, deleted_by=principal.id)
