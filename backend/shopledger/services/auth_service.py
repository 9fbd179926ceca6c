# Overview: Password hashing, authentication and user administration.

"""
Authentication Service

Every action must be attributable, so every user has their own login.
Passwords are hashed with bcrypt; plaintext is never stored or compared.
"""

import re

import bcrypt

from ..extensions import db
from ..models import Task, User
from ..permissions import ROLES, ROLE_PERSONNEL
from ..validation import NotFoundError, ValidationError
from shopledger.time_utils import utcnow
from . import activity_service as activity
from .concurrency import run_with_retry
from .permission_service import PermissionDeniedError, is_admin, require_action


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (strength checked first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Records last_login_at and a LOGIN activity row on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    activity.log_activity(user, activity.ACTION_LOGIN, activity.ENTITY_SETTINGS, f"{user.display_name} logged in")
    db.session.commit()
    return user


def create_user(
    username: str,
    password: str,
    *,
    display_name: str | None = None,
    role: str = ROLE_PERSONNEL,
    actor: User | None = None,
) -> User:
    """
    Create a user. actor=None is the CLI/bootstrap path; otherwise the
    actor must be allowed to manage users.

    Raises ValidationError for a bad role or duplicate username and
    PasswordValidationError for a weak password.
    """
    if actor is not None:
        require_action(actor, "MANAGE_USERS", resource="users")
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if db.session.query(User).filter_by(username=username).first():
        raise ValidationError("Username already exists")

    password_hash = hash_password(password)

    def _op():
        user = User(
            username=username,
            display_name=(display_name or username).strip(),
            password_hash=password_hash,
            role=role,
        )
        db.session.add(user)
        db.session.flush()
        if actor is not None:
            activity.log_activity(
                actor, activity.ACTION_CREATE, activity.ENTITY_SETTINGS,
                f"Created user {user.username} ({user.role})",
                {"user_id": user.id},
            )
        db.session.commit()
        return user

    return run_with_retry(_op)


def list_users(actor: User) -> list[User]:
    require_action(actor, "MANAGE_USERS", resource="users")
    return db.session.query(User).order_by(User.username.asc()).all()


def list_assignable_users(actor: User) -> list[User]:
    """Users a task can be assigned to by this actor."""
    if not is_admin(actor):
        return [actor]
    return db.session.query(User).filter(User.is_active.is_(True)).order_by(User.display_name.asc()).all()


def delete_user(actor: User, user_id: int) -> None:
    """Delete a user (admin only). Nobody can delete their own account."""
    require_action(actor, "MANAGE_USERS", resource=f"user:{user_id}")
    if actor.id == user_id:
        raise PermissionDeniedError("You cannot delete your own account")

    def _op():
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        username = user.username
        db.session.query(Task).filter(Task.assigned_to_user_id == user.id).delete(synchronize_session="fetch")
        db.session.delete(user)
        activity.log_activity(
            actor, activity.ACTION_DELETE, activity.ENTITY_SETTINGS,
            f"Deleted user {username}",
            {"user_id": user_id},
        )
        db.session.commit()

    run_with_retry(_op)
