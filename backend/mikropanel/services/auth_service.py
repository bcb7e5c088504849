# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and account management.

- Passwords hashed with bcrypt (cost factor 12)
- Minimum password length is MIN_PASSWORD_LENGTH (4)
- Usernames are trimmed and lower-cased before any lookup or insert
- Login failures never reveal whether the username exists
- Session tokens managed separately (see session_service.py)
"""

import logging

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_OWNER
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import session_service


logger = logging.getLogger(__name__)

DEFAULT_MIN_PASSWORD_LENGTH = 4


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet requirements."""
    pass


def normalize_username(username) -> str:
    return str(username or "").strip().lower()


def _bcrypt_rounds() -> int:
    try:
        return current_app.config.get("BCRYPT_ROUNDS", 12)
    except RuntimeError:
        return 12


def _min_password_length() -> int:
    try:
        return current_app.config.get("MIN_PASSWORD_LENGTH", DEFAULT_MIN_PASSWORD_LENGTH)
    except RuntimeError:
        return DEFAULT_MIN_PASSWORD_LENGTH


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < _min_password_length():
        raise PasswordValidationError(
            f"Password must be at least {_min_password_length()} characters long"
        )


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost factor BCRYPT_ROUNDS, default 12), validated first."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def validate_role(role) -> str:
    role = str(role or "").strip().lower()
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    return role


def create_user(username: str, password: str, role: str) -> User:
    """
    Create a panel account.

    Raises:
        ValidationError: missing username or invalid role
        PasswordValidationError: password too short
        ConflictError: username already exists
    """
    username = normalize_username(username)
    if not username:
        raise ValidationError("username is required")
    role = validate_role(role)

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("User already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    logger.info("User created: %s (%s)", username, role)
    return user


def update_user(*, user_id: int, acting_user: User, role: str | None = None, is_active: bool | None = None) -> User:
    """
    Change a user's role and/or active flag.

    Only an owner may grant the owner role or modify an owner account.
    Deactivating a user revokes all of their sessions.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if acting_user.role != ROLE_OWNER:
        if user.role == ROLE_OWNER:
            raise ValidationError("Only an owner can modify an owner account")
        if role is not None and validate_role(role) == ROLE_OWNER:
            raise ValidationError("Only an owner can grant the owner role")

    if role is not None:
        user.role = validate_role(role)

    if is_active is not None:
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")
        if not is_active and user.id == acting_user.id:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = is_active
        if not is_active:
            session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")

    user.updated_at = utcnow()
    db.session.flush()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.asc(), User.id.asc()).all()


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication (caller commits).
    """
    username = normalize_username(username)
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.flush()
    return user


def change_password(*, user: User, current_password: str, new_password: str, keep_session_id: int | None = None) -> None:
    """
    Replace a user's password after checking the current one.

    Every other session of the user is revoked.
    """
    if not current_password or not new_password:
        raise ValidationError("current_password and new_password are required")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    session_service.revoke_all_user_sessions(
        user.id, reason="Password changed", except_session_id=keep_session_id
    )
    db.session.flush()
