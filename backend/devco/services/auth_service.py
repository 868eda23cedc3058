# Overview: Service-layer operations for auth; password hashing, identity tokens and login.

"""
Authentication Service

WHY: Every action must be attributable. Passwords are hashed with bcrypt;
identity is carried in a signed HS256 JWT ({sub, email, role, exp, iat})
stored in an HTTP-only cookie or sent as a bearer header.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters with upper, lower and digit required
- Tokens are stateless; logout clears the cookie
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from flask import current_app
from jose import JWTError, jwt

from ..errors import ConflictError, NotAuthenticated, ValidationError
from ..extensions import db
from ..models import User
from devco.time_utils import utcnow


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(days=current_app.config["JWT_EXPIRES_DAYS"])

    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.app_role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry.

    Raises NotAuthenticated for missing, malformed, expired or forged tokens.
    """
    if not token:
        raise NotAuthenticated("Missing identity token")
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as exc:
        raise NotAuthenticated(f"Invalid identity token: {exc}")

    if not claims.get("sub"):
        raise NotAuthenticated("Identity token has no subject")
    return claims


def get_user_from_token(token: str) -> User:
    claims = decode_access_token(token)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise NotAuthenticated("Identity token subject is malformed")

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise NotAuthenticated("User not found or inactive")
    return user


def create_user(
    email: str,
    password: str,
    app_role: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    department: str | None = None,
    **profile: Any,
) -> User:
    """
    Create an employee account.

    Raises ValidationError for weak passwords and ConflictError when the
    email is taken (case-insensitive).
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")

    existing = db.session.query(User).filter(db.func.lower(User.email) == email).first()
    if existing:
        raise ConflictError("Email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        app_role=app_role,
        first_name=first_name,
        last_name=last_name,
        department=department,
        **profile,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.func.lower(User.email) == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
