"""Account creation, password checks and bearer-token identity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from niraiva.config import get_settings
from niraiva.db import get_session
from niraiva.db.models import User, UserRole
from niraiva.errors import ConflictError, ValidationFailure, ok, service_operation

logger = structlog.get_logger(__name__)

# Password hashing context using bcrypt
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6
SIGNUP_ROLES = (UserRole.PATIENT.value, UserRole.DOCTOR.value)

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a plaintext password using a secure algorithm."""

    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Verify a plaintext password against a stored hash."""

    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except Exception:
        return False


def normalise_email(email: str) -> str:
    return email.strip().lower()


def _find_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.scalars(
        select(User).where(func.lower(User.email) == normalise_email(email)).limit(1)
    ).first()


@service_operation("Failed to create account. Please try again.", "signup")
def signup_user(
    session: Session,
    email: Optional[str],
    password: Optional[str],
    role: Optional[str],
) -> Dict[str, Any]:
    """Register a new, not yet onboarded account."""

    if not email or not email.strip() or not password or not role:
        raise ValidationFailure("Email, password, and role are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure("Password must be at least 6 characters long")
    if role not in SIGNUP_ROLES:
        raise ValidationFailure("Invalid role. Must be 'patient' or 'doctor'")
    if _find_user_by_email(session, email) is not None:
        raise ConflictError("An account with this email already exists")

    user = User(
        email=normalise_email(email),
        password_hash=hash_password(password),
        role=role,
        is_onboarded=False,
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        raise ConflictError("An account with this email already exists") from None
    session.commit()
    logger.info("user_signed_up", user_id=user.id, role=role)
    return ok(message="Account created successfully", userId=user.id)


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    """Return the user when ``password`` matches, otherwise ``None``."""

    if not email or not password:
        return None
    user = _find_user_by_email(session, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def create_access_token(user: User, *, expires_minutes: int | None = None) -> str:
    """Create a signed JWT access token for ``user``."""

    settings = get_settings()
    minutes = expires_minutes or settings.access_token_expire_minutes
    payload = {
        "sub": user.id,
        "role": user.role,
        "isOnboarded": bool(user.is_onboarded),
        "customId": user.custom_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode ``token`` raising ``jwt.PyJWTError`` when invalid or expired."""

    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved for the current request."""

    id: str
    email: str
    role: str
    is_onboarded: bool
    custom_id: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            is_onboarded=bool(user.is_onboarded),
            custom_id=user.custom_id,
            name=user.name,
            image=user.image,
        )

    def as_session(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "role": self.role,
            "isOnboarded": self.is_onboarded,
            "customId": self.custom_id,
        }


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session),
) -> CurrentUser:
    """Resolve the bearer token to a user re-read from the database."""

    if credentials is None or not credentials.credentials:
        raise _unauthorized()
    try:
        data = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise _unauthorized("Invalid or expired token")
    user_id = data.get("sub")
    user = session.get(User, user_id) if user_id else None
    if user is None:
        raise _unauthorized()
    return CurrentUser.from_user(user)


def require_onboarded(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_onboarded:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Onboarding required")
    return user


def require_role(role: str):
    """Dependency factory ensuring the onboarded user has a given role.

    Users with the ``admin`` role pass every role check.
    """

    def checker(user: CurrentUser = Depends(require_onboarded)) -> CurrentUser:
        if user.role not in (role, UserRole.ADMIN.value):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient privileges",
            )
        return user

    return checker


__all__ = [
    "CurrentUser",
    "authenticate_user",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "hash_password",
    "require_onboarded",
    "require_role",
    "signup_user",
    "verify_password",
]
