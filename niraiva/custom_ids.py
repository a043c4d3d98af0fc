"""Role-scoped, human-readable account identifiers.

Identifiers look like ``#Nrivaa007`` (patients) or ``#DR012`` (doctors).
The next number is derived from every identifier ever issued for the
prefix, including those preserved in ``deleted_accounts``, so a number
freed by an account deletion is never handed out again.  Assignment is
optimistic: the candidate is re-checked against active users and the
scan is repeated on collision.  The unique constraint on
``users.custom_id`` catches whatever race slips past the re-check.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.config import get_settings
from niraiva.db.models import DeletedAccount, User
from niraiva.observability import CUSTOM_ID_COLLISIONS

logger = structlog.get_logger(__name__)

CUSTOM_ID_PREFIXES = {
    "patient": "#Nrivaa",
    "doctor": "#DR",
}
SEQUENCE_WIDTH = 3


class CustomIdUnavailableError(RuntimeError):
    """Raised when no free identifier could be claimed within the retry budget."""


def custom_id_prefix(role: str) -> str:
    try:
        return CUSTOM_ID_PREFIXES[role]
    except KeyError:
        raise ValueError(f"Unsupported role for custom ID: {role!r}") from None


def parse_sequence(custom_id: Optional[str], prefix: str) -> Optional[int]:
    """Return the numeric suffix of ``custom_id`` or ``None`` when it has none."""

    if not custom_id or not custom_id.startswith(prefix):
        return None
    suffix = custom_id[len(prefix):]
    if not (suffix.isascii() and suffix.isdigit()):
        return None
    return int(suffix)


def format_custom_id(prefix: str, number: int) -> str:
    return f"{prefix}{number:0{SEQUENCE_WIDTH}d}"


def _issued_ids(session: Session, prefix: str) -> Iterable[Optional[str]]:
    active = session.scalars(
        select(User.custom_id).where(User.custom_id.startswith(prefix, autoescape=True))
    )
    archived = session.scalars(
        select(DeletedAccount.custom_id).where(
            DeletedAccount.custom_id.startswith(prefix, autoescape=True)
        )
    )
    yield from active
    yield from archived


def next_candidate(session: Session, prefix: str) -> str:
    highest = 0
    for issued in _issued_ids(session, prefix):
        number = parse_sequence(issued, prefix)
        if number is not None and number > highest:
            highest = number
    return format_custom_id(prefix, highest + 1)


def _is_taken(session: Session, candidate: str) -> bool:
    """Return ``True`` when an active user already holds ``candidate``."""

    return (
        session.scalar(select(User.id).where(User.custom_id == candidate).limit(1))
        is not None
    )


def assign_custom_id(session: Session, role: str, *, max_attempts: Optional[int] = None) -> str:
    """Return the next free identifier for ``role``.

    Nothing is written; the caller stores the identifier on the user row in
    the same transaction that completes onboarding.
    """

    prefix = custom_id_prefix(role)
    attempts = max_attempts if max_attempts is not None else get_settings().custom_id_max_attempts
    for attempt in range(1, max(1, attempts) + 1):
        candidate = next_candidate(session, prefix)
        if not _is_taken(session, candidate):
            logger.info("custom_id_assigned", role=role, custom_id=candidate, attempt=attempt)
            return candidate
        CUSTOM_ID_COLLISIONS.labels(role).inc()
        logger.warning("custom_id_collision", role=role, candidate=candidate, attempt=attempt)
    raise CustomIdUnavailableError(
        f"Unable to assign a {role} identifier after {attempts} attempts"
    )


__all__ = [
    "CUSTOM_ID_PREFIXES",
    "CustomIdUnavailableError",
    "assign_custom_id",
    "custom_id_prefix",
    "format_custom_id",
    "next_candidate",
    "parse_sequence",
]
