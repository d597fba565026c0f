from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ShuffleSession

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_ACCESS_CODE_LENGTH = 6


def generate_access_code(length: int = DEFAULT_ACCESS_CODE_LENGTH) -> str:
    """Return a random upper-case alphanumeric code."""
    if length <= 0:
        raise ValueError("Access code length must be positive")
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(length))


def generate_unique_access_code(
    session: Session,
    length: int = DEFAULT_ACCESS_CODE_LENGTH,
    max_attempts: int = 20,
) -> str:
    """Generate an access code not used by any stored session.

    Raises
    ------
    RuntimeError
        If no free code was found within ``max_attempts`` tries.
    """
    for _ in range(max_attempts):
        candidate = generate_access_code(length)
        exists = session.scalar(
            select(ShuffleSession.id).where(ShuffleSession.access_code == candidate)
        )
        if exists is None:
            return candidate
    raise RuntimeError(
        f"Could not generate a unique access code after {max_attempts} attempts"
    )
