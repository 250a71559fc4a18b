"""
Credential stores.

A store answers one question: does this username/password pair belong to a
known principal? Two interchangeable implementations exist, a fixed
in-memory table and the ``users`` table holding peppered SHA-256 hashes.
"""

import base64
import hashlib
import hmac
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from db import TRANSIENT_ERRORS
from errors import TransientStoreError
from logging_config import get_logger, log_with_context
from metrics import STORE_ERRORS

logger = get_logger("auth")

# username -> (password, user id)
DEFAULT_USERS: Dict[str, Tuple[str, str]] = {
    "admin": ("admin02", "1"),
    "student": ("student123", "2"),
    "teacher": ("teacher123", "3"),
    "demo": ("demo123", "4"),
}


@dataclass(frozen=True)
class Principal:
    """An authenticated identity."""
    username: str
    user_id: str


class CredentialStore(Protocol):
    def verify(self, username: str, password: str) -> Optional[Principal]:
        """Return the principal when the pair matches, otherwise None."""
        ...


def hash_password(password: str, pepper: str) -> str:
    """base64(sha256(password + pepper)), the verifier kept in ``users``."""
    digest = hashlib.sha256((password + pepper).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


class FixedCredentialStore:
    """Plain equality against a hardcoded table."""

    def __init__(self, users: Dict[str, Tuple[str, str]] = None):
        self.users = dict(DEFAULT_USERS if users is None else users)

    def verify(self, username: str, password: str) -> Optional[Principal]:
        entry = self.users.get(username)
        if entry is None:
            return None
        expected, user_id = entry
        if not hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8")):
            return None
        return Principal(username=username, user_id=user_id)


class HashedCredentialStore:
    """Verifies against the ``users`` table using a static application pepper."""

    def __init__(self, session_factory: sessionmaker, pepper: str):
        self.session_factory = session_factory
        self.pepper = pepper

    def verify(self, username: str, password: str) -> Optional[Principal]:
        try:
            with self.session_factory() as db:
                row = db.execute(
                    text(
                        """
                        SELECT id, username, password_hash
                        FROM users
                        WHERE username = :username AND is_active = true
                        """
                    ),
                    {"username": username},
                ).fetchone()
        except TRANSIENT_ERRORS as e:
            STORE_ERRORS.inc()
            log_with_context(logger, "ERROR", "Credential store unavailable",
                             extra_data={"error": str(e)})
            raise TransientStoreError("The credential store is unavailable, please retry later") from e

        # exact, case-sensitive match even on case-insensitive collations
        if row is None or row.username != username:
            return None
        supplied = hash_password(password, self.pepper)
        if not hmac.compare_digest(row.password_hash.encode("ascii"), supplied.encode("ascii")):
            return None
        return Principal(username=row.username, user_id=str(row.id))

    def provision(self, username: str, password: str, email: str,
                  first_name: str = "", last_name: str = "") -> bool:
        """Insert a user unless the username exists. Returns True when inserted."""
        with self.session_factory.begin() as db:
            existing = db.execute(
                text("SELECT id FROM users WHERE username = :username"),
                {"username": username},
            ).fetchone()
            if existing:
                return False
            db.execute(
                text(
                    """
                    INSERT INTO users (username, password_hash, email, first_name, last_name, is_active)
                    VALUES (:username, :password_hash, :email, :first_name, :last_name, true)
                    """
                ),
                {
                    "username": username,
                    "password_hash": hash_password(password, self.pepper),
                    "email": email,
                    "first_name": first_name,
                    "last_name": last_name,
                },
            )
        log_with_context(logger, "INFO", "User provisioned", context={"username": username})
        return True
