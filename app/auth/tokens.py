"""
Session token codecs.

Tokens are stateless: nothing is stored server-side, so a token stays valid
until it expires. ``JwtTokenCodec`` signs with the server secret;
``OpaqueTokenCodec`` is a reversible, unsigned encoding.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import jwt

from auth.credentials import Principal

DEFAULT_TTL = timedelta(hours=24)


class InvalidTokenError(Exception):
    """Malformed, tampered or expired token."""


@dataclass(frozen=True)
class TokenClaims:
    username: str
    user_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


class TokenCodec(Protocol):
    def issue(self, principal: Principal) -> IssuedToken:
        ...

    def decode(self, token: str) -> TokenClaims:
        """Raise InvalidTokenError for any token that is not currently valid."""
        ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    """Decode unpadded base64url, rejecting anything that would not re-encode identically."""
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise InvalidTokenError("Token is not valid base64") from e
    if _b64url_encode(raw) != segment:
        raise InvalidTokenError("Token is not canonically encoded")
    return raw


class JwtTokenCodec:
    """HS256 (by default) JSON Web Tokens via PyJWT."""

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.ttl = ttl
        self.clock = clock

    def issue(self, principal: Principal) -> IssuedToken:
        # JWT timestamps are whole seconds
        issued_at = self.clock().replace(microsecond=0)
        expires_at = issued_at + self.ttl
        payload = {
            "sub": principal.username,
            "uid": principal.user_id,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, expires_at=expires_at)

    def decode(self, token: str) -> TokenClaims:
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidTokenError("Token is not a JWT")
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                # expiry is checked below against the injected clock
                options={"require": ["sub", "exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(str(e)) from e

        # base64url leaves spare bits in the last character of the signature
        _b64url_decode(token.rsplit(".", 1)[1])

        username = payload.get("sub")
        user_id = payload.get("uid")
        if not isinstance(username, str) or not isinstance(user_id, str):
            raise InvalidTokenError("Token subject is malformed")
        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise InvalidTokenError("Token timestamps are malformed") from e

        if expires_at <= self.clock():
            raise InvalidTokenError("Token has expired")
        return TokenClaims(username=username, user_id=user_id,
                           issued_at=issued_at, expires_at=expires_at)


class OpaqueTokenCodec:
    """
    base64url("<user_id>:<username>:<issued epoch seconds>").

    Unsigned: anyone can mint one, so this codec only suits deployments that
    accept that trade-off. Validity means well formed and unexpired.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self.clock = clock

    def issue(self, principal: Principal) -> IssuedToken:
        issued_at = self.clock().replace(microsecond=0)
        data = f"{principal.user_id}:{principal.username}:{int(issued_at.timestamp())}"
        return IssuedToken(token=_b64url_encode(data.encode("utf-8")),
                           expires_at=issued_at + self.ttl)

    def decode(self, token: str) -> TokenClaims:
        if not isinstance(token, str) or not token:
            raise InvalidTokenError("Token is empty")
        raw = _b64url_decode(token)
        try:
            data = raw.decode("utf-8")
            user_id, rest = data.split(":", 1)
            username, issued = rest.rsplit(":", 1)
            issued_at = datetime.fromtimestamp(int(issued), tz=timezone.utc)
        except (UnicodeDecodeError, ValueError, OverflowError, OSError) as e:
            raise InvalidTokenError("Token payload is malformed") from e
        if not user_id or not username:
            raise InvalidTokenError("Token payload is malformed")

        expires_at = issued_at + self.ttl
        if expires_at <= self.clock():
            raise InvalidTokenError("Token has expired")
        return TokenClaims(username=username, user_id=user_id,
                           issued_at=issued_at, expires_at=expires_at)
