"""Business logic for authentication."""
from typing import Any

from auth.credentials import CredentialStore
from auth.schemas import LoginResponse, TokenValidationResponse
from auth.tokens import InvalidTokenError, TokenCodec
from errors import AuthenticationFailure, TransientStoreError
from logging_config import get_logger, log_with_context
from metrics import LOGIN_ATTEMPTS
from schemas import MessageResponse

logger = get_logger("auth")

# same message for unknown user and wrong password
INVALID_CREDENTIALS = "Invalid username or password"


class CredentialValidator:
    """Checks credentials against a store and issues stateless session tokens."""

    def __init__(self, store: CredentialStore, codec: TokenCodec):
        self.store = store
        self.codec = codec

    def authenticate(self, username: str, password: str) -> LoginResponse:
        """Return a session for a matching pair, else raise AuthenticationFailure."""
        log_with_context(logger, "INFO", "Login attempt", context={"username": username})
        try:
            principal = self.store.verify(username, password)
        except TransientStoreError:
            LOGIN_ATTEMPTS.labels(outcome="error").inc()
            raise

        if principal is None:
            LOGIN_ATTEMPTS.labels(outcome="failure").inc()
            log_with_context(logger, "WARNING", "Login failed", context={"username": username})
            raise AuthenticationFailure(INVALID_CREDENTIALS)

        issued = self.codec.issue(principal)
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        log_with_context(logger, "INFO", "Login successful",
                         context={"username": principal.username, "user_id": principal.user_id})
        return LoginResponse(
            token=issued.token,
            username=principal.username,
            user_id=principal.user_id,
            expires_at=issued.expires_at,
        )

    def validate(self, token: Any) -> TokenValidationResponse:
        """Check a token. Never raises: a bad token is reported as ``valid=False``."""
        if not isinstance(token, str) or not token:
            return TokenValidationResponse(valid=False)
        try:
            claims = self.codec.decode(token)
        except InvalidTokenError as e:
            log_with_context(logger, "DEBUG", "Token rejected", extra_data={"reason": str(e)})
            return TokenValidationResponse(valid=False)
        return TokenValidationResponse(
            valid=True,
            username=claims.username,
            user_id=claims.user_id,
            expires_at=claims.expires_at,
        )

    def logout(self) -> MessageResponse:
        # no server-side session to end, the client discards its token
        return MessageResponse(message="Logged out successfully")
