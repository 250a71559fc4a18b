"""FastAPI dependencies for authentication."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.schemas import TokenValidationResponse
from auth.service import CredentialValidator
from errors import AuthenticationFailure

# Extracts the Bearer token from the Authorization header
http_bearer = HTTPBearer(auto_error=False)


def get_credential_validator(request: Request) -> CredentialValidator:
    """The validator built at startup."""
    return request.app.state.credential_validator


async def require_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    validator: CredentialValidator = Depends(get_credential_validator),
) -> Optional[TokenValidationResponse]:
    """Reject the request unless it carries a valid session token.

    A no-op when the app runs with ``require_auth`` disabled.
    """
    if not request.app.state.settings.require_auth:
        return None

    if not credentials or not credentials.scheme or credentials.scheme.lower() != "bearer":
        raise AuthenticationFailure("Not authenticated")

    session = validator.validate(credentials.credentials)
    if not session.valid:
        raise AuthenticationFailure("Invalid or expired session token")

    request.state.session = session
    return session
