"""FastAPI routes for authentication."""
from fastapi import APIRouter, Depends, Request

from auth.dependencies import get_credential_validator
from auth.schemas import LoginRequest, LoginResponse, TokenValidationResponse, ValidateTokenRequest
from auth.service import CredentialValidator
from schemas import MessageResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    validator: CredentialValidator = Depends(get_credential_validator),
):
    """Authenticate a user and return a session token valid for 24 hours."""
    return validator.authenticate(request.username, request.password)


# The body is read by hand so a malformed one is reported as an invalid token, not a 422
@router.post(
    "/validate",
    response_model=TokenValidationResponse,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": ValidateTokenRequest.model_json_schema()}},
        },
    },
)
async def validate_token(
    request: Request,
    validator: CredentialValidator = Depends(get_credential_validator),
):
    """Report whether a token is valid and whom it belongs to."""
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    token = payload.get("token") if isinstance(payload, dict) else None
    return validator.validate(token)


@router.post("/logout", response_model=MessageResponse)
def logout(validator: CredentialValidator = Depends(get_credential_validator)):
    """Tokens are stateless, the client discards its copy."""
    return validator.logout()
