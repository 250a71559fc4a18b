"""Pydantic schemas for authentication."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Schema for login request."""
    username: str
    password: str


class LoginResponse(BaseModel):
    """Schema for login response."""
    token: str
    token_type: str = "bearer"
    username: str
    user_id: str
    expires_at: datetime


class ValidateTokenRequest(BaseModel):
    token: Optional[str] = Field(None, description="Session token to check")


class TokenValidationResponse(BaseModel):
    """Result of a token check. Only ``valid`` is set for a rejected token."""
    valid: bool
    username: Optional[str] = None
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = None
