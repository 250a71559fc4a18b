"""Pydantic schemas shared by every router."""
from typing import List, Optional

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """One failing field of a rejected payload."""
    field: str
    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Body of every error response."""
    kind: str = Field(..., description="Machine-checkable error kind")
    message: str
    errors: List[FieldError] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
