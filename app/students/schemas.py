"""Pydantic schemas for students."""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, computed_field, field_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")

# GPA is stored as DECIMAL(3,2) but the dashboard expects a JSON number
Gpa = Annotated[
    Decimal,
    Field(ge=0, le=4, max_digits=3, decimal_places=2, description="GPA (0.00 - 4.00)"),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class Gender(str, Enum):
    """Gender values accepted for a student."""
    male = "Male"
    female = "Female"
    other = "Other"


class RecordState(str, Enum):
    """Lifecycle of a student row. There is no transition out of deleted."""
    active = "active"
    deleted = "deleted"

    @classmethod
    def from_flag(cls, is_active: bool) -> "RecordState":
        return cls.active if is_active else cls.deleted


class StudentBase(BaseModel):
    """Every client-supplied student field."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    email: str = Field(..., min_length=3, max_length=200, description="Email address")
    phone: Optional[str] = Field(None, max_length=20, description="Phone number")
    date_of_birth: date = Field(..., description="Date of birth (YYYY-MM-DD)")
    gender: Gender = Field(..., description="Male, Female or Other")
    address: str = Field(..., min_length=1, max_length=200, description="Postal address")
    course: str = Field(..., min_length=1, max_length=100, description="Course of study")
    year: int = Field(..., ge=1, le=4, strict=True, description="Year of study (1 - 4)")
    gpa: Gpa

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Email must look like local@domain")
        return v

    @field_validator("phone", mode="before")
    @classmethod
    def blank_phone_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class StudentCreate(StudentBase):
    """Schema for creating a student."""

    pass


class StudentUpdate(StudentBase):
    """Schema for updating a student. Every field is replaced."""

    pass


class StudentResponse(StudentBase):
    """Schema for student response."""

    id: int
    state: RecordState = RecordState.active
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.state is RecordState.active


class CourseCount(BaseModel):
    course: str
    count: int


class YearCount(BaseModel):
    year: int
    count: int


class GenderCount(BaseModel):
    gender: str
    count: int


class StudentStatisticsResponse(BaseModel):
    """Aggregates over the active students, as shown on the dashboard cards."""

    total_students: int
    average_gpa: float
    course_distribution: List[CourseCount]
    year_distribution: List[YearCount]
    gender_distribution: List[GenderCount]


class DeleteResponse(BaseModel):
    message: str
