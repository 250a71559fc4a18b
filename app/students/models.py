"""SQLAlchemy models for students."""

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, Numeric, String, text
from sqlalchemy.sql import func

from db import Base


class Student(Base):
    """Student model. Rows are never removed, only flagged inactive."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(200), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    address = Column(String(200), nullable=False)
    course = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    gpa = Column(Numeric(3, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)


# email is unique among active rows only, deleted rows keep theirs
Index(
    "uq_students_active_email",
    func.lower(Student.__table__.c.email),
    unique=True,
    postgresql_where=text("is_active"),
    sqlite_where=text("is_active = 1"),
)
