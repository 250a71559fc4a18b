"""Student persistence: validated records in, active rows out."""

from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, bindparam, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from db import TRANSIENT_ERRORS
from errors import CallerError, NotFound, TransientStoreError, ValidationError, field_errors
from logging_config import get_logger, log_with_context
from metrics import STORE_ERRORS, STUDENT_MUTATIONS
from students.schemas import (
    CourseCount,
    GenderCount,
    RecordState,
    StudentCreate,
    StudentResponse,
    StudentStatisticsResponse,
    StudentUpdate,
    YearCount,
)

logger = get_logger("students")

STUDENT_COLUMNS = """
    id, first_name, last_name, email, phone, date_of_birth, gender,
    address, course, year, gpa, is_active, created_at, updated_at
"""

RESULT_TYPES = {
    "id": Integer(),
    "date_of_birth": Date(),
    "year": Integer(),
    "gpa": Numeric(3, 2),
    "is_active": Boolean(),
    "created_at": DateTime(),
    "updated_at": DateTime(),
}

WRITE_PARAMS = (
    bindparam("date_of_birth", type_=Date()),
    bindparam("gpa", type_=Numeric(3, 2)),
    bindparam("now", type_=DateTime()),
)

SAMPLE_STUDENTS = [
    {"first_name": "John", "last_name": "Doe", "email": "john.doe@student.com",
     "phone": "+1-555-0101", "date_of_birth": "2000-05-15", "gender": "Male",
     "address": "USA", "course": "Computer Science", "year": 3, "gpa": "3.75"},
    {"first_name": "Jane", "last_name": "Smith", "email": "jane.smith@student.com",
     "phone": "+1-555-0102", "date_of_birth": "1999-08-22", "gender": "Female",
     "address": "Munich", "course": "Electrical Engineering", "year": 4, "gpa": "3.92"},
    {"first_name": "Ravi", "last_name": "Kumar", "email": "ravi.kumar@student.com",
     "phone": "+1-555-0103", "date_of_birth": "2001-02-10", "gender": "Male",
     "address": "Mumbai India", "course": "Computer Science Engineering", "year": 2, "gpa": "4.00"},
    {"first_name": "Sarah", "last_name": "Wilson", "email": "sarah.wilson@student.com",
     "phone": "+1-555-0104", "date_of_birth": "2000-11-03", "gender": "Female",
     "address": "Hamburg", "course": "Software Engineering", "year": 3, "gpa": "3.85"},
    {"first_name": "David", "last_name": "Brown", "email": "david.brown@student.com",
     "phone": "+1-555-0105", "date_of_birth": "1998-12-18", "gender": "Male",
     "address": "France", "course": "Data Science", "year": 4, "gpa": "3.67"},
    {"first_name": "Emily", "last_name": "Davis", "email": "emily.davis@student.com",
     "phone": "+1-555-0106", "date_of_birth": "2001-07-25", "gender": "Female",
     "address": "USA", "course": "Computer Science", "year": 2, "gpa": "3.43"},
    {"first_name": "Alex", "last_name": "Miller", "email": "alex.miller@student.com",
     "phone": "+1-555-0107", "date_of_birth": "2000-04-08", "gender": "Male",
     "address": "USA", "course": "Information Technology", "year": 3, "gpa": "3.78"},
    {"first_name": "Lisa", "last_name": "Garcia", "email": "lisa.garcia@student.com",
     "phone": "+1-555-0108", "date_of_birth": "1999-09-14", "gender": "Female",
     "address": "UK", "course": "Cybersecurity", "year": 4, "gpa": "3.91"},
]

StudentInput = Union[BaseModel, Mapping[str, Any]]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_student(row) -> StudentResponse:
    return StudentResponse(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        date_of_birth=row.date_of_birth,
        gender=row.gender,
        address=row.address,
        course=row.course,
        year=row.year,
        gpa=row.gpa,
        state=RecordState.from_flag(bool(row.is_active)),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class StudentRepository:
    """
    Reads and writes student rows.

    Built once at startup with a session factory. Each public method runs
    as a single transaction and touches at most one row when writing.
    Soft-deleted rows are invisible to every read.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        try:
            with self.session_factory.begin() as db:
                yield db
        except TRANSIENT_ERRORS as e:
            STORE_ERRORS.inc()
            log_with_context(logger, "ERROR", f"Store unavailable during {operation}",
                             extra_data={"error": str(getattr(e, "orig", None) or e)})
            raise TransientStoreError(
                "The student store is unavailable, please retry later"
            ) from e

    # ---------- reads ----------

    def list_active(self) -> List[StudentResponse]:
        """All active students, ordered by last name then first name."""
        query = text(
            f"""
            SELECT {STUDENT_COLUMNS}
            FROM students
            WHERE is_active = true
            ORDER BY LOWER(last_name), LOWER(first_name), id
            """
        ).columns(**RESULT_TYPES)
        with self._unit_of_work("list") as db:
            rows = db.execute(query).fetchall()
        return [_row_to_student(r) for r in rows]

    def get_by_id(self, student_id: int) -> StudentResponse:
        """Active student by id. Deleted and unknown ids both raise NotFound."""
        with self._unit_of_work("get") as db:
            row = self._fetch_active(db, student_id)
        if not row:
            raise NotFound(f"Student with ID {student_id} not found")
        return _row_to_student(row)

    def search(self, term: Optional[str]) -> List[StudentResponse]:
        """Case-insensitive substring match on first/last name, email and course."""
        if term is None or not term.strip():
            raise CallerError("Search term cannot be empty")

        query = text(
            f"""
            SELECT {STUDENT_COLUMNS}
            FROM students
            WHERE is_active = true
              AND (LOWER(first_name) LIKE LOWER(:q) ESCAPE '\\'
                   OR LOWER(last_name) LIKE LOWER(:q) ESCAPE '\\'
                   OR LOWER(email) LIKE LOWER(:q) ESCAPE '\\'
                   OR LOWER(course) LIKE LOWER(:q) ESCAPE '\\')
            ORDER BY LOWER(last_name), LOWER(first_name), id
            """
        ).columns(**RESULT_TYPES)
        with self._unit_of_work("search") as db:
            rows = db.execute(query, {"q": f"%{_escape_like(term)}%"}).fetchall()
        return [_row_to_student(r) for r in rows]

    def statistics(self) -> StudentStatisticsResponse:
        """Dashboard aggregates over the active students."""
        students = self.list_active()
        total = len(students)

        if total:
            mean = sum((s.gpa for s in students), Decimal("0")) / total
            average_gpa = float(mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))
        else:
            average_gpa = 0.0

        courses = Counter(s.course for s in students)
        years = Counter(s.year for s in students)
        genders = Counter(s.gender.value for s in students)

        return StudentStatisticsResponse(
            total_students=total,
            average_gpa=average_gpa,
            course_distribution=[
                CourseCount(course=c, count=n)
                for c, n in sorted(courses.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
            year_distribution=[
                YearCount(year=y, count=n) for y, n in sorted(years.items())
            ],
            gender_distribution=[
                GenderCount(gender=g, count=n)
                for g, n in sorted(genders.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
        )

    # ---------- writes ----------

    def create(self, data: StudentInput) -> StudentResponse:
        """Validate and insert a new active student."""
        student = self._validate(StudentCreate, data)
        now = self.clock()
        params = self._write_params(student, now)

        query = text(
            f"""
            INSERT INTO students (first_name, last_name, email, phone, date_of_birth,
                                  gender, address, course, year, gpa, is_active,
                                  created_at, updated_at)
            VALUES (:first_name, :last_name, :email, :phone, :date_of_birth,
                    :gender, :address, :course, :year, :gpa, true, :now, :now)
            RETURNING {STUDENT_COLUMNS}
            """
        ).bindparams(*WRITE_PARAMS).columns(**RESULT_TYPES)

        try:
            with self._unit_of_work("create") as db:
                self._ensure_email_available(db, student.email)
                row = db.execute(query, params).fetchone()
        except IntegrityError as e:
            raise self._duplicate_email(student.email) from e

        STUDENT_MUTATIONS.labels(operation="create").inc()
        log_with_context(logger, "INFO", "Student created",
                         context={"student_id": row.id})
        return _row_to_student(row)

    def update(self, student_id: int, data: StudentInput) -> StudentResponse:
        """Replace every field of an active student."""
        student = self._validate(StudentUpdate, data)
        now = self.clock()
        params = self._write_params(student, now)
        params["id"] = student_id

        query = text(
            f"""
            UPDATE students
               SET first_name = :first_name, last_name = :last_name, email = :email,
                   phone = :phone, date_of_birth = :date_of_birth, gender = :gender,
                   address = :address, course = :course, year = :year, gpa = :gpa,
                   updated_at = :now
             WHERE id = :id AND is_active = true
            RETURNING {STUDENT_COLUMNS}
            """
        ).bindparams(*WRITE_PARAMS).columns(**RESULT_TYPES)

        try:
            with self._unit_of_work("update") as db:
                if not self._fetch_active(db, student_id):
                    raise NotFound(f"Student with ID {student_id} not found")
                self._ensure_email_available(db, student.email, exclude_id=student_id)
                row = db.execute(query, params).fetchone()
        except IntegrityError as e:
            raise self._duplicate_email(student.email) from e

        if not row:
            # deleted between the check and the write
            raise NotFound(f"Student with ID {student_id} not found")

        STUDENT_MUTATIONS.labels(operation="update").inc()
        log_with_context(logger, "INFO", "Student updated",
                         context={"student_id": student_id})
        return _row_to_student(row)

    def delete(self, student_id: int) -> bool:
        """Soft delete. Returns False when no active row had that id."""
        query = text(
            """
            UPDATE students
               SET is_active = false, updated_at = :now
             WHERE id = :id AND is_active = true
            """
        ).bindparams(bindparam("now", type_=DateTime()))

        with self._unit_of_work("delete") as db:
            result = db.execute(query, {"id": student_id, "now": self.clock()})
            deleted = result.rowcount > 0

        if deleted:
            STUDENT_MUTATIONS.labels(operation="delete").inc()
            log_with_context(logger, "INFO", "Student soft-deleted",
                             context={"student_id": student_id})
        return deleted

    def seed_if_empty(self, samples: List[Dict[str, Any]] = SAMPLE_STUDENTS) -> int:
        """Insert the sample students into an empty table."""
        with self._unit_of_work("seed") as db:
            count = db.execute(text("SELECT COUNT(*) AS total FROM students")).scalar()
        if count:
            return 0
        for sample in samples:
            self.create(sample)
        log_with_context(logger, "INFO", "Sample students inserted",
                         extra_data={"count": len(samples)})
        return len(samples)

    # ---------- helpers ----------

    @staticmethod
    def _validate(model: Type[BaseModel], data: StudentInput):
        payload = data.model_dump() if isinstance(data, BaseModel) else data
        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            errors = field_errors(e.errors())
            log_with_context(logger, "INFO", "Student payload rejected",
                             extra_data={"fields": [err["field"] for err in errors]})
            raise ValidationError("Student data is invalid", errors=errors) from e

    @staticmethod
    def _write_params(student, now: datetime) -> Dict[str, Any]:
        return {
            "first_name": student.first_name,
            "last_name": student.last_name,
            "email": student.email,
            "phone": student.phone,
            "date_of_birth": student.date_of_birth,
            "gender": student.gender.value,
            "address": student.address,
            "course": student.course,
            "year": student.year,
            "gpa": student.gpa,
            "now": now,
        }

    @staticmethod
    def _fetch_active(db: Session, student_id: int):
        query = text(
            f"""
            SELECT {STUDENT_COLUMNS}
            FROM students
            WHERE id = :id AND is_active = true
            """
        ).columns(**RESULT_TYPES)
        return db.execute(query, {"id": student_id}).fetchone()

    def _ensure_email_available(self, db: Session, email: str, exclude_id: Optional[int] = None):
        condition = ""
        params = {"email": email}
        if exclude_id is not None:
            condition = "AND id <> :exclude_id"
            params["exclude_id"] = exclude_id

        taken = db.execute(
            text(
                f"""
                SELECT id FROM students
                WHERE is_active = true AND LOWER(email) = LOWER(:email) {condition}
                """
            ),
            params,
        ).fetchone()
        if taken:
            raise self._duplicate_email(email)

    @staticmethod
    def _duplicate_email(email: str) -> ValidationError:
        return ValidationError(
            "Student data is invalid",
            errors=[{
                "field": "email",
                "message": f"Email '{email}' is already used by another student",
                "code": "duplicate",
            }],
        )
