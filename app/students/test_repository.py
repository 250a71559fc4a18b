"""Unit tests for the student repository."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from errors import CallerError, NotFound, TransientStoreError, ValidationError
from students.repository import SAMPLE_STUDENTS, StudentRepository
from students.schemas import Gender, RecordState


def make_student(**overrides):
    data = {
        "first_name": "Grace",
        "last_name": "Hopper",
        "email": "grace@example.com",
        "phone": "+1-555-0100",
        "date_of_birth": "1906-12-09",
        "gender": "Female",
        "address": "New York",
        "course": "Computer Science",
        "year": 4,
        "gpa": "3.80",
    }
    data.update(overrides)
    return data


def count_rows(engine):
    with engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM students")).scalar()


class FakeClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start=datetime(2024, 1, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


class TestCreateAndGet:
    """Test cases for creating and reading students."""

    def test_create_scenario(self, repository, ada):
        """Test the documented create scenario."""
        student = repository.create(ada)

        assert isinstance(student.id, int)
        assert student.id > 0
        assert student.created_at == student.updated_at
        assert student.state is RecordState.active
        assert student.is_active is True

    def test_create_then_get_returns_same_fields(self, repository, ada):
        """Test that a created student reads back unchanged."""
        created = repository.create(ada)
        fetched = repository.get_by_id(created.id)

        assert fetched.first_name == "Ada"
        assert fetched.last_name == "Lovelace"
        assert fetched.email == "ada@example.com"
        assert fetched.phone is None
        assert fetched.date_of_birth == date(1815, 12, 10)
        assert fetched.gender is Gender.female
        assert fetched.address == "London"
        assert fetched.course == "Mathematics"
        assert fetched.year == 2
        assert fetched.gpa == Decimal("3.9")
        assert fetched == created

    def test_create_duplicate_email_rejected(self, repository, ada, engine):
        """Test a second active student with the same email fails."""
        repository.create(ada)

        with pytest.raises(ValidationError) as exc_info:
            repository.create(make_student(email="ada@example.com"))

        assert exc_info.value.fields == ["email"]
        assert exc_info.value.errors[0]["code"] == "duplicate"
        assert count_rows(engine) == 1

    def test_duplicate_email_is_case_insensitive(self, repository, ada):
        repository.create(ada)

        with pytest.raises(ValidationError):
            repository.create(make_student(email="ADA@Example.com"))

    def test_email_of_deleted_student_can_be_reused(self, repository, ada):
        """Test uniqueness only applies to active students."""
        first = repository.create(ada)
        repository.delete(first.id)

        second = repository.create(ada)

        assert second.id != first.id
        assert second.email == "ada@example.com"

    @pytest.mark.parametrize("year", [0, 5, -1])
    def test_create_rejects_year_out_of_range(self, repository, engine, year):
        with pytest.raises(ValidationError) as exc_info:
            repository.create(make_student(year=year))

        assert "year" in exc_info.value.fields
        assert count_rows(engine) == 0

    @pytest.mark.parametrize("year", [True, "2", 2.0])
    def test_create_rejects_non_integer_year(self, repository, engine, year):
        with pytest.raises(ValidationError) as exc_info:
            repository.create(make_student(year=year))

        assert exc_info.value.fields == ["year"]
        assert count_rows(engine) == 0

    @pytest.mark.parametrize("gpa", ["-0.01", "4.01", "5"])
    def test_create_rejects_gpa_out_of_range(self, repository, engine, gpa):
        with pytest.raises(ValidationError) as exc_info:
            repository.create(make_student(gpa=gpa))

        assert "gpa" in exc_info.value.fields
        assert count_rows(engine) == 0

    def test_create_enumerates_every_failing_field(self, repository, engine):
        """Test that all violations are reported together."""
        data = make_student(year=7, gpa="9.5", email="not-an-email", gender="Unknown")
        del data["first_name"]

        with pytest.raises(ValidationError) as exc_info:
            repository.create(data)

        assert set(exc_info.value.fields) == {"first_name", "year", "gpa", "email", "gender"}
        assert count_rows(engine) == 0

    def test_create_rejects_blank_required_strings(self, repository):
        with pytest.raises(ValidationError) as exc_info:
            repository.create(make_student(last_name="   ", course=""))

        assert set(exc_info.value.fields) == {"last_name", "course"}

    def test_create_trims_whitespace_and_blank_phone(self, repository):
        student = repository.create(make_student(first_name="  Grace ", phone="  "))

        assert student.first_name == "Grace"
        assert student.phone is None

    def test_get_unknown_id_not_found(self, repository):
        with pytest.raises(NotFound):
            repository.get_by_id(999)

    def test_unique_index_rejects_racing_duplicate(self, repository, ada, engine):
        """Test a duplicate that slips past the lookup is still reported on email."""
        repository._ensure_email_available = lambda *args, **kwargs: None
        repository.create(ada)

        with pytest.raises(ValidationError) as exc_info:
            repository.create({**ada, "email": "ADA@example.com"})

        assert exc_info.value.errors[0]["field"] == "email"
        assert exc_info.value.errors[0]["code"] == "duplicate"
        assert count_rows(engine) == 1


class TestListAndSearch:
    """Test cases for listing and searching students."""

    def test_list_active_ordered_by_last_then_first_name(self, repository):
        repository.create(make_student(first_name="Zoe", last_name="Adams", email="z@a.com"))
        repository.create(make_student(first_name="Bob", last_name="Clark", email="b@c.com"))
        repository.create(make_student(first_name="Amy", last_name="Adams", email="a@a.com"))

        names = [(s.last_name, s.first_name) for s in repository.list_active()]

        assert names == [("Adams", "Amy"), ("Adams", "Zoe"), ("Clark", "Bob")]

    def test_list_active_ignores_case_when_ordering(self, repository):
        repository.create(make_student(first_name="Bea", last_name="Brown", email="b@b.com"))
        repository.create(make_student(first_name="al", last_name="adams", email="a@a.com"))

        assert [s.last_name for s in repository.list_active()] == ["adams", "Brown"]

    def test_list_active_empty(self, repository):
        assert repository.list_active() == []

    @pytest.mark.parametrize("term", ["", "   ", None])
    def test_search_blank_term_is_caller_error(self, repository, term):
        """Test blank terms are rejected even on an empty store."""
        with pytest.raises(CallerError):
            repository.search(term)

    def test_search_matches_name_email_and_course(self, repository, ada):
        repository.create(ada)
        repository.create(make_student())

        assert [s.first_name for s in repository.search("lovelace")] == ["Ada"]
        assert [s.first_name for s in repository.search("GRACE@")] == ["Grace"]
        assert [s.first_name for s in repository.search("mathem")] == ["Ada"]
        assert {s.first_name for s in repository.search("e")} == {"Ada", "Grace"}

    def test_search_keeps_surrounding_spaces(self, repository):
        repository.create(make_student(first_name="Ann", course="Art History", email="ann@x.com"))
        repository.create(make_student(first_name="Bo", last_name="Art", email="bo@x.com"))

        assert [s.first_name for s in repository.search("Art ")] == ["Ann"]
        assert {s.first_name for s in repository.search("Art")} == {"Ann", "Bo"}

    def test_search_treats_wildcards_literally(self, repository, ada):
        repository.create(ada)

        assert repository.search("%") == []
        assert repository.search("_") == []

    def test_search_excludes_deleted(self, repository, ada):
        student = repository.create(ada)
        repository.delete(student.id)

        assert repository.search("Ada") == []


class TestUpdate:
    """Test cases for updating students."""

    def test_update_replaces_every_field(self, session_factory, ada):
        repository = StudentRepository(session_factory, clock=FakeClock())
        created = repository.create(ada)
        replacement = make_student(email="ada.king@example.com", phone="+44-20-0000")

        updated = repository.update(created.id, replacement)
        fetched = repository.get_by_id(created.id)

        assert fetched == updated
        assert fetched.first_name == "Grace"
        assert fetched.last_name == "Hopper"
        assert fetched.email == "ada.king@example.com"
        assert fetched.phone == "+44-20-0000"
        assert fetched.date_of_birth == date(1906, 12, 9)
        assert fetched.year == 4
        assert fetched.gpa == Decimal("3.80")
        assert fetched.created_at == created.created_at
        assert fetched.updated_at > created.updated_at

    def test_update_keeping_own_email(self, repository, ada):
        created = repository.create(ada)

        updated = repository.update(created.id, {**ada, "year": 3})

        assert updated.email == "ada@example.com"
        assert updated.year == 3

    def test_update_to_email_of_another_student(self, repository, ada):
        repository.create(ada)
        other = repository.create(make_student())

        with pytest.raises(ValidationError) as exc_info:
            repository.update(other.id, make_student(email="ada@example.com"))

        assert exc_info.value.fields == ["email"]

    def test_update_unknown_or_deleted_not_found(self, repository, ada):
        created = repository.create(ada)
        repository.delete(created.id)

        with pytest.raises(NotFound):
            repository.update(created.id, ada)
        with pytest.raises(NotFound):
            repository.update(12345, ada)

    def test_update_invalid_leaves_row_unchanged(self, repository, ada):
        created = repository.create(ada)

        with pytest.raises(ValidationError) as exc_info:
            repository.update(created.id, {**ada, "year": 9, "gpa": 4.5})

        assert set(exc_info.value.fields) == {"year", "gpa"}
        assert repository.get_by_id(created.id) == created


class TestDelete:
    """Test cases for soft delete."""

    def test_delete_hides_but_keeps_row(self, repository, ada, engine):
        student = repository.create(ada)

        assert repository.delete(student.id) is True

        with pytest.raises(NotFound):
            repository.get_by_id(student.id)
        assert repository.list_active() == []

        with engine.connect() as conn:
            row = conn.execute(
                text("SELECT id, is_active FROM students WHERE id = :id"), {"id": student.id}
            ).fetchone()
        assert row is not None
        assert not row.is_active

    def test_delete_twice_reports_not_found(self, repository, ada):
        student = repository.create(ada)

        assert repository.delete(student.id) is True
        assert repository.delete(student.id) is False

    def test_delete_unknown_id(self, repository):
        assert repository.delete(42) is False


class TestStatistics:
    """Test cases for dashboard statistics."""

    def test_statistics_empty(self, repository):
        stats = repository.statistics()

        assert stats.total_students == 0
        assert stats.average_gpa == 0
        assert stats.course_distribution == []
        assert stats.year_distribution == []
        assert stats.gender_distribution == []

    def test_statistics_aggregates_active_students(self, repository):
        repository.create(make_student(email="a@x.com", course="Physics", year=3, gpa="3.00", gender="Male"))
        repository.create(make_student(email="b@x.com", course="Biology", year=1, gpa="3.50"))
        repository.create(make_student(email="c@x.com", course="Physics", year=3, gpa="4.00"))
        deleted = repository.create(make_student(email="d@x.com", course="Art", year=2, gpa="0.00"))
        repository.delete(deleted.id)

        stats = repository.statistics()

        assert stats.total_students == 3
        assert stats.average_gpa == 3.5
        assert [(c.course, c.count) for c in stats.course_distribution] == [("Physics", 2), ("Biology", 1)]
        assert [(y.year, y.count) for y in stats.year_distribution] == [(1, 1), (3, 2)]
        assert [(g.gender, g.count) for g in stats.gender_distribution] == [("Female", 2), ("Male", 1)]

    def test_statistics_average_rounded_to_two_places(self, repository):
        repository.create(make_student(email="a@x.com", gpa="3.00"))
        repository.create(make_student(email="b@x.com", gpa="3.00"))
        repository.create(make_student(email="c@x.com", gpa="3.01"))

        assert repository.statistics().average_gpa == 3.0

    def test_statistics_average_rounds_half_to_even(self, repository):
        repository.create(make_student(email="a@x.com", gpa="3.00"))
        repository.create(make_student(email="b@x.com", gpa="3.01"))

        assert repository.statistics().average_gpa == 3.0


class TestStoreFailures:
    """Test cases for an unreachable store."""

    def test_store_error_surfaces_as_transient(self):
        session_factory = Mock()
        session_factory.begin.side_effect = OperationalError(
            "SELECT 1", {}, Exception("connection refused")
        )
        repository = StudentRepository(session_factory)

        with pytest.raises(TransientStoreError):
            repository.list_active()
        with pytest.raises(TransientStoreError):
            repository.delete(1)

    def test_validation_runs_before_store(self):
        session_factory = Mock()
        repository = StudentRepository(session_factory)

        with pytest.raises(ValidationError):
            repository.create(make_student(year=0))
        session_factory.begin.assert_not_called()


class TestSeed:
    def test_seed_if_empty_inserts_once(self, repository):
        assert repository.seed_if_empty() == len(SAMPLE_STUDENTS)
        assert repository.seed_if_empty() == 0
        assert len(repository.list_active()) == len(SAMPLE_STUDENTS)
