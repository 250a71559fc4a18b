"""FastAPI routes for students."""
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from auth.dependencies import require_session
from errors import NotFound
from schemas import ErrorResponse
from students.repository import StudentRepository
from students.schemas import (
    DeleteResponse,
    StudentCreate,
    StudentResponse,
    StudentStatisticsResponse,
    StudentUpdate,
)

router = APIRouter(
    prefix="/api/students",
    tags=["students"],
    dependencies=[Depends(require_session)],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid session token"},
        503: {"model": ErrorResponse, "description": "Student store unavailable"},
    },
)


def get_student_repository(request: Request) -> StudentRepository:
    """The repository built at startup."""
    return request.app.state.student_repository


@router.get("", response_model=List[StudentResponse])
def list_students(repo: StudentRepository = Depends(get_student_repository)):
    """All active students, ordered by last name then first name."""
    return repo.list_active()


# Fixed paths go BEFORE the parameterized one
@router.get("/search", response_model=List[StudentResponse])
def search_students(
    term: str = Query("", description="Matched against name, email and course"),
    repo: StudentRepository = Depends(get_student_repository),
):
    """Search active students."""
    return repo.search(term)


@router.get("/statistics", response_model=StudentStatisticsResponse)
def get_statistics(repo: StudentRepository = Depends(get_student_repository)):
    """Totals, average GPA and distributions for the dashboard cards."""
    return repo.statistics()


@router.get("/{student_id}", response_model=StudentResponse, responses={404: {"model": ErrorResponse}})
def get_student(student_id: int, repo: StudentRepository = Depends(get_student_repository)):
    return repo.get_by_id(student_id)


@router.post("", response_model=StudentResponse, status_code=201, responses={422: {"model": ErrorResponse}})
def create_student(
    student_data: StudentCreate,
    repo: StudentRepository = Depends(get_student_repository),
):
    return repo.create(student_data)


@router.put("/{student_id}", response_model=StudentResponse)
def update_student(
    student_id: int,
    student_data: StudentUpdate,
    repo: StudentRepository = Depends(get_student_repository),
):
    """Replace every field of a student."""
    return repo.update(student_id, student_data)


@router.delete("/{student_id}", response_model=DeleteResponse)
def delete_student(student_id: int, repo: StudentRepository = Depends(get_student_repository)):
    """Soft delete: the row stays, flagged inactive."""
    if not repo.delete(student_id):
        raise NotFound(f"Student with ID {student_id} not found")
    return DeleteResponse(message="Student deleted successfully")
