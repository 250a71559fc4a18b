from fastapi import APIRouter
from starlette.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

router = APIRouter()

# incremented by the auth and student services
LOGIN_ATTEMPTS = Counter(
    "login_attempts_total", "Login attempts by outcome", ["outcome"]
)
STUDENT_MUTATIONS = Counter(
    "student_mutations_total", "Successful student writes by operation", ["operation"]
)
STORE_ERRORS = Counter("store_errors_total", "Transient store failures")


@router.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
