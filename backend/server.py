"""
FastAPI Server for the Cohort Term API

Provides REST endpoints to read and manage each cohort's current semester.
Reading terms advances any cohort whose semester has ended.

Usage:
    python server.py                    # Run server on port 8000
    python server.py --port 3001        # Custom port
    python server.py --no-scheduler     # Disable background expiry sweep
"""

import asyncio
import argparse
from collections import Counter
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Query, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core import config
from core.auth import AuthenticatedUser, get_current_user, get_privileged_user
from core.config import initialize_firebase
from core.exceptions import NotFoundError, StoreError, TermError
from core.models import TermRecord
from services.allocator import AllocationRequest
from services.terms import TermService, get_term_service


# Pydantic Models (API Schemas)

class TermResponse(BaseModel):
    id: str
    cohort_key: str
    term_number: int
    display_name: str
    start_date: date
    end_date: date
    is_current: bool
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    created_by: Optional[str] = None


class CreateTermRequest(BaseModel):
    cohort_key: str
    term_number: int
    start_date: date
    end_date: date
    is_current: bool = False


class UpdateTermRequest(BaseModel):
    id: str
    cohort_key: Optional[str] = None
    term_number: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_current: Optional[bool] = None


class CohortAllocation(BaseModel):
    cohort_key: str
    candidate_year: Optional[int] = None


class AllocateTermsRequest(BaseModel):
    cohorts: List[CohortAllocation]


class AllocationItem(BaseModel):
    cohort_key: str
    status: str
    record: Optional[TermResponse] = None
    error: Optional[str] = None


class AllocateTermsResponse(BaseModel):
    results: List[AllocationItem]
    allocated: int
    failed: int


class WindowResponse(BaseModel):
    term_number: int
    cohort_year: int
    display_name: str
    start_date: date
    end_date: date


class DeleteResponse(BaseModel):
    message: str


class ProgressionItem(BaseModel):
    id: Optional[str] = None
    cohort_key: str
    state: str
    previous_number: int
    new_number: int
    reason: Optional[str] = None


class SweepResponse(BaseModel):
    counts: Dict[str, int]
    outcomes: List[ProgressionItem]


class HealthResponse(BaseModel):
    status: str
    store: str
    term_store: str
    sweep_minutes: int


# Background Sweeper

sweeper_task = None


async def run_background_sweeper():
    """Run the expiry sweeper in the background"""
    from tasks.scheduler import TermSweeper

    sweeper = TermSweeper()
    await sweeper.start()

    # Keep running
    try:
        while True:
            await asyncio.sleep(60)
    except asyncio.CancelledError:
        sweeper.shutdown()


# App Lifespan (startup/shutdown)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown"""
    global sweeper_task

    # Startup
    if config.TERM_STORE != "memory":
        print("[Server] Initializing Firebase...")
        initialize_firebase()

    if app.state.enable_scheduler and config.TERM_SWEEP_MINUTES > 0:
        print("[Server] Starting background expiry sweep...")
        sweeper_task = asyncio.create_task(run_background_sweeper())

    print("[Server] Ready!")

    yield

    # Shutdown
    if sweeper_task:
        print("[Server] Stopping sweeper...")
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass

    print("[Server] Shutdown complete")


# FastAPI App

app = FastAPI(
    title="Cohort Term API",
    description="Semester assignment and progression for admission-year cohorts",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Default: enable scheduler (only starts when TERM_SWEEP_MINUTES > 0)
app.state.enable_scheduler = True


# Error Handlers

@app.exception_handler(TermError)
async def term_error_handler(request, exc: TermError):
    if isinstance(exc, StoreError):
        print(f"[Server] Store error on {request.method} {request.url.path}: {exc.__cause__ or exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Report malformed bodies and missing fields as 400"""
    missing = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in exc.errors()
        if err.get("type") == "missing"
    ]
    message = "Missing required fields" if missing else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message, "fields": missing, "details": jsonable_errors(exc)}
    )


def jsonable_errors(exc: RequestValidationError) -> List[dict]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
        for err in exc.errors()
    ]


# Dependencies

def get_now() -> datetime:
    """Current instant used for expiry checks (overridable in tests)"""
    return datetime.utcnow()


def get_service() -> TermService:
    return get_term_service()


# API Endpoints

@app.get("/", response_model=HealthResponse)
async def health_check(service: TermService = Depends(get_service)):
    """Health check endpoint"""
    store_status = "connected"
    try:
        service.repository.ping()
    except Exception as e:
        store_status = f"error: {str(e)[:50]}"

    return HealthResponse(
        status="ok" if store_status == "connected" else "degraded",
        store=store_status,
        term_store=config.TERM_STORE,
        sweep_minutes=config.TERM_SWEEP_MINUTES
    )


@app.get("/api/health", response_model=HealthResponse)
async def api_health(service: TermService = Depends(get_service)):
    """API health check"""
    return await health_check(service)


@app.get("/api/terms", response_model=List[TermResponse])
def list_terms(
    cohort: Optional[str] = Query(None, description="Filter by cohort key (admission year)"),
    current_only: bool = Query(False, alias="currentOnly", description="Only current terms"),
    user: AuthenticatedUser = Depends(get_current_user),
    now: datetime = Depends(get_now),
    service: TermService = Depends(get_service)
):
    """
    List term records. Expired current terms are advanced before returning.
    """
    records, _ = service.list_terms(cohort, current_only, now)
    return [_format_term(r) for r in records]


@app.get("/api/terms/current", response_model=TermResponse)
def get_current_term(
    cohort: str = Query(..., min_length=1, description="Cohort key (admission year)"),
    user: AuthenticatedUser = Depends(get_current_user),
    now: datetime = Depends(get_now),
    service: TermService = Depends(get_service)
):
    """
    Get the current term for one cohort.
    """
    record = service.current_term(cohort, now)
    if record is None:
        raise NotFoundError(f"No current semester for cohort {cohort}")
    return _format_term(record)


@app.get("/api/terms/window", response_model=WindowResponse)
def preview_window(
    term_number: int = Query(..., description="Semester number (1-10)"),
    cohort_year: int = Query(..., ge=1900, le=2200, description="Admission year"),
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Preview the calendar window for a semester number and admission year.
    """
    start, end = TermService.preview_window(term_number, cohort_year)
    return WindowResponse(
        term_number=term_number,
        cohort_year=cohort_year,
        display_name=f"Semester {term_number}",
        start_date=start,
        end_date=end
    )


@app.post("/api/terms", response_model=TermResponse, status_code=status.HTTP_201_CREATED)
def create_term(
    body: CreateTermRequest,
    user: AuthenticatedUser = Depends(get_privileged_user),
    service: TermService = Depends(get_service)
):
    """
    Create a term record. Fails with 409 if the semester number is taken.
    """
    record = service.create_term(
        cohort_key=body.cohort_key,
        term_number=body.term_number,
        start_date=body.start_date,
        end_date=body.end_date,
        is_current=body.is_current,
        created_by=user.uid
    )
    return _format_term(record)


@app.put("/api/terms", response_model=TermResponse)
def update_term(
    body: UpdateTermRequest,
    user: AuthenticatedUser = Depends(get_privileged_user),
    service: TermService = Depends(get_service)
):
    """
    Update a term record. Fails with 404 for unknown ids, 409 on conflict.
    """
    record = service.update_term(
        body.id,
        cohort_key=body.cohort_key,
        term_number=body.term_number,
        start_date=body.start_date,
        end_date=body.end_date,
        is_current=body.is_current
    )
    return _format_term(record)


@app.delete("/api/terms", response_model=DeleteResponse)
def delete_term(
    id: str = Query(..., min_length=1, description="Term record id"),
    user: AuthenticatedUser = Depends(get_privileged_user),
    service: TermService = Depends(get_service)
):
    """
    Delete a term record.
    """
    service.delete_term(id)
    return DeleteResponse(message="Semester deleted successfully")


@app.post("/api/terms/allocate", response_model=AllocateTermsResponse)
def allocate_terms(
    body: AllocateTermsRequest,
    user: AuthenticatedUser = Depends(get_privileged_user),
    now: datetime = Depends(get_now),
    service: TermService = Depends(get_service)
):
    """
    Give each listed cohort its first term when it has none.

    Each cohort is handled independently; see the per-cohort status.
    """
    requests = [
        AllocationRequest(cohort_key=c.cohort_key, candidate_year=c.candidate_year)
        for c in body.cohorts
    ]
    results = service.allocate_missing(requests, today=now.date(), created_by=user.uid)

    items = [
        AllocationItem(
            cohort_key=r.cohort_key,
            status=r.status,
            record=_format_term(r.record) if r.record else None,
            error=r.error
        )
        for r in results
    ]
    return AllocateTermsResponse(
        results=items,
        allocated=sum(1 for r in results if r.status == "allocated"),
        failed=sum(1 for r in results if r.status in ("exhausted", "error"))
    )


@app.post("/api/terms/sweep", response_model=SweepResponse)
def sweep_terms(
    user: AuthenticatedUser = Depends(get_privileged_user),
    now: datetime = Depends(get_now),
    service: TermService = Depends(get_service)
):
    """
    Evaluate every term record for expiry now and report each outcome.

    Exhausted cohorts are listed here rather than failing the request.
    """
    _, outcomes = service.list_terms(now=now)
    counts = Counter(o.state.value for o in outcomes)
    return SweepResponse(
        counts=dict(counts),
        outcomes=[ProgressionItem(**o.to_dict()) for o in outcomes]
    )


# Helpers

def _format_term(record: TermRecord) -> TermResponse:
    """Format a term record for API response"""
    return TermResponse(
        id=record.id,
        cohort_key=record.cohort_key,
        term_number=record.term_number,
        display_name=record.display_name,
        start_date=record.start_date,
        end_date=record.end_date,
        is_current=record.is_current,
        created_at=record.created_at,
        modified_at=record.modified_at,
        created_by=record.created_by
    )


# Main

def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="Cohort Term API Server")
    parser.add_argument("--port", type=int, default=8000, help="Port to run on")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--no-scheduler", action="store_true", help="Disable background expiry sweep")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    args = parser.parse_args()

    app.state.enable_scheduler = not args.no_scheduler

    print(f"[Server] Starting on http://{args.host}:{args.port}")
    print(f"[Server] Term store: {config.TERM_STORE}")
    print(f"[Server] Expiry sweep: "
          f"{'every %d min' % config.TERM_SWEEP_MINUTES if app.state.enable_scheduler and config.TERM_SWEEP_MINUTES > 0 else 'disabled'}")

    uvicorn.run(
        "server:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
