"""REST API server for the Content Hub daemon."""

import time
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from rich.console import Console

from .api_errors import (
    APIError,
    ConflictError,
    NotFoundError,
    ServerError,
    ServiceUnavailableError,
    UpstreamError,
)
from .api_models import APIResponse, GenerationTaskListResponse, GenerationTaskResponse
from .auth import get_config, verify_api_key
from .config import Config
from .errors import ConfigurationError, PersistenceError
from .models import KeywordStatus
from .observability import log as obs_log
from .orchestrator import KeywordOutcome, create_orchestrator
from .storage import Storage

console = Console()

app = FastAPI(
    title="Content Hub API",
    description="REST API for triggering and inspecting article generation",
    version="1.0.0",
)


@app.middleware("http")
async def log_requests(request: Request, call_next) -> Response:
    """Log API requests in same style as daemon output."""
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = (time.time() - start_time) * 1000

    client_ip = request.client.host if request.client else "unknown"
    query_str = f"?{request.url.query}" if request.url.query else ""
    console.print(
        f"[dim]   📡 API: {request.method} {request.url.path}{query_str} from {client_ip} → {response.status_code} ({duration:.0f}ms)[/dim]"
    )

    obs_log(
        "api.request",
        method=request.method,
        path=request.url.path,
        query=request.url.query if request.url.query else None,
        client_ip=client_ip,
        status_code=response.status_code,
        duration_ms=int(duration),
    )

    return response


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle our custom APIError exceptions with consistent format.

    Formats all errors as: {"success": false, "message": "...", "data": ...}
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "data": exc.data},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI validation errors with consistent format.

    Converts FastAPI's default {"detail": [...]} format to our standard
    {"success": false, "message": "...", "data": null} format.
    """
    first_error = exc.errors()[0]
    field = " -> ".join(str(loc) for loc in first_error["loc"])

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": f"Validation error in {field}: {first_error['msg']}",
            "data": None,
        },
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(
    request: Request, exc: PersistenceError
) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": f"Database error: {exc}", "data": None},
    )


# Dependency injection for Storage with proper cleanup
async def get_storage() -> Storage:
    """Dependency injection for Storage instances with cleanup.

    Uses FastAPI's yield dependency pattern to ensure database
    connections are properly closed after each request.
    """
    storage = Storage()
    try:
        yield storage
    finally:
        storage.close()


# Configure CORS for local access only
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:*", "http://127.0.0.1:*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post(
    "/api/generation/run",
    response_model=APIResponse,
    dependencies=[Depends(verify_api_key)],
)
def trigger_generation_run(
    storage: Storage = Depends(get_storage),
    config: Config = Depends(get_config),
) -> APIResponse:
    """Run one generation cycle now, with the configured policy.

    Runs in the worker threadpool; keyword claims keep it safe to overlap
    with a scheduled run.
    """
    orchestrator = create_orchestrator(config, storage, console=console)
    report = orchestrator.run_generation_cycle()
    summary = report.to_dict()

    if not report.success:
        raise ServerError(report.error, data=summary)

    return APIResponse(
        success=True,
        message=(
            f"Generated {report.articles_generated} article(s) across "
            f"{report.websites_considered} website(s)"
        ),
        data=summary,
    )


@app.post(
    "/api/keyword-plans/{plan_id}/generate",
    response_model=APIResponse,
    dependencies=[Depends(verify_api_key)],
)
def generate_keyword_plan(
    plan_id: str,
    storage: Storage = Depends(get_storage),
    config: Config = Depends(get_config),
) -> APIResponse:
    """Generate an article for one keyword plan right away.

    Ignores the scheduling policy and daily quota. The plan must be pending.
    """
    plan = storage.get_keyword_plan(plan_id)
    if plan is None:
        raise NotFoundError("Keyword plan", plan_id)
    if plan.status != KeywordStatus.PENDING:
        raise ConflictError(
            f"Keyword plan is {plan.status.value}, only pending plans can be generated",
            data={"keyword_plan_id": plan_id, "status": plan.status.value},
        )

    orchestrator = create_orchestrator(config, storage, console=console)
    try:
        outcome = orchestrator.generate_for_keyword_plan(plan_id)
    except LookupError as e:
        raise NotFoundError("Website", str(e))
    except ConfigurationError as e:
        raise ServerError(f"Configuration error: {e}")

    plan = storage.get_keyword_plan(plan_id)
    tasks = storage.get_tasks_for_keyword_plan(plan_id)
    data = {
        "keyword_plan_id": plan_id,
        "outcome": outcome.value,
        "status": plan.status.value,
        "article_id": plan.article_id,
        "task": tasks[-1].to_dict() if tasks else None,
    }

    if outcome == KeywordOutcome.GENERATED:
        return APIResponse(success=True, message="Article generated", data=data)
    if outcome == KeywordOutcome.CLAIM_LOST:
        raise ConflictError("Keyword plan was claimed by another run", data=data)
    if outcome == KeywordOutcome.DEFERRED:
        raise ServiceUnavailableError(
            "AI provider unavailable (circuit open), plan left pending", data=data
        )
    raise UpstreamError(f"Generation failed: {plan.failure_reason}", data=data)


@app.get("/api/generation-tasks", dependencies=[Depends(verify_api_key)])
async def list_generation_tasks(
    website_id: Optional[str] = Query(None, description="Filter by website"),
    status: Optional[Literal["pending", "processing", "completed", "failed"]] = Query(
        None, description="Filter by task status"
    ),
    limit: int = Query(50, ge=1, le=200, description="Maximum tasks to return"),
    storage: Storage = Depends(get_storage),
) -> APIResponse:
    """List generation tasks, newest first."""
    tasks = storage.list_generation_tasks(
        website_id=website_id, status=status, limit=limit
    )
    payload = GenerationTaskListResponse(
        tasks=[GenerationTaskResponse(**task.to_dict()) for task in tasks],
        total=len(tasks),
    )
    return APIResponse(
        success=True,
        message=f"Found {len(tasks)} task(s)",
        data=payload.model_dump(),
    )


@app.get("/health")
async def health_check(storage: Storage = Depends(get_storage)) -> dict:
    """Health check endpoint that verifies database connectivity (no auth required)."""
    try:
        counts = storage.get_pipeline_counts()
        return {
            "success": True,
            "message": "Service healthy",
            "data": {
                "service": "contenthub-api",
                "database": "connected",
                **counts,
            },
        }
    except PersistenceError as e:
        raise ServerError(f"Health check failed: {e}")
