"""
FastAPI application entry point.

HTTP surface for the job scheduler: job submission and queries for
submitters, claim/report/heartbeat endpoints for worker nodes, and a
small control plane under /scheduler.

Optional API key authentication via API_AUTH_ENABLED / API_KEY.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI

from src import __version__
from src.infra.logging_config import setup_logging
from src.infra.settings import SchedulerSettings
from .routers import jobs, nodes, scheduler
from ._scheduler_state import (
    get_scheduler_service,
    init_scheduler_service,
    shutdown_scheduler_service,
)
from .dependencies.auth import verify_api_key, API_AUTH_ENABLED


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown of resources:
    - Logging from LOG_LEVEL / LOG_DIR
    - Scheduler service and its supervisor ticker
    """
    settings = SchedulerSettings.from_env()
    setup_logging(settings.log_level, settings.log_dir)
    init_scheduler_service(settings)

    yield

    shutdown_scheduler_service()

# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "jobs",
        "description": "Job submission, queries and cancellation; claim, result and progress endpoints for nodes",
    },
    {
        "name": "nodes",
        "description": "Worker node registration, heartbeats and listing",
    },
    {
        "name": "scheduler",
        "description": "Scheduler control plane - status, manual tick and retention cleanup",
    },
]

app = FastAPI(
    title="Job Scheduler API",
    lifespan=lifespan,
    description="""
## Job Scheduler API

Distributes queued jobs to a fleet of worker nodes.

### Authentication
When `API_AUTH_ENABLED=true`, all endpoints except `/health` require
an `X-API-Key` header matching the `API_KEY` environment variable.

### Flow
- Submitters `POST /jobs`; jobs are ordered by priority, then age
- Nodes `POST /nodes/register`, send heartbeats, and pull work with `POST /jobs/request`
- Nodes report `POST /jobs/{job_id}/result`; stalled or orphaned jobs are retried automatically

### Usage
```bash
# Start server
uvicorn src.api.main:app --host 127.0.0.1 --port 8000

# Submit a job
curl -X POST http://localhost:8000/jobs \\
  -H "Content-Type: application/json" \\
  -H "X-User-Id: alice" \\
  -d '{"job_type": "ocr", "parameters": {"file": "scan.png"}, "priority": 8}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)

# Health check - NO authentication (operational endpoint)
@app.get("/health")
async def health_check():
    """Health check endpoint. Not authenticated."""
    service = get_scheduler_service()
    return {
        "status": "ok",
        "version": __version__,
        "ticker_running": service.is_running,
    }


# Include routers WITH authentication dependency (when enabled)
auth_dependency = [Depends(verify_api_key)] if API_AUTH_ENABLED else []

app.include_router(
    jobs.router, prefix="/jobs", tags=["jobs"], dependencies=auth_dependency
)
app.include_router(
    nodes.router, prefix="/nodes", tags=["nodes"], dependencies=auth_dependency
)
app.include_router(
    scheduler.router, prefix="/scheduler", tags=["scheduler"], dependencies=auth_dependency
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
