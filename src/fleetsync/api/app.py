"""
Main FastAPI application exposing the sync engine's admin surface.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..core.config import SyncSettings, load_settings
from ..database.connection import DatabaseManager
from ..engine.factory import create_orchestrator
from ..engine.sync import SyncOrchestrator
from ..exceptions import ConfigurationError, FleetSyncException
from ..models.sync import SweepResult, TableSyncResult
from ..services.scheduler import SchedulerService
from ..services.secrets import SecretManagerService
from ..version import __version__

logger = logging.getLogger(__name__)

# Global services (initialized in lifespan)
settings: Optional[SyncSettings] = None
orchestrator: Optional[SyncOrchestrator] = None
scheduler_service: Optional[SchedulerService] = None
secret_service: Optional[SecretManagerService] = None
database_manager: Optional[DatabaseManager] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global settings, orchestrator, scheduler_service, secret_service, database_manager

    project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
    region = os.getenv("GOOGLE_CLOUD_REGION", "europe-west1")

    # Secret Manager is optional; credentials fall back to the environment
    credentials: Dict[str, str] = {}
    if project_id:
        try:
            secret_service = SecretManagerService(project_id=project_id)
            credentials = secret_service.get_remote_credentials()
            logger.info("Secret Manager service initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Secret Manager service: {e}")
            secret_service = None

    try:
        settings = load_settings(token=credentials.get("AIRTABLE_TOKEN") or None,
                                 base_id=credentials.get("AIRTABLE_BASE_ID") or None)
        database_manager = DatabaseManager(settings.database_url)
        database_manager.create_all()
        orchestrator = create_orchestrator(settings, database=database_manager)
        logger.info("Sync orchestrator initialized successfully")
    except (ValueError, FleetSyncException) as e:
        logger.error(f"Failed to initialize sync orchestrator: {e}")
        orchestrator = None

    if project_id:
        try:
            scheduler_service = SchedulerService(project_id=project_id, region=region)
            logger.info("Scheduler service initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Scheduler service: {e}")
            scheduler_service = None

    logger.info("Application startup complete")

    yield

    logger.info("Application shutdown")


app = FastAPI(
    title="fleetsync API",
    description="Admin API for the synchronization between the operations database and Airtable",
    version=__version__,
    lifespan=lifespan
)

# Get allowed origins from environment variable
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

if not allowed_origins:
    # Default to allowing all for local dev if not set
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_orchestrator() -> SyncOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="Sync orchestrator not initialized")
    return orchestrator


def get_scheduler_service() -> SchedulerService:
    if scheduler_service is None:
        raise HTTPException(status_code=500, detail="Scheduler service not initialized")
    return scheduler_service


def get_settings() -> SyncSettings:
    if settings is None:
        raise HTTPException(status_code=500, detail="Settings not loaded")
    return settings


def require_table(engine: SyncOrchestrator, table_name: str) -> None:
    if engine.registry.get_spec(table_name) is None:
        raise ConfigurationError(f"Table {table_name} is not registered for sync")


# Request models
class SyncRequest(BaseModel):
    force: bool = Field(False, description="Push a full snapshot instead of changes since the watermark")
    triggered_by: str = Field("api", description="What triggered this sync")


class ScheduleRequest(BaseModel):
    service_url: Optional[str] = Field(None, description="Public URL of this service")
    include_tables: bool = Field(True, description="Also create one push job per table")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Check the health of the application and its services."""
    database_ok = database_manager is not None and database_manager.test_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "version": __version__,
        "services": {
            "database": database_ok,
            "orchestrator": orchestrator is not None,
            "scheduler": scheduler_service is not None,
            "secret_manager": secret_service is not None,
        }
    }


@app.get("/api/v1/tables")
async def list_tables(engine: SyncOrchestrator = Depends(get_orchestrator)):
    """List configured tables and their sync settings."""
    return {
        "tables": [
            {
                "table_name": spec.table_name,
                "remote_collection_id": spec.remote_collection_id,
                "direction": spec.direction.value,
                "conflict_priority": spec.conflict_priority.value,
                "critical": spec.critical,
                "cadence": spec.cadence,
                "fields": len(spec.field_mapping),
                "phase": engine.table_phase(spec.table_name).value,
            }
            for spec in engine.registry.specs()
        ]
    }


@app.post("/api/v1/sync/{table_name}", response_model=TableSyncResult)
def sync_table(
    table_name: str,
    request: Optional[SyncRequest] = None,
    engine: SyncOrchestrator = Depends(get_orchestrator)
):
    """Push one table now, optionally as a forced full resync."""
    request = request or SyncRequest()
    try:
        require_table(engine, table_name)
        return engine.sync_table(table_name, force=request.force, triggered_by=request.triggered_by)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FleetSyncException as e:
        logger.error(f"Failed to sync table {table_name}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/sync/{table_name}/pull", response_model=TableSyncResult)
def pull_table(
    table_name: str,
    request: Optional[SyncRequest] = None,
    engine: SyncOrchestrator = Depends(get_orchestrator)
):
    """Pull remote changes of one table and apply the accepted ones."""
    request = request or SyncRequest()
    try:
        require_table(engine, table_name)
        return engine.pull_table(table_name, triggered_by=request.triggered_by)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FleetSyncException as e:
        logger.error(f"Failed to pull table {table_name}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/sync/{table_name}/preview")
def preview_table(
    table_name: str,
    sample_size: int = 5,
    engine: SyncOrchestrator = Depends(get_orchestrator)
):
    """Show the payloads a push would send for a sample of rows."""
    if sample_size < 1 or sample_size > 100:
        raise HTTPException(status_code=400, detail="sample_size must be between 1 and 100")
    try:
        return engine.preview(table_name, sample_size=sample_size)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FleetSyncException as e:
        logger.error(f"Failed to preview table {table_name}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/sync/status")
def sync_status(engine: SyncOrchestrator = Depends(get_orchestrator)):
    """Latest sync log of every table leg."""
    try:
        logs = engine.health_status()
    except FleetSyncException as e:
        logger.error(f"Failed to read sync status: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "tables": {name: log.model_dump(mode="json") for name, log in logs.items()},
        "in_flight": [name for name in engine.registry.table_names() if engine.is_in_flight(name)],
    }


@app.get("/api/v1/sync/dashboard")
def sync_dashboard(limit: int = 10, engine: SyncOrchestrator = Depends(get_orchestrator)):
    """Recent successes and errors."""
    try:
        return engine.dashboard(limit=limit)
    except FleetSyncException as e:
        logger.error(f"Failed to build dashboard: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/sweeps/critical", response_model=SweepResult)
def critical_sweep(request: Optional[SyncRequest] = None, engine: SyncOrchestrator = Depends(get_orchestrator)):
    """Run the critical tables sweep."""
    request = request or SyncRequest(triggered_by="scheduler")
    return engine.run_critical_sweep(triggered_by=request.triggered_by)


@app.post("/api/v1/sweeps/bidirectional", response_model=SweepResult)
def bidirectional_sweep(request: Optional[SyncRequest] = None,
                        engine: SyncOrchestrator = Depends(get_orchestrator)):
    """Run the bidirectional tables sweep."""
    request = request or SyncRequest(triggered_by="scheduler")
    return engine.run_bidirectional_sweep(triggered_by=request.triggered_by)


@app.post("/api/v1/schedules")
def create_schedules(
    request: Optional[ScheduleRequest] = None,
    scheduler: SchedulerService = Depends(get_scheduler_service),
    engine: SyncOrchestrator = Depends(get_orchestrator),
    current_settings: SyncSettings = Depends(get_settings)
):
    """Create the Cloud Scheduler jobs for both sweeps and, optionally, every table."""
    request = request or ScheduleRequest()
    base_url = request.service_url or os.getenv("API_BASE_URL", "http://localhost:8000")
    try:
        jobs: List[Dict[str, Any]] = scheduler.register_sweeps(
            base_url,
            current_settings.critical_interval_seconds,
            current_settings.bidirectional_interval_seconds,
        )
        if request.include_tables:
            jobs.extend(scheduler.register_tables(base_url, engine.registry.specs()))
        return {"message": "Schedules created successfully", "jobs": jobs}
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create schedules: {e}")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
