# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap FastAPI Integration - HTTP surface for snapshot workflows.

This module provides:
- Lifespan management (startup/shutdown)
- Protected snapshot endpoints
- Scheduled daily snapshots
- Health checks
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import List

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from hostsnap.config import SnapshotConfig
from hostsnap.core import SnapshotOrchestrator
from hostsnap.exceptions import PreconditionError, RecordNotFoundError

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)

API_KEY_ENV = "HOSTSNAP_ADMIN_API_KEY"
SCHEDULE_JOB_ID = "hostsnap_scheduled_create"


class CreateSnapshotRequest(BaseModel):
    description: str = ""
    source: str = "LOCAL"


class RecoverSnapshotRequest(BaseModel):
    force_full_redo: bool = False
    redownload: bool = False


class DeleteSnapshotsRequest(BaseModel):
    ids: List[str] = Field(min_length=1)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the HOSTSNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv(API_KEY_ENV)

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail=f"{API_KEY_ENV} environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RecordNotFoundError)
    async def record_not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(PreconditionError)
    async def precondition_failed(request: Request, exc: PreconditionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.message})


def register_snapshot_routes(
    app: FastAPI,
    orchestrator: SnapshotOrchestrator,
    prefix: str = "/api/v1/snapshots",
) -> None:
    """
    Register snapshot endpoints on a FastAPI app.

    All endpoints require Bearer token authentication. Precondition
    failures map to 409, unknown records to 404.

    Args:
        app: FastAPI application
        orchestrator: Orchestrator the endpoints drive
        prefix: URL prefix for endpoints (default: /api/v1/snapshots)
    """
    _register_error_handlers(app)
    auth = [Depends(verify_api_key)]

    @app.post(prefix, dependencies=auth, status_code=202)
    async def create_snapshot(body: CreateSnapshotRequest) -> dict:
        """Start a snapshot of this host. Poll the record for the outcome."""
        return dict(await orchestrator.create(body.description, body.source))

    @app.get(prefix, dependencies=auth)
    async def search_snapshots(
        page: int = 1,
        page_size: int = 20,
        info: str | None = None,
    ) -> dict:
        total, records = await orchestrator.search(page, page_size, info)
        return {"total": total, "items": [dict(record) for record in records]}

    @app.get(f"{prefix}/stuck", dependencies=auth)
    async def list_stuck_snapshots() -> list:
        """Records whose recover or rollback has been Waiting for too long."""
        return [dict(record) for record in await orchestrator.find_stuck_records()]

    @app.get(f"{prefix}/health", dependencies=auth)
    async def health_check() -> dict:
        """
        Health check endpoint.

        Reports record store access and stuck workflows.
        """
        store_ok = True
        store_error = None
        stuck: list = []
        try:
            stuck = await orchestrator.find_stuck_records()
        except Exception as e:
            store_ok = False
            store_error = str(e)

        status = "healthy"
        if stuck:
            status = "degraded"
        if not store_ok:
            status = "unhealthy"

        return {
            "status": status,
            "record_store_accessible": store_ok,
            "record_store_error": store_error,
            "stuck_records": [record["id"] for record in stuck],
            "staging_root": str(orchestrator.config.staging_root),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.post(f"{prefix}/delete", dependencies=auth)
    async def delete_snapshots(body: DeleteSnapshotsRequest) -> dict:
        return {"deleted": await orchestrator.delete(body.ids)}

    @app.get(f"{prefix}/{{record_id}}", dependencies=auth)
    async def get_snapshot(record_id: str) -> dict:
        record = await orchestrator.get(record_id)
        return {**record, "stuck": orchestrator.is_stuck(record)}

    @app.post(f"{prefix}/{{record_id}}/recover", dependencies=auth, status_code=202)
    async def recover_snapshot(
        record_id: str,
        body: RecoverSnapshotRequest | None = None,
    ) -> dict:
        """Restore the snapshot onto this host, resuming a failed attempt."""
        body = body or RecoverSnapshotRequest()
        record = await orchestrator.recover(
            record_id,
            force_full_redo=body.force_full_redo,
            redownload=body.redownload,
        )
        return dict(record)

    @app.post(f"{prefix}/{{record_id}}/rollback", dependencies=auth, status_code=202)
    async def rollback_snapshot(record_id: str) -> dict:
        """Undo the last recover from the original-state safety copy."""
        return dict(await orchestrator.rollback(record_id))

    @app.post(f"{prefix}/{{record_id}}/cancel", dependencies=auth)
    async def cancel_snapshot_workflow(record_id: str) -> dict:
        await orchestrator.get(record_id)
        if not orchestrator.cancel(record_id):
            raise HTTPException(
                status_code=409,
                detail="No workflow is running for this snapshot",
            )
        return {"cancelled": True}


def _setup_scheduled_task(
    config: SnapshotConfig, orchestrator: SnapshotOrchestrator
) -> AsyncIOScheduler:
    """Set up APScheduler for a daily snapshot."""
    scheduler = AsyncIOScheduler()

    # Parse HH:MM format
    hour, minute = map(int, config.schedule_cron.split(":"))

    async def scheduled_create():
        """Start the scheduled snapshot."""
        logger.info("scheduled_snapshot_starting")
        try:
            record = await orchestrator.create(
                "scheduled snapshot", config.schedule_source.value
            )
            logger.info("scheduled_snapshot_started", snapshot=record["name"])
        except Exception as e:
            logger.error("scheduled_snapshot_failed", error=str(e))

    scheduler.add_job(
        scheduled_create,
        trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
        id=SCHEDULE_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()

    logger.info(
        "scheduler_started",
        schedule=config.schedule_cron,
        next_run=scheduler.get_job(SCHEDULE_JOB_ID).next_run_time.isoformat(),
    )
    return scheduler


@asynccontextmanager
async def hostsnap_lifespan(
    app: FastAPI,
    config: SnapshotConfig,
    orchestrator: SnapshotOrchestrator | None = None,
    prefix: str = "/api/v1/snapshots",
):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: hostsnap_lifespan(app, config))

    Args:
        app: FastAPI application
        config: hostsnap configuration
        orchestrator: Prebuilt orchestrator (built from config when omitted)
        prefix: URL prefix for the snapshot endpoints
    """
    logger.info("hostsnap_lifespan_starting")

    orchestrator = orchestrator or SnapshotOrchestrator(config)
    await orchestrator.init()
    app.state.hostsnap_config = config
    app.state.hostsnap_orchestrator = orchestrator

    register_snapshot_routes(app, orchestrator, prefix)

    scheduler = None
    if config.schedule_cron:
        scheduler = _setup_scheduled_task(config, orchestrator)

    logger.info("hostsnap_lifespan_started")

    try:
        yield
    finally:
        logger.info("hostsnap_lifespan_stopping")
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await orchestrator.shutdown()
        logger.info("hostsnap_lifespan_stopped")


def get_orchestrator(app: FastAPI) -> SnapshotOrchestrator:
    """
    Get the orchestrator from a FastAPI app.

    Useful for accessing snapshot workflows in custom endpoints.

    Raises:
        RuntimeError: If hostsnap is not initialized
    """
    orchestrator = getattr(app.state, "hostsnap_orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("hostsnap not initialized. Use hostsnap_lifespan first.")
    return orchestrator
