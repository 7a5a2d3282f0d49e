# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with hostsnap Integration.

Serves the snapshot endpoints for the local host and takes a snapshot
every night.

Run with:
    uvicorn examples.basic_app:app

Environment variables:
    HOSTSNAP_BACKUP_DIR: Panel local backup directory (required)
    HOSTSNAP_S3_BUCKET: Upload snapshots to this bucket instead of LOCAL
    HOSTSNAP_ADMIN_API_KEY: API key for the snapshot endpoints
"""

import os

from fastapi import FastAPI

from hostsnap.builder import (
    build_config,
    create_empty_config,
    pipe,
    run_daily_at,
    with_backup_dir,
    with_database,
    with_s3_storage,
    with_timeouts,
)
from hostsnap.integrations.fastapi import hostsnap_lifespan


def create_hostsnap_config():
    """
    Create hostsnap configuration from environment variables.

    This uses the functional builder pattern for clean, composable configuration.
    """
    bucket = os.getenv("HOSTSNAP_S3_BUCKET")

    steps = [
        lambda c: with_backup_dir(c, os.getenv("HOSTSNAP_BACKUP_DIR", "/opt/1panel/backup")),
        lambda c: with_database(c, "/var/lib/hostsnap/hostsnap.db"),
        lambda c: with_timeouts(c, command=600, stale_after=6 * 3600),
    ]

    # Nightly snapshot at 3:00 AM UTC, uploaded to S3 when a bucket is set
    if bucket:
        steps.append(lambda c: with_s3_storage(c, bucket, os.getenv("AWS_REGION", "us-east-1")))
        steps.append(lambda c: run_daily_at(c, "03:00", "S3"))
    else:
        steps.append(lambda c: run_daily_at(c, "03:00"))

    # Build and validate configuration
    return build_config(pipe(*steps)(create_empty_config()))


hostsnap_config = create_hostsnap_config()

app = FastAPI(
    title="Host snapshots",
    description="Snapshot, recover and roll back this host",
    version="1.0.0",
    lifespan=lambda app: hostsnap_lifespan(app, hostsnap_config),
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "hostsnap is running",
        "docs": "/docs",
        "health": "/api/v1/snapshots/health",
    }


# ============================================================================
# Snapshot Endpoints (registered by hostsnap_lifespan)
# ============================================================================
#
# POST /api/v1/snapshots                - Start a snapshot
# GET  /api/v1/snapshots                - Page through snapshots
# GET  /api/v1/snapshots/stuck          - Workflows Waiting for too long
# GET  /api/v1/snapshots/health         - Health check
# POST /api/v1/snapshots/delete         - Delete snapshots
# GET  /api/v1/snapshots/{id}           - One snapshot
# POST /api/v1/snapshots/{id}/recover   - Restore onto this host
# POST /api/v1/snapshots/{id}/rollback  - Undo the last restore
# POST /api/v1/snapshots/{id}/cancel    - Stop a running workflow
#
# All endpoints require: Authorization: Bearer <HOSTSNAP_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
