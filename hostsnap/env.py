# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

A small wrapper around create_config() that reads the well-known
HOSTSNAP_* variables, so a deployment can be configured without code.
"""

from __future__ import annotations

import os
from pathlib import Path

from hostsnap.builder import create_config
from hostsnap.config import SnapshotConfig
from hostsnap.errors import explain_invalid_number_env, explain_missing_backup_dir_env
from hostsnap.exceptions import ConfigurationError


def _parse_seconds(name: str, value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_number_env(name, value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_number_env(name, value))
    return seconds


def _optional_path(value: str | None) -> Path | None:
    return Path(value) if value else None


def create_config_from_env() -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Required:
        - HOSTSNAP_BACKUP_DIR: Panel local backup directory

    Optional environment variables:
        - HOSTSNAP_PANEL_DATA_DIR: Panel data directory (default: /opt/1panel)
        - HOSTSNAP_DB_PATH: Snapshot record database (default: ./hostsnap.db)
        - HOSTSNAP_S3_BUCKET: Enables the S3 backend
        - AWS_REGION: AWS region (default: us-east-1)
        - HOSTSNAP_S3_ENDPOINT_URL: Custom S3 endpoint
        - HOSTSNAP_LOCAL_STORAGE_DIR: Directory of the LOCAL backend
        - HOSTSNAP_SYSTEM_VERSION: Version recorded on new snapshots
        - HOSTSNAP_COMMAND_TIMEOUT: Seconds per external command
        - HOSTSNAP_ARCHIVE_TIMEOUT: Seconds per archive/extract operation
        - HOSTSNAP_STALE_AFTER_SECONDS: Age after which Waiting is reported as stuck
        - HOSTSNAP_SCHEDULE_CRON: Daily snapshot time in HH:MM (UTC)
    """

    backup_dir = os.getenv("HOSTSNAP_BACKUP_DIR")
    if not backup_dir:
        raise ConfigurationError(explain_missing_backup_dir_env())

    extra: dict = {}
    version = os.getenv("HOSTSNAP_SYSTEM_VERSION")
    if version:
        extra["system_version"] = version

    for env_name, field in (
        ("HOSTSNAP_COMMAND_TIMEOUT", "command_timeout"),
        ("HOSTSNAP_ARCHIVE_TIMEOUT", "archive_timeout"),
        ("HOSTSNAP_STALE_AFTER_SECONDS", "stale_after_seconds"),
    ):
        seconds = _parse_seconds(env_name, os.getenv(env_name))
        if seconds is not None:
            extra[field] = seconds

    return create_config(
        backup_dir,
        panel_data_dir=_optional_path(os.getenv("HOSTSNAP_PANEL_DATA_DIR")),
        db_path=_optional_path(os.getenv("HOSTSNAP_DB_PATH")),
        s3_bucket=os.getenv("HOSTSNAP_S3_BUCKET"),
        s3_region=os.getenv("AWS_REGION", "us-east-1"),
        s3_endpoint_url=os.getenv("HOSTSNAP_S3_ENDPOINT_URL"),
        local_storage_dir=_optional_path(os.getenv("HOSTSNAP_LOCAL_STORAGE_DIR")),
        schedule_cron=os.getenv("HOSTSNAP_SCHEDULE_CRON"),
        **extra,
    )
