# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Builder - Functional builder pattern for configuration.

This module provides pure functions for building SnapshotConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from hostsnap.config import SnapshotConfig, StorageBackend


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "backup_dir": None,
        "panel_data_dir": Path("/opt/1panel"),
        "db_path": Path("./hostsnap.db"),
        "panel_binary_path": Path("/usr/local/bin/1panel"),
        "control_binary_path": Path("/usr/local/bin/1pctl"),
        "service_unit_path": Path("/etc/systemd/system/1panel.service"),
        "daemon_json_path": Path("/etc/docker/daemon.json"),
        "snapshot_prefix": "1panel_snapshot",
        "system_version": "",
        "remote_prefix": "system_snapshot",
        "s3_bucket": None,
        "s3_region": "us-east-1",
        "s3_endpoint_url": None,
        "local_storage_dir": None,
        "runtime_service": "docker",
        "panel_service": "1panel.service",
        "command_timeout": 300.0,
        "archive_timeout": 6 * 3600.0,
        "live_restore_settle_seconds": 10.0,
        "stale_after_seconds": 12 * 3600.0,
        "schedule_cron": None,
        "schedule_source": StorageBackend.LOCAL,
    }


def _as_path(value: Path | str) -> Path:
    return Path(value) if isinstance(value, str) else value


def with_backup_dir(config: ConfigDict, backup_dir: Path | str) -> ConfigDict:
    """
    Set the panel local backup directory.

    Snapshot trees, archives and safety copies are staged under
    ``<backup_dir>/system``.
    """
    return {**config, "backup_dir": _as_path(backup_dir)}


def with_panel_data_dir(config: ConfigDict, panel_data_dir: Path | str) -> ConfigDict:
    """Set the panel data directory."""
    return {**config, "panel_data_dir": _as_path(panel_data_dir)}


def with_database(config: ConfigDict, db_path: Path | str) -> ConfigDict:
    """Set the SQLite file holding snapshot records."""
    return {**config, "db_path": _as_path(db_path)}


def with_panel_files(
    config: ConfigDict,
    *,
    binary: Path | str | None = None,
    control_binary: Path | str | None = None,
    service_unit: Path | str | None = None,
    daemon_json: Path | str | None = None,
) -> ConfigDict:
    """
    Override the live file locations captured by the file resources.

    Args:
        config: Current configuration dictionary
        binary: Panel binary path
        control_binary: Panel control tool path
        service_unit: systemd unit file of the panel
        daemon_json: Container runtime daemon configuration

    Returns:
        New configuration dictionary with the given paths set
    """
    updates: ConfigDict = {}
    if binary is not None:
        updates["panel_binary_path"] = _as_path(binary)
    if control_binary is not None:
        updates["control_binary_path"] = _as_path(control_binary)
    if service_unit is not None:
        updates["service_unit_path"] = _as_path(service_unit)
    if daemon_json is not None:
        updates["daemon_json_path"] = _as_path(daemon_json)
    return {**config, **updates}


def with_s3_storage(
    config: ConfigDict,
    bucket: str,
    region: str = "us-east-1",
    endpoint_url: str | None = None,
) -> ConfigDict:
    """
    Enable the S3 storage backend.

    Args:
        config: Current configuration dictionary
        bucket: Bucket snapshots are uploaded to
        region: AWS region
        endpoint_url: Custom endpoint (MinIO and friends)

    Returns:
        New configuration dictionary with S3 storage configured
    """
    return {
        **config,
        "s3_bucket": bucket,
        "s3_region": region,
        "s3_endpoint_url": endpoint_url,
    }


def with_local_storage(config: ConfigDict, directory: Path | str) -> ConfigDict:
    """Set the directory used by the LOCAL storage backend."""
    return {**config, "local_storage_dir": _as_path(directory)}


def with_timeouts(
    config: ConfigDict,
    *,
    command: float | None = None,
    archive: float | None = None,
    live_restore_settle: float | None = None,
    stale_after: float | None = None,
) -> ConfigDict:
    """
    Set the deadlines used by workflows.

    Args:
        config: Current configuration dictionary
        command: Timeout for each external command
        archive: Deadline for one archive or extract operation
        live_restore_settle: Wait after restarting the runtime for a live-restore change
        stale_after: Age after which a Waiting track is reported as stuck

    Returns:
        New configuration dictionary with the timeouts set
    """
    updates: ConfigDict = {}
    if command is not None:
        updates["command_timeout"] = float(command)
    if archive is not None:
        updates["archive_timeout"] = float(archive)
    if live_restore_settle is not None:
        updates["live_restore_settle_seconds"] = float(live_restore_settle)
    if stale_after is not None:
        updates["stale_after_seconds"] = float(stale_after)
    return {**config, **updates}


def run_daily_at(
    config: ConfigDict,
    time: str,
    source: StorageBackend | str = StorageBackend.LOCAL,
) -> ConfigDict:
    """
    Create a snapshot every day at the given time (UTC).

    Args:
        config: Current configuration dictionary
        time: Time in HH:MM format (e.g., '02:30' for 2:30 AM UTC)
        source: Storage backend the scheduled snapshots go to

    Returns:
        New configuration dictionary with schedule set
    """
    parts = time.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid time: {time}")
    except ValueError:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")

    if isinstance(source, str):
        source = StorageBackend(source.upper())
    return {**config, "schedule_cron": time, "schedule_source": source}


def build_config(config_dict: ConfigDict) -> SnapshotConfig:
    """
    Validate and build an immutable SnapshotConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("backup_dir"):
        from hostsnap.exceptions import ConfigurationError

        raise ConfigurationError("backup_dir is required")

    return SnapshotConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = build_config(pipe(
            lambda c: with_backup_dir(c, "/opt/1panel/backup"),
            lambda c: with_s3_storage(c, "snapshots"),
        )(create_empty_config()))
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def create_config(
    backup_dir: Path | str,
    *,
    panel_data_dir: Path | str | None = None,
    db_path: Path | str | None = None,
    s3_bucket: str | None = None,
    s3_region: str = "us-east-1",
    s3_endpoint_url: str | None = None,
    local_storage_dir: Path | str | None = None,
    schedule_cron: str | None = None,
    **kwargs: Any,
) -> SnapshotConfig:
    """
    Create hostsnap configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Example:
        config = create_config(
            "/opt/1panel/backup",
            panel_data_dir="/opt/1panel",
            s3_bucket="host-snapshots",
            schedule_cron="03:00",
        )
    """
    config_dict = create_empty_config()
    config_dict = with_backup_dir(config_dict, backup_dir)

    if panel_data_dir:
        config_dict = with_panel_data_dir(config_dict, panel_data_dir)

    if db_path:
        config_dict = with_database(config_dict, db_path)

    if s3_bucket:
        config_dict = with_s3_storage(config_dict, s3_bucket, s3_region, s3_endpoint_url)

    if local_storage_dir:
        config_dict = with_local_storage(config_dict, local_storage_dir)

    if schedule_cron:
        config_dict = run_daily_at(
            config_dict,
            schedule_cron,
            kwargs.pop("schedule_source", StorageBackend.LOCAL),
        )

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
