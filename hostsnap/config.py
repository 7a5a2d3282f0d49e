# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a running
workflow never observes paths changing underneath it.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List
import re


class StorageBackend(str, Enum):
    """Remote storage backend a snapshot is uploaded to."""

    LOCAL = "LOCAL"
    S3 = "S3"


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


def _validate_prefix(prefix: str) -> bool:
    """Snapshot names end up in paths and object keys."""
    return bool(re.match(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$", prefix or ""))


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for snapshot workflows.

    Paths describe the live host. The staging root for snapshot trees and
    downloaded archives is always ``backup_dir / "system"``.
    """

    # Panel local backup directory (snapshots are staged under <backup_dir>/system)
    backup_dir: Path = Path("/opt/1panel/backup")

    # Panel data directory
    panel_data_dir: Path = Path("/opt/1panel")

    # SQLite database holding snapshot records
    db_path: Path = Path("./hostsnap.db")

    # Live files captured by the file-class resources
    panel_binary_path: Path = Path("/usr/local/bin/1panel")
    control_binary_path: Path = Path("/usr/local/bin/1pctl")
    service_unit_path: Path = Path("/etc/systemd/system/1panel.service")
    daemon_json_path: Path = Path("/etc/docker/daemon.json")

    # Snapshot naming: <snapshot_prefix>_<YYYYmmddHHMMSS>
    snapshot_prefix: str = "1panel_snapshot"

    # Version recorded on every snapshot record
    system_version: str = ""

    # Remote key prefix: <remote_prefix>/<name>.tar.gz
    remote_prefix: str = "system_snapshot"

    # S3 backend settings
    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None

    # LOCAL backend directory (defaults to <backup_dir>/remote)
    local_storage_dir: Path | None = None

    # systemd units
    runtime_service: str = "docker"
    panel_service: str = "1panel.service"

    # Deadlines, in seconds
    command_timeout: float = 300.0
    archive_timeout: float = 6 * 3600.0
    live_restore_settle_seconds: float = 10.0

    # A Waiting track not updated for this long is reported as stuck
    stale_after_seconds: float = 12 * 3600.0

    # Daily snapshot schedule in HH:MM format (UTC)
    schedule_cron: str | None = None
    schedule_source: StorageBackend = StorageBackend.LOCAL

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not str(self.backup_dir) or not Path(self.backup_dir).is_absolute():
            errors.append(f"backup_dir must be an absolute path, got {self.backup_dir}")

        if not str(self.panel_data_dir) or not Path(self.panel_data_dir).is_absolute():
            errors.append(
                f"panel_data_dir must be an absolute path, got {self.panel_data_dir}"
            )

        if Path(self.backup_dir) == Path(self.panel_data_dir):
            errors.append("backup_dir and panel_data_dir must differ")

        if not _validate_prefix(self.snapshot_prefix):
            errors.append(f"Invalid snapshot_prefix: {self.snapshot_prefix!r}")

        if not self.remote_prefix or self.remote_prefix.startswith("/"):
            errors.append(f"Invalid remote_prefix: {self.remote_prefix!r}")

        for name in ("command_timeout", "archive_timeout", "stale_after_seconds"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0, got {getattr(self, name)}")

        if self.live_restore_settle_seconds < 0:
            errors.append(
                "live_restore_settle_seconds must be >= 0, "
                f"got {self.live_restore_settle_seconds}"
            )

        if self.schedule_cron and not _validate_cron_time(self.schedule_cron):
            errors.append(f"Invalid schedule_cron format: {self.schedule_cron}, expected HH:MM")

        if self.schedule_source == StorageBackend.S3 and not self.s3_bucket:
            errors.append("s3_bucket required when schedule_source is S3")

        if errors:
            from hostsnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def staging_root(self) -> Path:
        """Directory holding snapshot trees, archives and safety copies."""
        return Path(self.backup_dir) / "system"

    @property
    def resolved_local_storage_dir(self) -> Path:
        return Path(self.local_storage_dir or Path(self.backup_dir) / "remote")

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapshotConfig(**current)
