# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Manifest - ``snapshot.json`` read/write.

The manifest maps the snapshot's paths (restore targets) to the paths of
the host it is being recovered onto (the ``old*`` fields, filled in at
recover time and used by rollback).
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict

import aiofiles
import structlog

from hostsnap.exceptions import ManifestError

logger = structlog.get_logger()

MANIFEST_FILENAME = "snapshot.json"

# Older snapshots carry a misspelled key for the backup directory
_LEGACY_OLD_BACKUP_KEY = "oldDackupDataDir"


@dataclass(frozen=True)
class SnapshotManifest:
    """Path mappings and runtime flags of one snapshot."""

    docker_data_dir: str
    backup_data_dir: str
    panel_data_dir: str
    live_restore_enabled: bool = False
    old_docker_data_dir: str | None = None
    old_backup_data_dir: str | None = None
    old_panel_data_dir: str | None = None
    old_live_restore_enabled: bool | None = None

    def with_old(self, **kwargs: Any) -> "SnapshotManifest":
        """Return a copy with the given destination-host fields set."""
        return replace(self, **kwargs)

    @property
    def has_old_paths(self) -> bool:
        return bool(
            self.old_docker_data_dir
            and self.old_backup_data_dir
            and self.old_panel_data_dir
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "dockerDataDir": self.docker_data_dir,
            "backupDataDir": self.backup_data_dir,
            "panelDataDir": self.panel_data_dir,
            "liveRestoreEnabled": self.live_restore_enabled,
        }
        optional = {
            "oldDockerDataDir": self.old_docker_data_dir,
            "oldBackupDataDir": self.old_backup_data_dir,
            "oldPanelDataDir": self.old_panel_data_dir,
            "oldLiveRestoreEnabled": self.old_live_restore_enabled,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotManifest":
        """
        Build a manifest from its JSON form.

        Raises:
            ManifestError: If a required key is missing
        """
        missing = [
            key
            for key in ("dockerDataDir", "backupDataDir", "panelDataDir")
            if not data.get(key)
        ]
        if missing:
            raise ManifestError(
                "Snapshot manifest is missing required keys",
                details={"missing": missing},
            )

        return cls(
            docker_data_dir=data["dockerDataDir"],
            backup_data_dir=data["backupDataDir"],
            panel_data_dir=data["panelDataDir"],
            live_restore_enabled=bool(data.get("liveRestoreEnabled", False)),
            old_docker_data_dir=data.get("oldDockerDataDir") or None,
            old_backup_data_dir=(
                data.get("oldBackupDataDir") or data.get(_LEGACY_OLD_BACKUP_KEY) or None
            ),
            old_panel_data_dir=data.get("oldPanelDataDir") or None,
            old_live_restore_enabled=data.get("oldLiveRestoreEnabled"),
        )


async def save_manifest(manifest: SnapshotManifest, directory: Path) -> Path:
    """
    Write ``snapshot.json`` into ``directory``.

    The file is written atomically (write to temp, then rename).

    Returns:
        Path to the written manifest
    """
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / MANIFEST_FILENAME
        temp_path = path.with_suffix(".json.tmp")

        async with aiofiles.open(temp_path, "w") as f:
            await f.write(json.dumps(manifest.to_dict(), indent=2))

        temp_path.replace(path)
        logger.debug("manifest_written", path=str(path))
        return path

    except Exception as e:
        raise ManifestError(
            f"Failed to write snapshot manifest: {e}",
            details={"directory": str(directory)},
        )


async def read_manifest(directory: Path) -> SnapshotManifest:
    """
    Read ``snapshot.json`` from ``directory``.

    Raises:
        ManifestError: If the file is missing, unparsable or incomplete
    """
    path = directory / MANIFEST_FILENAME
    try:
        async with aiofiles.open(path, "r") as f:
            content = await f.read()
    except FileNotFoundError:
        raise ManifestError(
            f"Snapshot manifest not found: {path}",
            details={"path": str(path)},
        )

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ManifestError(
            f"Snapshot manifest is not valid JSON: {e}",
            details={"path": str(path)},
        )

    if not isinstance(data, dict):
        raise ManifestError(
            "Snapshot manifest must be a JSON object",
            details={"path": str(path)},
        )

    return SnapshotManifest.from_dict(data)
