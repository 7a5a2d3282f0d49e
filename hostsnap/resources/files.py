# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
File-class resources: panel binary, control tool, service unit, daemon.json.
"""

import asyncio
import shutil
from pathlib import Path

import structlog

from hostsnap.exceptions import ResourceError
from hostsnap.resources.base import HostPaths, ResourceMutator
from hostsnap.steps import Step

logger = structlog.get_logger()

ABSENT_SUFFIX = ".absent"


def _atomic_copy(source: Path, target: Path) -> None:
    # Write to temp, then rename over the target
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(f".{target.name}.hostsnap.tmp")
    try:
        shutil.copy2(source, temp_path)
        temp_path.replace(target)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


class FileMutator(ResourceMutator):
    """
    Copies a single live file in and out of snapshot trees.

    An optional file may be missing on the live host. Capturing it then
    writes an ``<artifact>.absent`` marker, and restoring the marker
    removes the live file.
    """

    def __init__(
        self,
        step: Step,
        section: str,
        artifact: str,
        live_path: Path,
        optional: bool = False,
    ):
        self.step = step
        self.section = section
        self.artifact = artifact
        self.live_path = Path(live_path)
        self.optional = optional

    def _marker(self, directory: Path) -> Path:
        return directory / f"{self.artifact}{ABSENT_SUFFIX}"

    async def capture(self, paths: HostPaths, dest_dir: Path) -> None:
        target = dest_dir / self.artifact
        marker = self._marker(dest_dir)

        if self.live_path.is_file():
            await asyncio.to_thread(_atomic_copy, self.live_path, target)
            marker.unlink(missing_ok=True)
        elif self.optional:
            dest_dir.mkdir(parents=True, exist_ok=True)
            target.unlink(missing_ok=True)
            marker.touch()
        else:
            raise ResourceError(
                f"Live file not found: {self.live_path}",
                details={"step": self.step.value, "path": str(self.live_path)},
            )

        logger.info(
            "resource_captured",
            step=self.step.value,
            path=str(self.live_path),
            dest=str(dest_dir),
            absent=not target.exists(),
        )

    async def _remove_live(self) -> None:
        self.live_path.unlink(missing_ok=True)
        logger.info("resource_removed", step=self.step.value, path=str(self.live_path))

    async def restore(self, paths: HostPaths, source_dir: Path) -> None:
        source = source_dir / self.artifact

        if source.is_file():
            await asyncio.to_thread(_atomic_copy, source, self.live_path)
        elif self.optional:
            await self._remove_live()
            return
        else:
            raise ResourceError(
                f"Snapshot file not found: {source}",
                details={"step": self.step.value, "path": str(source)},
            )

        logger.info("resource_restored", step=self.step.value, path=str(self.live_path))

    async def restore_from_safety_copy(self, paths: HostPaths, safety_dir: Path) -> None:
        source = safety_dir / self.artifact

        if source.is_file():
            await asyncio.to_thread(_atomic_copy, source, self.live_path)
            logger.info(
                "resource_rolled_back", step=self.step.value, path=str(self.live_path)
            )
        elif self.optional and self._marker(safety_dir).exists():
            await self._remove_live()
        else:
            logger.info(
                "resource_rollback_skipped",
                step=self.step.value,
                reason="no_safety_copy",
            )

    def has_safety_copy(self, safety_dir: Path) -> bool:
        if (safety_dir / self.artifact).is_file():
            return True
        return self.optional and self._marker(safety_dir).exists()
