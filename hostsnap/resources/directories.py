# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Directory-class resources: runtime data, local backups, panel data.

Each directory travels as one tarball. Directories owned by another
resource that happen to be nested inside this one are excluded so that no
data is archived twice.
"""

from pathlib import Path
from typing import Callable, Tuple

import structlog

from hostsnap.archive.codec import ArchiveCodec, build_exclusion_rules
from hostsnap.exceptions import ResourceError
from hostsnap.resources.base import HostPaths, ResourceMutator
from hostsnap.steps import Step

logger = structlog.get_logger()

PathSelector = Callable[[HostPaths], Path]
InnerSelector = Callable[[HostPaths], Tuple[Path, ...]]


def _no_inner(paths: HostPaths) -> Tuple[Path, ...]:
    return ()


class DirectoryMutator(ResourceMutator):
    """
    Archives a live directory on capture and extracts over it on restore.

    Restore overlays: the live directory is never emptied first. Every file
    in the archive is replaced byte for byte, but files that exist only on
    the live host are left in place by both recover and rollback.

    Args:
        step: Workflow step
        section: Snapshot tree section holding the archive
        artifact: Archive file name
        codec: Archive codec
        directory: Selects the live directory from a HostPaths
        inner: Selects directories to exclude from a HostPaths
    """

    def __init__(
        self,
        step: Step,
        section: str,
        artifact: str,
        codec: ArchiveCodec,
        directory: PathSelector,
        inner: InnerSelector = _no_inner,
    ):
        self.step = step
        self.section = section
        self.artifact = artifact
        self.codec = codec
        self.directory = directory
        self.inner = inner

    def exclusion_rules(self, paths: HostPaths) -> str:
        return build_exclusion_rules(self.directory(paths), *self.inner(paths))

    async def capture(self, paths: HostPaths, dest_dir: Path) -> None:
        source = self.directory(paths)
        if not source.is_dir():
            raise ResourceError(
                f"Live directory not found: {source}",
                details={"step": self.step.value, "path": str(source)},
            )

        rules = self.exclusion_rules(paths)
        await self.codec.compress(source, dest_dir / self.artifact, rules)
        logger.info(
            "resource_captured",
            step=self.step.value,
            path=str(source),
            dest=str(dest_dir),
            exclusion_rules=rules,
        )

    async def restore(self, paths: HostPaths, source_dir: Path) -> None:
        archive = source_dir / self.artifact
        if not archive.is_file():
            raise ResourceError(
                f"Snapshot archive not found: {archive}",
                details={"step": self.step.value, "path": str(archive)},
            )

        target = self.directory(paths)
        await self.codec.extract(archive, target)
        logger.info("resource_restored", step=self.step.value, path=str(target))

    async def restore_from_safety_copy(self, paths: HostPaths, safety_dir: Path) -> None:
        archive = safety_dir / self.artifact
        if not archive.is_file():
            logger.info(
                "resource_rollback_skipped",
                step=self.step.value,
                reason="no_safety_copy",
            )
            return

        target = self.directory(paths)
        await self.codec.extract(archive, target)
        logger.info("resource_rolled_back", step=self.step.value, path=str(target))
