# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Resources - the capability interface shared by all mutators.

A mutator owns one piece of host state. The orchestrator picks the
capability for the mode it runs in:

- create: ``capture(snapshot paths, <tree>/<section>)``
- recover: ``capture(host paths, original/)`` then ``restore(snapshot paths, <tree>/<section>)``
- re-recover: ``restore`` only, once a safety copy exists
- rollback: ``restore_from_safety_copy(host paths, original/)``
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from hostsnap.archive.manifest import SnapshotManifest
from hostsnap.exceptions import ManifestError
from hostsnap.steps import Step


@dataclass(frozen=True)
class HostPaths:
    """Directory locations on one host."""

    docker_data_dir: Path
    backup_dir: Path
    panel_data_dir: Path

    @classmethod
    def current(cls, manifest: SnapshotManifest) -> "HostPaths":
        """Locations recorded when the snapshot was taken (restore targets)."""
        return cls(
            docker_data_dir=Path(manifest.docker_data_dir),
            backup_dir=Path(manifest.backup_data_dir),
            panel_data_dir=Path(manifest.panel_data_dir),
        )

    @classmethod
    def previous(cls, manifest: SnapshotManifest) -> "HostPaths":
        """Locations of the host being recovered onto (safety-copy sources)."""
        if not manifest.has_old_paths:
            raise ManifestError(
                "Snapshot manifest has no destination-host paths",
                details={"manifest": manifest.to_dict()},
            )
        return cls(
            docker_data_dir=Path(manifest.old_docker_data_dir),
            backup_dir=Path(manifest.old_backup_data_dir),
            panel_data_dir=Path(manifest.old_panel_data_dir),
        )


class ResourceMutator(ABC):
    """
    Handler for one resource class.

    Attributes:
        step: Workflow step this mutator runs in
        section: Subdirectory of the snapshot tree holding its artifact
        artifact: File name of its artifact inside a section or safety dir
    """

    step: Step
    section: str
    artifact: str

    @abstractmethod
    async def capture(self, paths: HostPaths, dest_dir: Path) -> None:
        """Copy the live state into ``dest_dir``. Missing live state is fatal."""

    @abstractmethod
    async def restore(self, paths: HostPaths, source_dir: Path) -> None:
        """Apply the artifact in ``source_dir`` to the live host. A missing artifact is fatal."""

    @abstractmethod
    async def restore_from_safety_copy(self, paths: HostPaths, safety_dir: Path) -> None:
        """Put back what ``capture`` saved. A missing artifact is skipped."""

    def has_safety_copy(self, safety_dir: Path) -> bool:
        return (safety_dir / self.artifact).exists()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(step={self.step.value}, artifact={self.artifact})"
