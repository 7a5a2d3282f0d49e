# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Resources - one mutator per piece of host state.
"""

from typing import Dict

from hostsnap.archive.codec import ArchiveCodec
from hostsnap.config import SnapshotConfig
from hostsnap.resources.base import HostPaths, ResourceMutator
from hostsnap.resources.directories import DirectoryMutator
from hostsnap.resources.files import ABSENT_SUFFIX, FileMutator
from hostsnap.steps import Step

DOCKER_SECTION = "docker"
PANEL_SECTION = "panel"


def build_mutators(config: SnapshotConfig, codec: ArchiveCodec) -> Dict[Step, ResourceMutator]:
    """
    Build the mutator table keyed by step, in recover order.

    The backup directory excludes its own ``system`` staging area; the
    panel data directory excludes the backup and runtime data directories
    when they live inside it.
    """
    return {
        Step.DOCKER_DATA_DIR: DirectoryMutator(
            Step.DOCKER_DATA_DIR,
            DOCKER_SECTION,
            "docker_data.tar.gz",
            codec,
            directory=lambda p: p.docker_data_dir,
        ),
        Step.DAEMON_JSON: FileMutator(
            Step.DAEMON_JSON,
            DOCKER_SECTION,
            "daemon.json",
            config.daemon_json_path,
            optional=True,
        ),
        Step.PANEL_BINARY: FileMutator(
            Step.PANEL_BINARY, PANEL_SECTION, "1panel", config.panel_binary_path
        ),
        Step.CONTROL_BINARY: FileMutator(
            Step.CONTROL_BINARY, PANEL_SECTION, "1pctl", config.control_binary_path
        ),
        Step.SERVICE_UNIT: FileMutator(
            Step.SERVICE_UNIT, PANEL_SECTION, "1panel.service", config.service_unit_path
        ),
        Step.BACKUP_DIRECTORY: DirectoryMutator(
            Step.BACKUP_DIRECTORY,
            PANEL_SECTION,
            "1panel_backup.tar.gz",
            codec,
            directory=lambda p: p.backup_dir,
            inner=lambda p: (p.backup_dir / "system",),
        ),
        Step.PANEL_DATA_DIRECTORY: DirectoryMutator(
            Step.PANEL_DATA_DIRECTORY,
            PANEL_SECTION,
            "1panel_data.tar.gz",
            codec,
            directory=lambda p: p.panel_data_dir,
            inner=lambda p: (p.backup_dir, p.docker_data_dir),
        ),
    }


__all__ = [
    "ABSENT_SUFFIX",
    "DOCKER_SECTION",
    "PANEL_SECTION",
    "DirectoryMutator",
    "FileMutator",
    "HostPaths",
    "ResourceMutator",
    "build_mutators",
]
