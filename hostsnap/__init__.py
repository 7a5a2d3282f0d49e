# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap - Resumable host snapshots for a panel-managed server.

Captures the panel binaries, service unit, container runtime configuration
and data, local backups and panel data into one portable archive, restores
it onto a host with a resumable recover, and undoes a recover with rollback.
Package name: hostsnap.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from hostsnap.builder import create_config

# Orchestration
from hostsnap.core import SnapshotOrchestrator, WorkflowTask

# Environment-based configuration
from hostsnap.env import create_config_from_env

from hostsnap.records import SnapshotRecord, SnapshotRecordStore
from hostsnap.steps import SnapshotStatus, Step

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    # Orchestration
    "SnapshotOrchestrator",
    "WorkflowTask",
    # Records
    "SnapshotRecord",
    "SnapshotRecordStore",
    "SnapshotStatus",
    "Step",
]
