# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap System - commands, service control and container runtime access.
"""

from hostsnap.system.commands import CommandResult, run_command
from hostsnap.system.runtime import (
    DockerRuntimeProbe,
    RuntimeInfo,
    RuntimeProbe,
    update_live_restore,
)
from hostsnap.system.services import (
    ServiceControl,
    SystemdServiceControl,
    run_quietly,
    service_stopped,
)

__all__ = [
    "CommandResult",
    "run_command",
    "DockerRuntimeProbe",
    "RuntimeInfo",
    "RuntimeProbe",
    "update_live_restore",
    "ServiceControl",
    "SystemdServiceControl",
    "run_quietly",
    "service_stopped",
]
