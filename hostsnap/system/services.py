# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Service manager control (systemd) for the container runtime and the panel.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Protocol

import structlog

from hostsnap.system.commands import run_command

logger = structlog.get_logger()


class ServiceControl(Protocol):
    """What workflows need from the service manager."""

    async def stop(self, service: str) -> None: ...

    async def start(self, service: str) -> None: ...

    async def restart(self, service: str) -> None: ...

    async def daemon_reload(self) -> None: ...


class SystemdServiceControl:
    """
    ServiceControl backed by ``systemctl``.

    Every call is checked: a non-zero exit raises CommandError. Callers
    that treat an action as best effort wrap it in run_quietly().
    """

    def __init__(self, timeout: float = 300.0, systemctl: str = "systemctl"):
        self.timeout = timeout
        self.systemctl = systemctl

    async def _systemctl(self, *args: str) -> None:
        await run_command(self.systemctl, *args, timeout=self.timeout)
        logger.info("service_command_completed", command=" ".join(args))

    async def stop(self, service: str) -> None:
        await self._systemctl("stop", service)

    async def start(self, service: str) -> None:
        await self._systemctl("start", service)

    async def restart(self, service: str) -> None:
        await self._systemctl("restart", service)

    async def daemon_reload(self) -> None:
        await self._systemctl("daemon-reload")


async def run_quietly(action: Awaitable[None], event: str, **context: Any) -> bool:
    """
    Await a service action whose failure must not fail the workflow.

    Returns:
        False if the action raised; the error is logged under ``event``
    """
    try:
        await action
    except Exception as e:
        logger.warning(event, error=str(e), **context)
        return False
    return True


@asynccontextmanager
async def service_stopped(services: ServiceControl, service: str) -> AsyncIterator[None]:
    """
    Stop ``service`` for the duration of the block and start it again on exit.

    The service is started again even when the block raises.
    """
    await run_quietly(services.stop(service), "service_stop_failed", service=service)
    try:
        yield
    finally:
        await run_quietly(services.start(service), "service_start_failed", service=service)
