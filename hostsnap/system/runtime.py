# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Container runtime information and live-restore toggling.

The probe asks the Docker daemon for its data root and live-restore flag.
Toggling live-restore edits ``daemon.json``, restarts the runtime and waits
for it to settle.
"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import aiofiles
import docker
import structlog
from docker.errors import DockerException

from hostsnap.exceptions import RuntimeProbeError
from hostsnap.system.services import ServiceControl

logger = structlog.get_logger()

LIVE_RESTORE_KEY = "live-restore"


@dataclass(frozen=True)
class RuntimeInfo:
    """What the container runtime reports about itself."""

    docker_root_dir: str
    live_restore_enabled: bool


class RuntimeProbe(Protocol):
    async def probe(self) -> RuntimeInfo: ...


class DockerRuntimeProbe:
    """RuntimeProbe backed by the Docker SDK (``docker.from_env``)."""

    def __init__(self, client: Any = None):
        self._client = client

    def _info(self) -> dict:
        if self._client is None:
            self._client = docker.from_env()
        return self._client.info()

    async def probe(self) -> RuntimeInfo:
        """
        Query the daemon.

        Raises:
            RuntimeProbeError: If the daemon is unreachable or reports no data root
        """
        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(None, self._info)
        except DockerException as e:
            raise RuntimeProbeError(
                f"Failed to query container runtime: {e}",
                details={"runtime": "docker"},
            )

        root_dir = info.get("DockerRootDir")
        if not root_dir:
            raise RuntimeProbeError(
                "Container runtime did not report DockerRootDir",
                details={"runtime": "docker"},
            )

        runtime_info = RuntimeInfo(
            docker_root_dir=root_dir,
            live_restore_enabled=bool(info.get("LiveRestoreEnabled", False)),
        )
        logger.debug(
            "runtime_probed",
            docker_root_dir=runtime_info.docker_root_dir,
            live_restore_enabled=runtime_info.live_restore_enabled,
        )
        return runtime_info


async def _read_daemon_json(path: Path) -> dict:
    try:
        async with aiofiles.open(path, "r") as f:
            content = await f.read()
    except FileNotFoundError:
        return {}
    return json.loads(content) if content.strip() else {}


async def update_live_restore(
    daemon_json_path: Path,
    enabled: bool,
    services: ServiceControl,
    runtime_service: str,
    settle_seconds: float,
) -> None:
    """
    Turn live-restore on or off.

    Enabling sets ``"live-restore": true``; disabling removes the key. The
    runtime is restarted (a failed restart raises) and then given
    ``settle_seconds`` before returning.
    """
    daemon = await _read_daemon_json(daemon_json_path)
    if enabled:
        daemon[LIVE_RESTORE_KEY] = True
    else:
        daemon.pop(LIVE_RESTORE_KEY, None)

    daemon_json_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = daemon_json_path.with_name(daemon_json_path.name + ".tmp")
    async with aiofiles.open(temp_path, "w") as f:
        await f.write(json.dumps(daemon, indent=2))
    temp_path.replace(daemon_json_path)

    await services.restart(runtime_service)
    logger.info("live_restore_updated", enabled=enabled, settle_seconds=settle_seconds)
    await asyncio.sleep(settle_seconds)
