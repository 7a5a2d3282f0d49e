# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for hostsnap tests.

Provides a fake host layout under a temporary directory, a fake runtime
probe, a recording service manager, recording storage, and spy mutators
wrapped around the real ones.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Tuple

import aiosqlite
import pytest
import pytest_asyncio

from hostsnap.archive.codec import ArchiveCodec
from hostsnap.config import SnapshotConfig
from hostsnap.core import SnapshotOrchestrator
from hostsnap.exceptions import RuntimeProbeError
from hostsnap.records import SnapshotRecordStore
from hostsnap.resources import HostPaths, ResourceMutator, build_mutators
from hostsnap.steps import Step
from hostsnap.storage import LocalStorageClient, create_storage_client
from hostsnap.system.runtime import RuntimeInfo

# Set test environment variables
os.environ["HOSTSNAP_ADMIN_API_KEY"] = "test-api-key-12345"

AUTH_HEADERS = {"Authorization": "Bearer test-api-key-12345"}


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Fake host
# ============================================================================


def write_file(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def host(temp_dir: Path) -> Dict[str, Path]:
    """
    A host with panel data at opt/panel, its backups nested inside at
    opt/panel/backups, and runtime data at var/lib/docker.
    """
    root = temp_dir / "host"
    layout = {
        "root": root,
        "panel_data_dir": root / "opt" / "panel",
        "backup_dir": root / "opt" / "panel" / "backups",
        "docker_data_dir": root / "var" / "lib" / "docker",
        "panel_binary": root / "usr" / "local" / "bin" / "1panel",
        "control_binary": root / "usr" / "local" / "bin" / "1pctl",
        "service_unit": root / "etc" / "systemd" / "system" / "1panel.service",
        "daemon_json": root / "etc" / "docker" / "daemon.json",
    }

    write_file(layout["panel_data_dir"] / "db" / "panel.db", "panel-db-v1")
    write_file(layout["panel_data_dir"] / "conf" / "app.yaml", "port: 10086")
    write_file(layout["backup_dir"] / "app" / "nginx.tar.gz", "backup-v1")
    write_file(layout["docker_data_dir"] / "containers" / "c1" / "config.json", "c1-v1")
    write_file(layout["panel_binary"], "1panel-v1")
    write_file(layout["control_binary"], "1pctl-v1")
    write_file(layout["service_unit"], "[Unit]\nDescription=1Panel v1\n")
    write_file(layout["daemon_json"], json.dumps({"log-level": "info"}))
    return layout


@pytest.fixture
def config(temp_dir: Path, host: Dict[str, Path]) -> SnapshotConfig:
    return SnapshotConfig(
        backup_dir=host["backup_dir"],
        panel_data_dir=host["panel_data_dir"],
        db_path=temp_dir / "hostsnap.db",
        panel_binary_path=host["panel_binary"],
        control_binary_path=host["control_binary"],
        service_unit_path=host["service_unit"],
        daemon_json_path=host["daemon_json"],
        local_storage_dir=temp_dir / "remote",
        system_version="v1.10.0",
        live_restore_settle_seconds=0,
    )


def change_live_state(host: Dict[str, Path]) -> None:
    """Move every resource of the fake host to a recognizable v2 state."""
    write_file(host["panel_binary"], "1panel-v2")
    write_file(host["control_binary"], "1pctl-v2")
    write_file(host["service_unit"], "[Unit]\nDescription=1Panel v2\n")
    write_file(host["daemon_json"], json.dumps({"log-level": "debug"}))
    write_file(host["panel_data_dir"] / "db" / "panel.db", "panel-db-v2")
    write_file(host["backup_dir"] / "app" / "nginx.tar.gz", "backup-v2")
    write_file(host["docker_data_dir"] / "containers" / "c1" / "config.json", "c1-v2")


# ============================================================================
# Fake collaborators
# ============================================================================


class FakeRuntimeProbe:
    """Reports a fixed data root and live-restore flag."""

    def __init__(self, docker_root_dir: Path, live_restore_enabled: bool = False):
        self.docker_root_dir = docker_root_dir
        self.live_restore_enabled = live_restore_enabled
        self.fail = False
        self.calls = 0

    async def probe(self) -> RuntimeInfo:
        self.calls += 1
        if self.fail:
            raise RuntimeProbeError("Cannot connect to the Docker daemon")
        return RuntimeInfo(
            docker_root_dir=str(self.docker_root_dir),
            live_restore_enabled=self.live_restore_enabled,
        )


class RecordingServices:
    """ServiceControl that records every call."""

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []

    async def stop(self, service: str) -> None:
        self.calls.append(("stop", service))

    async def start(self, service: str) -> None:
        self.calls.append(("start", service))

    async def restart(self, service: str) -> None:
        self.calls.append(("restart", service))

    async def daemon_reload(self) -> None:
        self.calls.append(("daemon-reload", ""))


class RecordingStorage:
    """
    LocalStorageClient wrapper that counts transfers.

    ``gate`` holds download until the event is set.
    """

    def __init__(self, inner: LocalStorageClient):
        self.inner = inner
        self.uploads: List[str] = []
        self.downloads: List[str] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def upload(self, local_path: Path, remote_key: str) -> bool:
        self.uploads.append(remote_key)
        return await self.inner.upload(local_path, remote_key)

    async def download(self, remote_key: str, local_path: Path) -> bool:
        self.downloads.append(remote_key)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        return await self.inner.download(remote_key, local_path)


class RecordingCodec(ArchiveCodec):
    """ArchiveCodec that remembers which archives it extracted."""

    def __init__(self, timeout: float = 600.0):
        super().__init__(timeout=timeout)
        self.extracted: List[Path] = []

    async def extract(self, archive_path: Path, target_dir: Path) -> Path:
        self.extracted.append(archive_path)
        return await super().extract(archive_path, target_dir)


class SpyMutator(ResourceMutator):
    """
    Delegates to a real mutator and records every call.

    ``fail_restore`` makes the next N restores raise a simulated I/O error.
    ``gate`` holds restore until the event is set.
    """

    def __init__(self, inner: ResourceMutator):
        self.inner = inner
        self.step = inner.step
        self.section = inner.section
        self.artifact = inner.artifact
        self.calls: List[Tuple[str, Path]] = []
        self.fail_restore = 0
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def capture(self, paths: HostPaths, dest_dir: Path) -> None:
        self.calls.append(("capture", dest_dir))
        await self.inner.capture(paths, dest_dir)

    async def restore(self, paths: HostPaths, source_dir: Path) -> None:
        self.calls.append(("restore", source_dir))
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_restore:
            self.fail_restore -= 1
            raise OSError("simulated I/O error")
        await self.inner.restore(paths, source_dir)

    async def restore_from_safety_copy(self, paths: HostPaths, safety_dir: Path) -> None:
        self.calls.append(("rollback", safety_dir))
        await self.inner.restore_from_safety_copy(paths, safety_dir)

    def has_safety_copy(self, safety_dir: Path) -> bool:
        return self.inner.has_safety_copy(safety_dir)

    def count(self, kind: str, directory: Path | None = None) -> int:
        return sum(
            1
            for call, target in self.calls
            if call == kind and (directory is None or target == directory)
        )


# ============================================================================
# Wired fixtures
# ============================================================================


@pytest.fixture
def probe(host: Dict[str, Path]) -> FakeRuntimeProbe:
    return FakeRuntimeProbe(host["docker_data_dir"])


@pytest.fixture
def services() -> RecordingServices:
    return RecordingServices()


@pytest.fixture
def storage(config: SnapshotConfig) -> RecordingStorage:
    return RecordingStorage(LocalStorageClient(config.resolved_local_storage_dir))


@pytest.fixture
def codec() -> RecordingCodec:
    return RecordingCodec()


@pytest.fixture
def spies(config: SnapshotConfig, codec: RecordingCodec) -> Dict[Step, SpyMutator]:
    return {step: SpyMutator(m) for step, m in build_mutators(config, codec).items()}


@pytest_asyncio.fixture
async def record_store(config: SnapshotConfig) -> SnapshotRecordStore:
    store = SnapshotRecordStore(config.db_path)
    await store.init()
    return store


@pytest_asyncio.fixture
async def orchestrator(
    config: SnapshotConfig,
    record_store: SnapshotRecordStore,
    probe: FakeRuntimeProbe,
    services: RecordingServices,
    storage: RecordingStorage,
    codec: RecordingCodec,
    spies: Dict[Step, SpyMutator],
):
    """Orchestrator wired to the fake host."""

    def storage_factory(source: str, cfg: SnapshotConfig):
        # Validates the backend name the same way production does
        create_storage_client(source, cfg)
        return storage

    orch = SnapshotOrchestrator(
        config,
        records=record_store,
        storage_factory=storage_factory,
        probe=probe,
        services=services,
        codec=codec,
        mutators=dict(spies),
    )
    await orch.init()
    yield orch
    await orch.shutdown(grace_seconds=5)


async def create_snapshot(orch: SnapshotOrchestrator, description: str = "") -> dict:
    """Run a create to completion and return the final record."""
    record = await orch.create(description, "LOCAL")
    await orch.wait(record["id"])
    return await orch.get(record["id"])


async def set_updated_at(db_path: Path, record_id: str, updated_at: str) -> None:
    """Backdate a record, as if its workflow stopped touching it long ago."""
    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            "UPDATE snapshots SET updated_at = ? WHERE id = ?", (updated_at, record_id)
        )
        await db.commit()
