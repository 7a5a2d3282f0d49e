# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Core - the snapshot workflow orchestrator.

Create, recover and rollback each validate their request synchronously,
persist the record with its track set to Waiting, and hand the work to a
background task. Tasks persist their progress after every step.

Recover is resumable. Before each step runs its name is checkpointed as
``interrupt_step``; a failure leaves it there, and the next recover skips
every step before it. Rollback uses the same checkpoint to decide how far
back it has to unwind.
"""

import asyncio
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Tuple

import structlog
from ulid import ULID

from hostsnap.archive.codec import ArchiveCodec
from hostsnap.archive.manifest import (
    MANIFEST_FILENAME,
    SnapshotManifest,
    read_manifest,
    save_manifest,
)
from hostsnap.config import SnapshotConfig
from hostsnap.errors import explain_busy, explain_missing_safety_copy, explain_rolled_back
from hostsnap.exceptions import (
    ArchiveError,
    PreconditionError,
    RuntimeProbeError,
    StepError,
    StorageError,
    WorkflowCancelledError,
)
from hostsnap.records import SnapshotRecord, SnapshotRecordStore, is_stuck
from hostsnap.resources import HostPaths, ResourceMutator, build_mutators
from hostsnap.steps import (
    PANEL_STEPS,
    PRE_MUTATION_STEPS,
    RUNTIME_STEPS,
    ResumeCursor,
    SnapshotStatus,
    Step,
    furthest,
    is_at_or_before,
    parse_step,
)
from hostsnap.storage import RemoteStorageClient, create_storage_client, remote_key_for
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

logger = structlog.get_logger()

StorageFactory = Callable[[str, SnapshotConfig], RemoteStorageClient]

SAFETY_DIRNAME = "original"


@dataclass
class WorkflowTask:
    """A running workflow and its cancellation signal."""

    record_id: str
    kind: str  # create, recover, rollback
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        # A claimed workflow without a task yet is still busy
        return self.task is not None and self.task.done()

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self, step: Step) -> None:
        """Raise if cancellation was requested. Called between steps only."""
        if self.cancel_event.is_set():
            raise WorkflowCancelledError(
                f"{self.kind} cancelled before step {step.value}",
                details={"record_id": self.record_id, "step": step.value},
            )


@dataclass(frozen=True)
class RecoverLayout:
    """On-disk locations used while recovering one snapshot."""

    base: Path
    archive: Path
    extracted: Path
    safety: Path

    @classmethod
    def for_snapshot(cls, staging_root: Path, name: str) -> "RecoverLayout":
        base = staging_root / name
        return cls(
            base=base,
            archive=base / f"{name}.tar.gz",
            extracted=base / name,
            safety=base / SAFETY_DIRNAME,
        )


def _remove_quietly(path: Path) -> None:
    """Best-effort cleanup; failures are logged, never raised."""
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("cleanup_failed", path=str(path), error=str(e))


def _failure_message(step: Step | None, error: Exception) -> str:
    if isinstance(error, StepError) or step is None:
        return str(error)
    return f"{step.value}: {error}"


class SnapshotOrchestrator:
    """
    Drives create, recover and rollback for snapshot records.

    All collaborators are injected. Anything left as None gets the
    production implementation built from ``config``.
    """

    def __init__(
        self,
        config: SnapshotConfig,
        records: SnapshotRecordStore | None = None,
        storage_factory: StorageFactory = create_storage_client,
        probe: RuntimeProbe | None = None,
        services: ServiceControl | None = None,
        codec: ArchiveCodec | None = None,
        mutators: Dict[Step, ResourceMutator] | None = None,
    ):
        self.config = config
        self.records = records or SnapshotRecordStore(config.db_path)
        self.storage_factory = storage_factory
        self.probe = probe or DockerRuntimeProbe()
        self.services = services or SystemdServiceControl(timeout=config.command_timeout)
        self.codec = codec or ArchiveCodec(timeout=config.archive_timeout)
        self.mutators = mutators or build_mutators(config, self.codec)
        self._tasks: Dict[str, WorkflowTask] = {}

    async def init(self) -> None:
        """Prepare the record store and staging root."""
        await self.records.init()
        self.config.staging_root.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # Task management
    # =========================================================================

    def _claim(self, record_id: str, kind: str) -> WorkflowTask:
        """
        Reserve the record for one workflow.

        Must follow the idle check with no ``await`` in between, so a
        concurrent request sees the record as busy.
        """
        workflow = WorkflowTask(record_id=record_id, kind=kind)
        self._tasks[record_id] = workflow
        return workflow

    def _release(self, workflow: WorkflowTask) -> None:
        if self._tasks.get(workflow.record_id) is workflow:
            del self._tasks[workflow.record_id]

    def _launch(
        self,
        workflow: WorkflowTask,
        runner: Callable[[WorkflowTask], Awaitable[None]],
    ) -> WorkflowTask:
        record_id = workflow.record_id
        kind = workflow.kind
        workflow.task = asyncio.create_task(runner(workflow), name=f"{kind}:{record_id}")

        def _finished(task: asyncio.Task) -> None:
            self._release(workflow)
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "workflow_task_crashed",
                    kind=kind,
                    record_id=record_id,
                    error=str(task.exception()),
                )

        workflow.task.add_done_callback(_finished)
        return workflow

    def running(self, record_id: str) -> WorkflowTask | None:
        workflow = self._tasks.get(record_id)
        if workflow is None or workflow.done:
            return None
        return workflow

    async def wait(self, record_id: str) -> None:
        """Wait for the record's background workflow, if any, to finish."""
        workflow = self._tasks.get(record_id)
        if workflow is not None and workflow.task is not None:
            await asyncio.gather(workflow.task, return_exceptions=True)

    def cancel(self, record_id: str) -> bool:
        """
        Ask the record's workflow to stop before its next step.

        Returns:
            False if no workflow is running for the record
        """
        workflow = self.running(record_id)
        if workflow is None:
            return False
        workflow.cancel()
        logger.info("workflow_cancel_requested", kind=workflow.kind, record_id=record_id)
        return True

    async def shutdown(self, grace_seconds: float = 30.0) -> None:
        """Signal every workflow to stop and wait up to ``grace_seconds``."""
        tasks = [w.task for w in self._tasks.values() if w.task is not None]
        for workflow in self._tasks.values():
            workflow.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=grace_seconds)

    def _ensure_idle(self, record: SnapshotRecord) -> None:
        workflow = self.running(record["id"])
        if workflow is not None:
            raise PreconditionError(
                explain_busy(workflow.kind), details={"record_id": record["id"]}
            )

        waiting = SnapshotStatus.WAITING.value
        for track, status_field in (("recover", "recover_status"), ("rollback", "rollback_status")):
            if record[status_field] == waiting:
                if not is_stuck(record, self.config.stale_after_seconds):
                    raise PreconditionError(
                        explain_busy(track), details={"record_id": record["id"]}
                    )
                logger.warning("stuck_workflow_taken_over", track=track, record_id=record["id"])

    # =========================================================================
    # Queries
    # =========================================================================

    async def get(self, record_id: str) -> SnapshotRecord:
        return await self.records.get(record_id)

    async def search(
        self, page: int = 1, page_size: int = 20, info: str | None = None
    ) -> Tuple[int, List[SnapshotRecord]]:
        return await self.records.search(page, page_size, info)

    async def find_stuck_records(self) -> List[SnapshotRecord]:
        """Records with a create, recover or rollback Waiting for too long."""
        return await self.records.find_stuck(self.config.stale_after_seconds)

    def is_stuck(self, record: SnapshotRecord) -> bool:
        return self.running(record["id"]) is None and is_stuck(
            record, self.config.stale_after_seconds
        )

    async def _reload_panel(self) -> None:
        await run_quietly(self.services.daemon_reload(), "daemon_reload_failed")
        await run_quietly(
            self.services.restart(self.config.panel_service),
            "panel_restart_failed",
            service=self.config.panel_service,
        )

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, description: str = "", source: str = "LOCAL") -> SnapshotRecord:
        """
        Snapshot the live host and upload it to ``source``.

        Raises:
            PreconditionError: Unknown backend or unreachable container runtime
        """
        storage = self.storage_factory(source, self.config)

        try:
            runtime = await self.probe.probe()
        except RuntimeProbeError as e:
            raise PreconditionError(
                f"Container runtime unavailable: {e.message}", details=e.details
            )

        name = f"{self.config.snapshot_prefix}_{datetime.now().strftime('%Y%m%d%H%M%S')}"
        if await self.records.get_by_name(name) is not None:
            raise PreconditionError(
                f"Snapshot {name} already exists", details={"name": name}
            )

        record = await self.records.create(
            str(ULID()),
            name,
            source.upper(),
            description=description,
            version=self.config.system_version,
        )

        async def runner(workflow: WorkflowTask) -> None:
            await self._run_create(workflow, record, storage, runtime)

        self._launch(self._claim(record["id"], "create"), runner)
        logger.info("snapshot_create_started", snapshot=name, source=record["source"])
        return record

    async def _run_create(
        self,
        workflow: WorkflowTask,
        record: SnapshotRecord,
        storage: RemoteStorageClient,
        runtime: RuntimeInfo,
    ) -> None:
        name = record["name"]
        root = self.config.staging_root / name
        archive = self.config.staging_root / f"{name}.tar.gz"
        paths = HostPaths(
            docker_data_dir=Path(runtime.docker_root_dir),
            backup_dir=Path(self.config.backup_dir),
            panel_data_dir=Path(self.config.panel_data_dir),
        )
        current: Step | None = None

        try:
            root.mkdir(parents=True, exist_ok=True)

            async with service_stopped(self.services, self.config.runtime_service):
                for step in RUNTIME_STEPS:
                    workflow.check(step)
                    current = step
                    mutator = self.mutators[step]
                    await mutator.capture(paths, root / mutator.section)

            for step in PANEL_STEPS:
                workflow.check(step)
                current = step
                mutator = self.mutators[step]
                await mutator.capture(paths, root / mutator.section)

            workflow.check(Step.WRITE_MANIFEST)
            current = Step.WRITE_MANIFEST
            manifest = SnapshotManifest(
                docker_data_dir=str(paths.docker_data_dir),
                backup_data_dir=str(paths.backup_dir),
                panel_data_dir=str(paths.panel_data_dir),
                live_restore_enabled=runtime.live_restore_enabled,
            )
            await save_manifest(manifest, root)

            workflow.check(Step.COMPRESS)
            current = Step.COMPRESS
            await self.codec.compress(root, archive, arcname=name)

            workflow.check(Step.UPLOAD)
            current = Step.UPLOAD
            remote_key = remote_key_for(self.config, name)
            if not await storage.upload(archive, remote_key):
                raise StorageError(
                    f"Upload of {name} failed", details={"remote_key": remote_key}
                )

            await self.records.update_create_status(record["id"], SnapshotStatus.SUCCESS)
            logger.info("snapshot_create_completed", snapshot=name, remote_key=remote_key)

        except Exception as e:
            message = _failure_message(current, e)
            logger.error("snapshot_create_failed", snapshot=name, step=current, error=message)
            await self.records.update_create_status(
                record["id"], SnapshotStatus.FAILED, message
            )

        finally:
            _remove_quietly(root)
            _remove_quietly(archive)

    # =========================================================================
    # Recover
    # =========================================================================

    async def recover(
        self,
        record_id: str,
        force_full_redo: bool = False,
        redownload: bool = False,
    ) -> SnapshotRecord:
        """
        Restore a snapshot onto this host.

        Args:
            record_id: Snapshot record id
            force_full_redo: Ignore any checkpoint and recapture the safety copy
            redownload: On a resumed recover, fetch and extract the archive again

        Raises:
            RecordNotFoundError: Unknown record
            PreconditionError: Rolled back, busy, or not restorable
        """
        record = await self.records.get(record_id)

        if record["status"] != SnapshotStatus.SUCCESS.value:
            raise PreconditionError(
                f"Snapshot {record['name']} was not created successfully",
                details={"record_id": record_id, "status": record["status"]},
            )

        if record["rollback_status"] and not force_full_redo:
            raise PreconditionError(explain_rolled_back(), details={"record_id": record_id})

        storage = self.storage_factory(record["source"], self.config)

        is_retry = bool(record["interrupt_step"]) and not force_full_redo
        try:
            previous = parse_step(record["interrupt_step"]) if is_retry else None
        except ValueError:
            raise PreconditionError(
                f"Unknown interrupt step: {record['interrupt_step']!r}",
                details={"record_id": record_id},
            )

        self._ensure_idle(record)
        claimed = self._claim(record_id, "recover")

        updates: Dict[str, Any] = {
            "recover_status": SnapshotStatus.WAITING,
            "recover_message": "",
        }
        if force_full_redo:
            updates.update(interrupt_step="", rollback_status="", rollback_message="")
        try:
            record = await self.records.update(record_id, **updates)
        except Exception:
            self._release(claimed)
            raise

        async def runner(workflow: WorkflowTask) -> None:
            await self._run_recover(
                workflow, record, storage, previous, is_retry, redownload
            )

        self._launch(claimed, runner)
        logger.info(
            "snapshot_recover_started",
            snapshot=record["name"],
            is_retry=is_retry,
            resume_from=previous,
            redownload=redownload,
        )
        return record

    async def _load_manifest(self, layout: RecoverLayout) -> SnapshotManifest:
        """
        Read the manifest, preferring the copy with destination-host paths.

        The extracted tree may be gone (a finished recover removes it), so
        the safety area copy is the fallback.
        """
        saved_path = layout.safety / MANIFEST_FILENAME
        saved = await read_manifest(layout.safety) if saved_path.exists() else None

        if (layout.extracted / MANIFEST_FILENAME).exists():
            manifest = await read_manifest(layout.extracted)
        elif saved is not None:
            return saved
        else:
            # Raises ManifestError naming the missing file
            return await read_manifest(layout.extracted)

        if not manifest.has_old_paths and saved is not None and saved.has_old_paths:
            manifest = manifest.with_old(
                old_docker_data_dir=saved.old_docker_data_dir,
                old_backup_data_dir=saved.old_backup_data_dir,
                old_panel_data_dir=saved.old_panel_data_dir,
                old_live_restore_enabled=saved.old_live_restore_enabled,
            )
        return manifest

    async def _run_recover(
        self,
        workflow: WorkflowTask,
        record: SnapshotRecord,
        storage: RemoteStorageClient,
        previous: Step | None,
        is_retry: bool,
        redownload: bool,
    ) -> None:
        record_id = record["id"]
        name = record["name"]
        layout = RecoverLayout.for_snapshot(self.config.staging_root, name)
        cursor = ResumeCursor(previous, is_retry)
        if is_retry and redownload:
            cursor.force()

        manifest: SnapshotManifest | None = None
        current: Step | None = None
        last_ran: Step | None = None

        async def ensure_manifest() -> SnapshotManifest:
            nonlocal manifest
            if manifest is None:
                manifest = await self._load_manifest(layout)
            return manifest

        async def download() -> None:
            layout.base.mkdir(parents=True, exist_ok=True)
            remote_key = remote_key_for(self.config, name)
            if not await storage.download(remote_key, layout.archive):
                raise StorageError(
                    f"Download of {name} failed", details={"remote_key": remote_key}
                )

        async def decompress() -> None:
            await self.codec.extract(layout.archive, layout.base)
            if not layout.extracted.is_dir():
                raise ArchiveError(
                    f"Archive did not contain {name}/",
                    details={"archive_path": str(layout.archive)},
                )

        async def read_snapshot_manifest() -> None:
            nonlocal manifest
            loaded = await read_manifest(layout.extracted)
            manifest = loaded.with_old(
                old_backup_data_dir=str(self.config.backup_dir),
                old_panel_data_dir=str(self.config.panel_data_dir),
            )

        async def load_runtime_info() -> None:
            nonlocal manifest
            loaded = await ensure_manifest()
            if not is_retry and layout.safety.is_dir() and any(layout.safety.iterdir()):
                # Fresh recover: the safety copy is recaptured from the live host
                logger.warning(
                    "safety_copy_replaced", snapshot=name, path=str(layout.safety)
                )
                shutil.rmtree(layout.safety)
            saved_path = layout.safety / MANIFEST_FILENAME
            saved = await read_manifest(layout.safety) if saved_path.exists() else None

            if is_retry and saved is not None and saved.has_old_paths:
                # The host may already be half recovered; keep what was captured
                manifest = loaded.with_old(
                    old_docker_data_dir=saved.old_docker_data_dir,
                    old_backup_data_dir=saved.old_backup_data_dir,
                    old_panel_data_dir=saved.old_panel_data_dir,
                    old_live_restore_enabled=saved.old_live_restore_enabled,
                )
            else:
                runtime = await self.probe.probe()
                manifest = loaded.with_old(
                    old_docker_data_dir=runtime.docker_root_dir,
                    old_backup_data_dir=loaded.old_backup_data_dir or str(self.config.backup_dir),
                    old_panel_data_dir=loaded.old_panel_data_dir or str(self.config.panel_data_dir),
                    old_live_restore_enabled=runtime.live_restore_enabled,
                )

            await save_manifest(manifest, layout.extracted)
            await save_manifest(manifest, layout.safety)

        async def disable_live_restore() -> None:
            loaded = await ensure_manifest()
            if not loaded.old_live_restore_enabled:
                logger.debug("live_restore_already_disabled", snapshot=name)
                return
            await update_live_restore(
                self.config.daemon_json_path,
                False,
                self.services,
                self.config.runtime_service,
                self.config.live_restore_settle_seconds,
            )

        async def apply_resource(step: Step) -> None:
            loaded = await ensure_manifest()
            mutator = self.mutators[step]
            if not is_retry or not mutator.has_safety_copy(layout.safety):
                await mutator.capture(HostPaths.previous(loaded), layout.safety)
            else:
                logger.info("safety_copy_reused", snapshot=name, step=step.value)
            await mutator.restore(HostPaths.current(loaded), layout.extracted / mutator.section)

        async def finalize() -> None:
            _remove_quietly(layout.extracted)
            await self._reload_panel()

        handlers: Dict[Step, Callable[[], Awaitable[None]]] = {
            Step.DOWNLOAD: download,
            Step.DECOMPRESS: decompress,
            Step.READ_MANIFEST: read_snapshot_manifest,
            Step.LOAD_RUNTIME_INFO: load_runtime_info,
            Step.UPDATE_LIVE_RESTORE: disable_live_restore,
            Step.FINALIZE: finalize,
        }

        async def execute(step: Step) -> None:
            nonlocal current, last_ran
            workflow.check(step)
            current = step
            await self.records.checkpoint(record_id, furthest(step, previous).value)
            logger.info("recover_step_started", snapshot=name, step=step.value)
            try:
                handler = handlers.get(step)
                if handler is not None:
                    await handler()
                else:
                    await apply_resource(step)
            except Exception as e:
                raise StepError(step.value, f"{step.value}: {e}") from e
            last_ran = step

        async def run_steps(steps: Iterable[Step]) -> None:
            for step in steps:
                if cursor.should_run(step):
                    await execute(step)
                else:
                    logger.debug("recover_step_skipped", snapshot=name, step=step.value)

        try:
            await run_steps(
                (
                    Step.DOWNLOAD,
                    Step.DECOMPRESS,
                    Step.READ_MANIFEST,
                    Step.LOAD_RUNTIME_INFO,
                    Step.UPDATE_LIVE_RESTORE,
                )
            )

            runtime_steps = [step for step in RUNTIME_STEPS if cursor.should_run(step)]
            if runtime_steps:
                current = runtime_steps[0]
                async with service_stopped(self.services, self.config.runtime_service):
                    for step in runtime_steps:
                        await execute(step)

            await run_steps(PANEL_STEPS + (Step.FINALIZE,))

            await self.records.update_recover_status(record_id, SnapshotStatus.SUCCESS)
            logger.info("snapshot_recover_completed", snapshot=name)

        except WorkflowCancelledError as e:
            interrupt = furthest(last_ran or Step.DOWNLOAD, previous)
            logger.warning("snapshot_recover_cancelled", snapshot=name, interrupt_step=interrupt)
            await self.records.update_recover_status(
                record_id, SnapshotStatus.FAILED, e.message, interrupt_step=interrupt.value
            )

        except Exception as e:
            step = current or Step.DOWNLOAD
            interrupt = furthest(step, previous) if is_retry else step
            message = _failure_message(step, e)
            logger.error(
                "recover_step_failed",
                snapshot=name,
                step=step.value,
                interrupt_step=interrupt.value,
                error=message,
            )
            await self.records.update_recover_status(
                record_id, SnapshotStatus.FAILED, message, interrupt_step=interrupt.value
            )

    # =========================================================================
    # Rollback
    # =========================================================================

    async def rollback(self, record_id: str) -> SnapshotRecord:
        """
        Put the host back the way it was before the last recover.

        A recover that never got past reading the manifest changed nothing,
        so rolling it back is a no-op, as is rolling back a record that was
        never recovered.

        Raises:
            RecordNotFoundError: Unknown record
            PreconditionError: No safety copy, or a workflow is running
        """
        record = await self.records.get(record_id)

        try:
            depth = parse_step(record["interrupt_step"])
        except ValueError:
            raise PreconditionError(
                f"Unknown interrupt step: {record['interrupt_step']!r}",
                details={"record_id": record_id},
            )

        # A recover still at Download looks like one that never got further
        self._ensure_idle(record)

        if not record["recover_status"] or depth in PRE_MUTATION_STEPS:
            logger.info(
                "snapshot_rollback_not_needed",
                snapshot=record["name"],
                interrupt_step=depth,
            )
            return record

        layout = RecoverLayout.for_snapshot(self.config.staging_root, record["name"])
        if not layout.safety.is_dir():
            raise PreconditionError(
                explain_missing_safety_copy(str(layout.safety)),
                details={"record_id": record_id},
            )

        claimed = self._claim(record_id, "rollback")
        try:
            record = await self.records.update(
                record_id, rollback_status=SnapshotStatus.WAITING, rollback_message=""
            )
        except Exception:
            self._release(claimed)
            raise

        async def runner(workflow: WorkflowTask) -> None:
            await self._run_rollback(workflow, record, layout, depth)

        self._launch(claimed, runner)
        logger.info(
            "snapshot_rollback_started",
            snapshot=record["name"],
            depth=depth.value if depth else "all",
        )
        return record

    async def _run_rollback(
        self,
        workflow: WorkflowTask,
        record: SnapshotRecord,
        layout: RecoverLayout,
        depth: Step | None,
    ) -> None:
        record_id = record["id"]
        name = record["name"]
        current: Step | None = None

        try:
            if not is_at_or_before(Step.UPDATE_LIVE_RESTORE, depth):
                # Nothing on the host was touched before the recover stopped
                await self.records.update_rollback_status(record_id, SnapshotStatus.SUCCESS)
                logger.info("snapshot_rollback_completed", snapshot=name, restored=0)
                return

            manifest = await self._load_manifest(layout)
            paths = HostPaths.previous(manifest)

            runtime_steps = [step for step in RUNTIME_STEPS if is_at_or_before(step, depth)]
            if runtime_steps:
                current = runtime_steps[0]
                async with service_stopped(self.services, self.config.runtime_service):
                    for step in runtime_steps:
                        workflow.check(step)
                        current = step
                        await self.mutators[step].restore_from_safety_copy(paths, layout.safety)

            if manifest.old_live_restore_enabled:
                workflow.check(Step.UPDATE_LIVE_RESTORE)
                current = Step.UPDATE_LIVE_RESTORE
                await update_live_restore(
                    self.config.daemon_json_path,
                    True,
                    self.services,
                    self.config.runtime_service,
                    self.config.live_restore_settle_seconds,
                )

            panel_steps = [step for step in PANEL_STEPS if is_at_or_before(step, depth)]
            for step in panel_steps:
                workflow.check(step)
                current = step
                await self.mutators[step].restore_from_safety_copy(paths, layout.safety)

            if panel_steps:
                await self._reload_panel()

            _remove_quietly(layout.extracted)
            await self.records.update_rollback_status(record_id, SnapshotStatus.SUCCESS)
            logger.info(
                "snapshot_rollback_completed",
                snapshot=name,
                restored=len(runtime_steps) + len(panel_steps),
            )

        except WorkflowCancelledError as e:
            logger.warning("snapshot_rollback_cancelled", snapshot=name)
            await self.records.update_rollback_status(
                record_id, SnapshotStatus.FAILED, e.message
            )

        except Exception as e:
            message = _failure_message(current, e)
            logger.error("rollback_step_failed", snapshot=name, step=current, error=message)
            await self.records.update_rollback_status(
                record_id, SnapshotStatus.FAILED, message
            )

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, record_ids: Iterable[str]) -> int:
        """
        Delete records and their downloaded archives.

        Raises:
            RecordNotFoundError: Unknown record
            PreconditionError: A workflow is running for one of them
        """
        ids = list(record_ids)
        records = [await self.records.get(record_id) for record_id in ids]

        for record in records:
            workflow = self.running(record["id"])
            if workflow is not None:
                raise PreconditionError(
                    explain_busy(workflow.kind), details={"record_id": record["id"]}
                )

        for record in records:
            layout = RecoverLayout.for_snapshot(self.config.staging_root, record["name"])
            _remove_quietly(layout.archive)

        return await self.records.delete_many(ids)
