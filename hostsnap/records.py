# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Records - Persistent snapshot records.

One row per snapshot instance. Each row carries three independent status
tracks (create, recover, rollback) plus the ``interrupt_step`` checkpoint
that lets a failed recover resume where it stopped.

Every write commits before returning, so a workflow step never starts
before the progress of the previous one is on disk.
"""

from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, TypedDict

import aiosqlite
import structlog

from hostsnap.exceptions import RecordNotFoundError, RecordStoreError
from hostsnap.steps import SnapshotStatus

logger = structlog.get_logger()


class SnapshotRecord(TypedDict):
    """A snapshot instance and the state of its three workflows."""

    id: str  # ULID
    name: str  # <prefix>_<YYYYmmddHHMMSS>
    description: str
    source: str  # LOCAL, S3
    version: str
    status: str  # create track
    message: str
    recover_status: str
    recover_message: str
    rollback_status: str
    rollback_message: str
    interrupt_step: str
    last_recovered_at: str | None  # ISO 8601
    last_rolled_back_at: str | None  # ISO 8601
    created_at: str  # ISO 8601
    updated_at: str  # ISO 8601


_COLUMNS = (
    "id",
    "name",
    "description",
    "source",
    "version",
    "status",
    "message",
    "recover_status",
    "recover_message",
    "rollback_status",
    "rollback_message",
    "interrupt_step",
    "last_recovered_at",
    "last_rolled_back_at",
    "created_at",
    "updated_at",
)

_UPDATABLE = frozenset(_COLUMNS) - {"id", "name", "created_at"}


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _row_to_record(row: Any) -> SnapshotRecord:
    return SnapshotRecord(**{column: row[i] for i, column in enumerate(_COLUMNS)})


def is_stuck(record: SnapshotRecord, stale_after_seconds: float) -> bool:
    """
    True if any of the three tracks is Waiting but nothing has touched
    the record for ``stale_after_seconds``.

    Such a record was most likely abandoned by a crashed process.
    """
    waiting = SnapshotStatus.WAITING.value
    if waiting not in (record["status"], record["recover_status"], record["rollback_status"]):
        return False
    updated_at = datetime.fromisoformat(record["updated_at"])
    return datetime.now(UTC) - updated_at > timedelta(seconds=stale_after_seconds)


class SnapshotRecordStore:
    """
    aiosqlite-backed store of SnapshotRecord rows.

    A connection is opened per call; SQLite serializes concurrent writers.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def init(self) -> None:
        """Create the schema. Idempotent."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS snapshots (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL UNIQUE,
                        description TEXT NOT NULL DEFAULT '',
                        source TEXT NOT NULL,
                        version TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL,
                        message TEXT NOT NULL DEFAULT '',
                        recover_status TEXT NOT NULL DEFAULT '',
                        recover_message TEXT NOT NULL DEFAULT '',
                        rollback_status TEXT NOT NULL DEFAULT '',
                        rollback_message TEXT NOT NULL DEFAULT '',
                        interrupt_step TEXT NOT NULL DEFAULT '',
                        last_recovered_at TEXT,
                        last_rolled_back_at TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)

                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_snapshots_created_at
                    ON snapshots(created_at)
                """)

                await db.commit()

            logger.info("record_store_initialized", db_path=str(self.db_path))

        except Exception as e:
            raise RecordStoreError(
                f"Failed to initialize record store: {e}",
                details={"db_path": str(self.db_path)},
            )

    async def create(
        self,
        record_id: str,
        name: str,
        source: str,
        description: str = "",
        version: str = "",
    ) -> SnapshotRecord:
        """Insert a new record whose create track is Waiting."""
        now = _now()
        record = SnapshotRecord(
            id=record_id,
            name=name,
            description=description,
            source=source,
            version=version,
            status=SnapshotStatus.WAITING.value,
            message="",
            recover_status="",
            recover_message="",
            rollback_status="",
            rollback_message="",
            interrupt_step="",
            last_recovered_at=None,
            last_rolled_back_at=None,
            created_at=now,
            updated_at=now,
        )

        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    f"INSERT INTO snapshots ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    tuple(record[column] for column in _COLUMNS),
                )
                await db.commit()
        except Exception as e:
            raise RecordStoreError(
                f"Failed to create snapshot record: {e}",
                details={"name": name},
            )

        logger.info("snapshot_record_created", snapshot=name, record_id=record_id)
        return record

    async def get(self, record_id: str) -> SnapshotRecord:
        """
        Fetch a record by id.

        Raises:
            RecordNotFoundError: If no such record exists
        """
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM snapshots WHERE id = ?",
                (record_id,),
            ) as cursor:
                row = await cursor.fetchone()

        if row is None:
            raise RecordNotFoundError(
                f"Snapshot record not found: {record_id}",
                details={"record_id": record_id},
            )
        return _row_to_record(row)

    async def get_by_name(self, name: str) -> SnapshotRecord | None:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM snapshots WHERE name = ?",
                (name,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def search(
        self,
        page: int = 1,
        page_size: int = 20,
        info: str | None = None,
    ) -> Tuple[int, List[SnapshotRecord]]:
        """
        Page through records, newest first.

        Args:
            page: 1-based page number
            page_size: Records per page
            info: Optional substring matched against the name

        Returns:
            Tuple of (total matching records, records on this page)
        """
        page = max(page, 1)
        where = ""
        params: List[Any] = []
        if info:
            where = "WHERE name LIKE ?"
            params.append(f"%{info}%")

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT COUNT(*) FROM snapshots {where}", params
            ) as cursor:
                row = await cursor.fetchone()
                total = row[0] if row else 0

            async with db.execute(
                f"""
                SELECT {', '.join(_COLUMNS)} FROM snapshots {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (*params, page_size, (page - 1) * page_size),
            ) as cursor:
                rows = await cursor.fetchall()

        return total, [_row_to_record(row) for row in rows]

    async def update(self, record_id: str, **fields: Any) -> SnapshotRecord:
        """
        Update the given columns and touch ``updated_at``.

        Raises:
            RecordStoreError: On an unknown column
            RecordNotFoundError: If no such record exists
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise RecordStoreError(
                "Unknown snapshot record fields",
                details={"fields": sorted(unknown)},
            )

        values: Dict[str, Any] = {
            key: value.value if isinstance(value, SnapshotStatus) else value
            for key, value in fields.items()
        }
        values["updated_at"] = _now()
        assignments = ", ".join(f"{key} = ?" for key in values)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"UPDATE snapshots SET {assignments} WHERE id = ?",
                (*values.values(), record_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise RecordNotFoundError(
                    f"Snapshot record not found: {record_id}",
                    details={"record_id": record_id},
                )

        return await self.get(record_id)

    async def update_create_status(
        self, record_id: str, status: SnapshotStatus, message: str = ""
    ) -> SnapshotRecord:
        return await self.update(record_id, status=status, message=message)

    async def update_recover_status(
        self,
        record_id: str,
        status: SnapshotStatus,
        message: str = "",
        interrupt_step: str | None = None,
    ) -> SnapshotRecord:
        """
        Set the recover track.

        ``interrupt_step`` is left untouched when None. Success always
        clears it and stamps ``last_recovered_at``.
        """
        fields: Dict[str, Any] = {"recover_status": status, "recover_message": message}
        if status == SnapshotStatus.SUCCESS:
            fields["interrupt_step"] = ""
            fields["last_recovered_at"] = _now()
        elif interrupt_step is not None:
            fields["interrupt_step"] = interrupt_step
        return await self.update(record_id, **fields)

    async def update_rollback_status(
        self, record_id: str, status: SnapshotStatus, message: str = ""
    ) -> SnapshotRecord:
        """
        Set the rollback track.

        A successful rollback resets the recover and rollback tracks and the
        checkpoint, so the record looks as if it was never recovered.
        """
        if status == SnapshotStatus.SUCCESS:
            return await self.update(
                record_id,
                recover_status="",
                recover_message="",
                rollback_status="",
                rollback_message="",
                interrupt_step="",
                last_rolled_back_at=_now(),
            )
        return await self.update(
            record_id, rollback_status=status, rollback_message=message
        )

    async def checkpoint(self, record_id: str, step: str) -> None:
        """Persist the step about to run while the recover track stays Waiting."""
        await self.update(record_id, interrupt_step=step)
        logger.debug("recover_checkpoint", record_id=record_id, step=step)

    async def delete_many(self, record_ids: Iterable[str]) -> int:
        """Delete records by id. Returns the number of rows removed."""
        ids = list(record_ids)
        if not ids:
            return 0

        placeholders = ", ".join("?" for _ in ids)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"DELETE FROM snapshots WHERE id IN ({placeholders})", ids
            )
            await db.commit()
            deleted = cursor.rowcount

        logger.info("snapshot_records_deleted", count=deleted)
        return deleted

    async def find_stuck(self, stale_after_seconds: float) -> List[SnapshotRecord]:
        """Records with any Waiting track older than the threshold."""
        cutoff = (datetime.now(UTC) - timedelta(seconds=stale_after_seconds)).isoformat()
        waiting = SnapshotStatus.WAITING.value

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT {', '.join(_COLUMNS)} FROM snapshots
                WHERE (status = ? OR recover_status = ? OR rollback_status = ?)
                AND updated_at < ?
                ORDER BY updated_at
                """,
                (waiting, waiting, waiting, cutoff),
            ) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_record(row) for row in rows]
