# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
LOCAL storage backend - a directory standing in for a remote bucket.
"""

import asyncio
import shutil
from pathlib import Path

import structlog

logger = structlog.get_logger()


class LocalStorageClient:
    """
    Stores objects as files under ``root``; the remote key is the relative path.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _object_path(self, remote_key: str) -> Path:
        path = (self.root / remote_key.lstrip("/")).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Remote key escapes storage root: {remote_key}")
        return path

    async def _copy(self, source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_name(target.name + ".tmp")
        await asyncio.to_thread(shutil.copyfile, source, temp_path)
        temp_path.replace(target)

    async def upload(self, local_path: Path, remote_key: str) -> bool:
        try:
            await self._copy(local_path, self._object_path(remote_key))
        except Exception as e:
            logger.error(
                "storage_upload_failed",
                backend="LOCAL",
                remote_key=remote_key,
                error=str(e),
            )
            return False

        logger.info("storage_upload_complete", backend="LOCAL", remote_key=remote_key)
        return True

    async def download(self, remote_key: str, local_path: Path) -> bool:
        try:
            await self._copy(self._object_path(remote_key), local_path)
        except Exception as e:
            logger.error(
                "storage_download_failed",
                backend="LOCAL",
                remote_key=remote_key,
                error=str(e),
            )
            return False

        logger.info("storage_download_complete", backend="LOCAL", remote_key=remote_key)
        return True
