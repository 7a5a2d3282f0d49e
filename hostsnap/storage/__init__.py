# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Storage - remote storage backends for snapshot archives.

Both operations report failure by returning False; callers treat False as
an error.
"""

from pathlib import Path
from typing import Protocol

from hostsnap.config import SnapshotConfig, StorageBackend
from hostsnap.errors import explain_unknown_backend
from hostsnap.exceptions import PreconditionError
from hostsnap.storage.local import LocalStorageClient
from hostsnap.storage.s3 import S3StorageClient


class RemoteStorageClient(Protocol):
    async def upload(self, local_path: Path, remote_key: str) -> bool: ...

    async def download(self, remote_key: str, local_path: Path) -> bool: ...


def remote_key_for(config: SnapshotConfig, name: str) -> str:
    """Object key of a snapshot archive: ``<remote_prefix>/<name>.tar.gz``."""
    return f"{config.remote_prefix.rstrip('/')}/{name}.tar.gz"


def create_storage_client(source: str, config: SnapshotConfig) -> RemoteStorageClient:
    """
    Build the client for a storage backend reference.

    Raises:
        PreconditionError: On an unknown backend, or S3 without a bucket
    """
    try:
        backend = StorageBackend((source or "").upper())
    except ValueError:
        raise PreconditionError(
            explain_unknown_backend(source), details={"source": source}
        )

    if backend == StorageBackend.S3:
        if not config.s3_bucket:
            raise PreconditionError(
                explain_unknown_backend(source), details={"source": source}
            )
        return S3StorageClient(
            config.s3_bucket,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
        )

    return LocalStorageClient(config.resolved_local_storage_dir)


__all__ = [
    "RemoteStorageClient",
    "LocalStorageClient",
    "S3StorageClient",
    "create_storage_client",
    "remote_key_for",
]
