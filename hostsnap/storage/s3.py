# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 storage backend (aiobotocore).

A client is created per transfer from one shared session. Archives are
streamed: uploads larger than one part go through a multipart upload and
downloads are written to disk chunk by chunk, so memory use is bounded by
``part_size`` no matter how large the container data directory is.
"""

from pathlib import Path
from typing import Any, Dict, List

import aiofiles
import structlog
from aiobotocore.session import get_session

logger = structlog.get_logger()

# S3 rejects parts below 5 MiB except the last one
DEFAULT_PART_SIZE = 64 * 1024 * 1024
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class S3StorageClient:
    """Uploads and downloads snapshot archives to one bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        session: Any = None,
        part_size: int = DEFAULT_PART_SIZE,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.part_size = part_size
        self._session = session or get_session()

    def _client(self) -> Any:
        return self._session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
        )

    async def _upload_parts(self, s3_client: Any, local_path: Path, remote_key: str) -> int:
        """Multipart upload, one ``part_size`` chunk in memory at a time."""
        response = await s3_client.create_multipart_upload(
            Bucket=self.bucket, Key=remote_key
        )
        upload_id = response["UploadId"]
        parts: List[Dict[str, Any]] = []

        try:
            async with aiofiles.open(local_path, "rb") as f:
                while True:
                    chunk = await f.read(self.part_size)
                    if not chunk:
                        break
                    number = len(parts) + 1
                    part = await s3_client.upload_part(
                        Bucket=self.bucket,
                        Key=remote_key,
                        PartNumber=number,
                        UploadId=upload_id,
                        Body=chunk,
                    )
                    parts.append({"ETag": part["ETag"], "PartNumber": number})

            await s3_client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=remote_key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except Exception:
            await s3_client.abort_multipart_upload(
                Bucket=self.bucket, Key=remote_key, UploadId=upload_id
            )
            raise

        return len(parts)

    async def upload(self, local_path: Path, remote_key: str) -> bool:
        try:
            size = local_path.stat().st_size
            parts = 1

            async with self._client() as s3_client:
                if size <= self.part_size:
                    async with aiofiles.open(local_path, "rb") as f:
                        content = await f.read()
                    await s3_client.put_object(
                        Bucket=self.bucket,
                        Key=remote_key,
                        Body=content,
                    )
                else:
                    parts = await self._upload_parts(s3_client, local_path, remote_key)
        except Exception as e:
            logger.error(
                "storage_upload_failed",
                backend="S3",
                bucket=self.bucket,
                remote_key=remote_key,
                error=str(e),
            )
            return False

        logger.info(
            "storage_upload_complete",
            backend="S3",
            bucket=self.bucket,
            remote_key=remote_key,
            size=size,
            parts=parts,
        )
        return True

    async def download(self, remote_key: str, local_path: Path) -> bool:
        temp_path = local_path.with_name(local_path.name + ".tmp")
        size = 0
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=remote_key)
                async with response["Body"] as stream:
                    async with aiofiles.open(temp_path, "wb") as f:
                        async for chunk in stream.iter_chunks(DOWNLOAD_CHUNK_SIZE):
                            await f.write(chunk)
                            size += len(chunk)

            temp_path.replace(local_path)
        except Exception as e:
            temp_path.unlink(missing_ok=True)
            logger.error(
                "storage_download_failed",
                backend="S3",
                bucket=self.bucket,
                remote_key=remote_key,
                error=str(e),
            )
            return False

        logger.info(
            "storage_download_complete",
            backend="S3",
            bucket=self.bucket,
            remote_key=remote_key,
            size=size,
        )
        return True
