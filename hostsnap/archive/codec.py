# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Archive Codec - gzip tarballs with exclusion rules.

Archives are written with members relative to the source directory
(``./...``) unless an explicit top-level name is given. Exclusion rules are
a ``;``-separated list of such relative member names; an excluded directory
is skipped together with everything below it.

tarfile is blocking, so every operation runs in a worker thread and checks
a deadline between members.
"""

import asyncio
import os
import tarfile
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List

import structlog

from hostsnap.exceptions import ArchiveError

logger = structlog.get_logger()

# Thread pool for blocking tar operations
_executor = ThreadPoolExecutor(max_workers=2)


def build_exclusion_rules(source_dir: Path, *inner_dirs: Path) -> str:
    """
    Build the exclusion rule string for archiving ``source_dir``.

    Every inner directory nested strictly inside ``source_dir`` becomes a
    ``./<relative>;`` rule. Directories outside it are ignored.

    Example:
        >>> build_exclusion_rules(Path("/opt/1panel"), Path("/opt/1panel/backups"))
        './backups;'
    """
    source = Path(os.path.normpath(source_dir))
    rules = ""
    for inner in inner_dirs:
        if inner is None:
            continue
        candidate = Path(os.path.normpath(inner))
        if candidate == source or not candidate.is_relative_to(source):
            continue
        rules += f"./{candidate.relative_to(source).as_posix()};"
    return rules


def parse_exclusion_rules(rules: str) -> List[str]:
    """Split a rule string into normalized member names."""
    parsed: List[str] = []
    for rule in (rules or "").split(";"):
        rule = rule.strip().rstrip("/")
        if not rule:
            continue
        if not rule.startswith("./"):
            rule = f"./{rule.lstrip('/')}"
        parsed.append(rule)
    return parsed


def _is_excluded(member_name: str, rules: List[str]) -> bool:
    return any(
        member_name == rule or member_name.startswith(rule + "/") for rule in rules
    )


def _is_unsafe_member(name: str) -> bool:
    return name.startswith("/") or ".." in Path(name).parts


class ArchiveCodec:
    """
    Compress and extract directory trees.

    Args:
        timeout: Deadline in seconds for a single compress or extract call
    """

    def __init__(self, timeout: float = 6 * 3600.0):
        self.timeout = timeout

    async def compress(
        self,
        source_dir: Path,
        archive_path: Path,
        exclusion_rules: str = "",
        arcname: str = ".",
    ) -> Path:
        """
        Write ``source_dir`` into the gzip tarball ``archive_path``.

        Args:
            source_dir: Directory to archive
            archive_path: Target ``.tar.gz`` file (parents are created)
            exclusion_rules: ``;``-separated ``./relative`` paths to skip
            arcname: Name of the top-level member

        Returns:
            Path to the written archive
        """
        if not source_dir.is_dir():
            raise ArchiveError(
                f"Archive source is not a directory: {source_dir}",
                details={"source_dir": str(source_dir)},
            )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            _executor,
            self._compress_sync,
            source_dir,
            archive_path,
            parse_exclusion_rules(exclusion_rules),
            arcname,
        )

        logger.info(
            "archive_created",
            source_dir=str(source_dir),
            archive_path=str(archive_path),
            exclusion_rules=exclusion_rules,
        )
        return archive_path

    def _compress_sync(
        self,
        source_dir: Path,
        archive_path: Path,
        rules: List[str],
        arcname: str,
    ) -> None:
        deadline = time.monotonic() + self.timeout
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = archive_path.with_name(archive_path.name + ".tmp")

        def member_filter(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo | None:
            if time.monotonic() > deadline:
                raise ArchiveError(
                    f"Archiving {source_dir} exceeded {self.timeout}s",
                    details={"source_dir": str(source_dir)},
                )
            if arcname == "." and _is_excluded(tarinfo.name, rules):
                return None
            return tarinfo

        try:
            with tarfile.open(temp_path, "w:gz") as tar:
                tar.add(source_dir, arcname=arcname, filter=member_filter)
            temp_path.replace(archive_path)
        except ArchiveError:
            temp_path.unlink(missing_ok=True)
            raise
        except Exception as e:
            temp_path.unlink(missing_ok=True)
            raise ArchiveError(
                f"Failed to create archive: {e}",
                details={"source_dir": str(source_dir), "archive_path": str(archive_path)},
            )

    async def extract(self, archive_path: Path, target_dir: Path) -> Path:
        """
        Extract ``archive_path`` into ``target_dir``, overlaying existing files.

        Returns:
            The target directory
        """
        if not archive_path.is_file():
            raise ArchiveError(
                f"Archive not found: {archive_path}",
                details={"archive_path": str(archive_path)},
            )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            _executor, self._extract_sync, archive_path, target_dir
        )

        logger.info(
            "archive_extracted",
            archive_path=str(archive_path),
            target_dir=str(target_dir),
        )
        return target_dir

    def _extract_sync(self, archive_path: Path, target_dir: Path) -> None:
        deadline = time.monotonic() + self.timeout
        try:
            target_dir.mkdir(parents=True, exist_ok=True)

            with tarfile.open(archive_path, "r:*") as tar:
                members = tar.getmembers()

                # Security: Check for path traversal
                for member in members:
                    if _is_unsafe_member(member.name):
                        raise ArchiveError(
                            f"Unsafe path in archive: {member.name}",
                            details={"archive_path": str(archive_path)},
                        )

                for member in members:
                    if time.monotonic() > deadline:
                        raise ArchiveError(
                            f"Extracting {archive_path} exceeded {self.timeout}s",
                            details={"archive_path": str(archive_path)},
                        )
                    tar.extract(member, target_dir, filter="fully_trusted")

        except ArchiveError:
            raise
        except Exception as e:
            raise ArchiveError(
                f"Failed to extract archive: {e}",
                details={"archive_path": str(archive_path), "target_dir": str(target_dir)},
            )
