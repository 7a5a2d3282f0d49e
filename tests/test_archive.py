# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the archive codec, exclusion rules and the snapshot manifest.
"""

import io
import json
import tarfile
from pathlib import Path

import pytest

from hostsnap.archive import (
    ArchiveCodec,
    SnapshotManifest,
    build_exclusion_rules,
    parse_exclusion_rules,
    read_manifest,
    save_manifest,
)
from hostsnap.exceptions import ArchiveError, ManifestError


# ============================================================================
# Exclusion rules
# ============================================================================

def test_nested_directory_becomes_rule():
    rules = build_exclusion_rules(Path("/opt/1panel"), Path("/opt/1panel/backups"))
    assert rules == "./backups;"


def test_directories_outside_source_are_ignored():
    rules = build_exclusion_rules(
        Path("/opt/1panel"),
        Path("/var/lib/docker"),
        Path("/opt/1panel-other"),
        Path("/opt/1panel"),
    )
    assert rules == ""


def test_multiple_and_deep_rules():
    rules = build_exclusion_rules(
        Path("/opt/1panel/"),
        Path("/opt/1panel/backups"),
        Path("/opt/1panel/data/docker/"),
    )
    assert rules == "./backups;./data/docker;"


def test_parse_exclusion_rules_normalizes():
    assert parse_exclusion_rules("./a;b/;;/c") == ["./a", "./b", "./c"]
    assert parse_exclusion_rules("") == []


# ============================================================================
# Compress and extract
# ============================================================================

def _tree(root: Path) -> Path:
    (root / "keep" / "sub").mkdir(parents=True)
    (root / "keep" / "sub" / "a.txt").write_text("a")
    (root / "backups" / "system").mkdir(parents=True)
    (root / "backups" / "b.txt").write_text("b")
    (root / "backupsish.txt").write_text("c")
    return root


@pytest.mark.asyncio
async def test_compress_honors_exclusions(temp_dir: Path):
    source = _tree(temp_dir / "src")
    archive = temp_dir / "out" / "data.tar.gz"

    codec = ArchiveCodec(timeout=60)
    await codec.compress(source, archive, "./backups;")

    with tarfile.open(archive) as tar:
        names = tar.getnames()

    assert "./keep/sub/a.txt" in names
    assert "./backupsish.txt" in names, "Rules match whole path components only"
    assert not any(name.startswith("./backups/") or name == "./backups" for name in names)
    assert not archive.with_name("data.tar.gz.tmp").exists()


@pytest.mark.asyncio
async def test_extract_overlays_target(temp_dir: Path):
    source = _tree(temp_dir / "src")
    archive = temp_dir / "data.tar.gz"
    target = temp_dir / "target"
    (target / "keep" / "sub").mkdir(parents=True)
    (target / "keep" / "sub" / "a.txt").write_text("stale")
    (target / "extra.txt").write_text("untouched")

    codec = ArchiveCodec(timeout=60)
    await codec.compress(source, archive)
    await codec.extract(archive, target)

    assert (target / "keep" / "sub" / "a.txt").read_text() == "a"
    assert (target / "backups" / "b.txt").read_text() == "b"
    assert (target / "extra.txt").read_text() == "untouched"


@pytest.mark.asyncio
async def test_compress_with_top_level_name(temp_dir: Path):
    source = _tree(temp_dir / "snap")
    archive = temp_dir / "snap.tar.gz"

    await ArchiveCodec(timeout=60).compress(source, archive, arcname="snap_1")

    with tarfile.open(archive) as tar:
        assert "snap_1/keep/sub/a.txt" in tar.getnames()


@pytest.mark.asyncio
async def test_compress_missing_source_raises(temp_dir: Path):
    with pytest.raises(ArchiveError):
        await ArchiveCodec().compress(temp_dir / "nope", temp_dir / "x.tar.gz")


@pytest.mark.asyncio
async def test_extract_missing_archive_raises(temp_dir: Path):
    with pytest.raises(ArchiveError):
        await ArchiveCodec().extract(temp_dir / "nope.tar.gz", temp_dir / "out")


@pytest.mark.asyncio
async def test_extract_rejects_path_traversal(temp_dir: Path):
    """
    CRITICAL: A member escaping the target must abort before anything is written.
    """
    archive = temp_dir / "evil.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        for name in ("./fine.txt", "../escape.txt"):
            data = b"x"
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))

    target = temp_dir / "target"
    with pytest.raises(ArchiveError, match="Unsafe path"):
        await ArchiveCodec().extract(archive, target)

    assert not (temp_dir / "escape.txt").exists()
    assert not (target / "fine.txt").exists()


@pytest.mark.asyncio
async def test_extract_corrupt_archive_raises(temp_dir: Path):
    archive = temp_dir / "broken.tar.gz"
    archive.write_bytes(b"not a tarball")
    with pytest.raises(ArchiveError):
        await ArchiveCodec().extract(archive, temp_dir / "out")


# ============================================================================
# Manifest
# ============================================================================

def test_manifest_omits_unset_old_fields():
    manifest = SnapshotManifest("/var/lib/docker", "/opt/1panel/backup", "/opt/1panel")
    data = manifest.to_dict()

    assert data == {
        "dockerDataDir": "/var/lib/docker",
        "backupDataDir": "/opt/1panel/backup",
        "panelDataDir": "/opt/1panel",
        "liveRestoreEnabled": False,
    }
    assert not manifest.has_old_paths


def test_manifest_accepts_legacy_backup_key():
    manifest = SnapshotManifest.from_dict(
        {
            "dockerDataDir": "/data/docker",
            "backupDataDir": "/data/backup",
            "panelDataDir": "/data/panel",
            "oldDockerDataDir": "/var/lib/docker",
            "oldDackupDataDir": "/opt/1panel/backup",
            "oldPanelDataDir": "/opt/1panel",
        }
    )
    assert manifest.old_backup_data_dir == "/opt/1panel/backup"
    assert manifest.has_old_paths
    assert manifest.to_dict()["oldBackupDataDir"] == "/opt/1panel/backup"


def test_manifest_requires_paths():
    with pytest.raises(ManifestError) as exc_info:
        SnapshotManifest.from_dict({"dockerDataDir": "/var/lib/docker"})
    assert exc_info.value.details["missing"] == ["backupDataDir", "panelDataDir"]


@pytest.mark.asyncio
async def test_manifest_save_and_read(temp_dir: Path):
    manifest = SnapshotManifest(
        "/var/lib/docker",
        "/opt/1panel/backup",
        "/opt/1panel",
        live_restore_enabled=True,
    ).with_old(
        old_docker_data_dir="/data/docker",
        old_backup_data_dir="/data/backup",
        old_panel_data_dir="/data/panel",
        old_live_restore_enabled=False,
    )

    path = await save_manifest(manifest, temp_dir / "tree")

    assert path.name == "snapshot.json"
    assert json.loads(path.read_text())["oldLiveRestoreEnabled"] is False
    assert await read_manifest(temp_dir / "tree") == manifest


@pytest.mark.asyncio
async def test_read_manifest_errors(temp_dir: Path):
    with pytest.raises(ManifestError, match="not found"):
        await read_manifest(temp_dir)

    (temp_dir / "snapshot.json").write_text("{broken")
    with pytest.raises(ManifestError, match="not valid JSON"):
        await read_manifest(temp_dir)

    (temp_dir / "snapshot.json").write_text("[]")
    with pytest.raises(ManifestError, match="JSON object"):
        await read_manifest(temp_dir)
