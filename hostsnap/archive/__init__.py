# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Archive - tarball codec and snapshot manifest.
"""

from hostsnap.archive.codec import (
    ArchiveCodec,
    build_exclusion_rules,
    parse_exclusion_rules,
)
from hostsnap.archive.manifest import (
    MANIFEST_FILENAME,
    SnapshotManifest,
    read_manifest,
    save_manifest,
)

__all__ = [
    "ArchiveCodec",
    "build_exclusion_rules",
    "parse_exclusion_rules",
    "MANIFEST_FILENAME",
    "SnapshotManifest",
    "read_manifest",
    "save_manifest",
]
