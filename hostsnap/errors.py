# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for hostsnap.

These helpers centralize wording for common configuration and request
errors so that the HTTP layer and the orchestrator present the same text.
"""


def explain_missing_backup_dir_env() -> str:
    """
    Explain that the backup directory environment variable is missing.
    """

    return (
        "Backup directory is not configured. "
        "Set the HOSTSNAP_BACKUP_DIR environment variable or pass backup_dir=... to create_config()."
    )


def explain_invalid_number_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive number of seconds."


def explain_unknown_backend(value: str | None) -> str:
    """
    Explain that a storage backend reference is not usable.
    """

    return (
        f"Unknown storage backend: {value!r}. "
        "Expected 'LOCAL', or 'S3' with HOSTSNAP_S3_BUCKET configured."
    )


def explain_rolled_back() -> str:
    """
    Explain why a rolled back snapshot cannot be recovered again.
    """

    return (
        "The snapshot has been rolled back and cannot be recovered again. "
        "Pass force_full_redo=true to start a fresh recover."
    )


def explain_busy(track: str) -> str:
    """
    Explain that another workflow is already running for the record.
    """

    return (
        f"A {track} workflow is already running for this snapshot. "
        "Wait for it to finish, or for it to be reported as stuck."
    )


def explain_missing_safety_copy(path: str) -> str:
    """
    Explain that the rollback source is missing.
    """

    return (
        f"Original-state safety copy not found at {path}. "
        "Rollback is only possible after a recover has captured the live system."
    )
