# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Exceptions - Custom exceptions for the hostsnap package.
"""


class HostSnapError(Exception):
    """Base exception for all hostsnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(HostSnapError):
    """Raised when configuration is invalid."""

    pass


class PreconditionError(HostSnapError):
    """Raised when a create/recover/rollback request is rejected before it starts."""

    pass


class RecordNotFoundError(PreconditionError):
    """Raised when a snapshot record does not exist."""

    pass


class StepError(HostSnapError):
    """Raised when a workflow step fails inside a background task."""

    def __init__(self, step: str, message: str, details: dict | None = None):
        self.step = step
        super().__init__(message, details)


class ArchiveError(HostSnapError):
    """Raised when archive or extract operations fail."""

    pass


class ManifestError(HostSnapError):
    """Raised when the snapshot manifest cannot be read or written."""

    pass


class RuntimeProbeError(HostSnapError):
    """Raised when the container runtime cannot be queried."""

    pass


class CommandError(HostSnapError):
    """Raised when an external command fails or times out."""

    pass


class StorageError(HostSnapError):
    """Raised when remote storage operations fail."""

    pass


class RecordStoreError(HostSnapError):
    """Raised when snapshot record persistence fails."""

    pass


class ResourceError(HostSnapError):
    """Raised when a resource cannot be captured or restored."""

    pass


class WorkflowCancelledError(HostSnapError):
    """Raised between steps when a workflow's cancellation signal is set."""

    pass
