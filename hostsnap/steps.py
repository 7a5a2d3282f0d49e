# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostsnap Steps - The closed set of workflow steps and their fixed order.

Recover and rollback share RECOVER_SEQUENCE. Step values double as the
``interrupt_step`` checkpoint stored on a snapshot record, so a step name
read back from the database always maps onto exactly one table position.
"""

from enum import Enum
from typing import Tuple


class Step(str, Enum):
    """Workflow step identifiers."""

    # Recover sequence
    DOWNLOAD = "Download"
    DECOMPRESS = "Decompress"
    READ_MANIFEST = "ReadManifest"
    LOAD_RUNTIME_INFO = "LoadRuntimeInfo"
    UPDATE_LIVE_RESTORE = "UpdateLiveRestore"
    DOCKER_DATA_DIR = "DockerDataDir"
    DAEMON_JSON = "DaemonJson"
    PANEL_BINARY = "PanelBinary"
    CONTROL_BINARY = "ControlBinary"
    SERVICE_UNIT = "ServiceUnit"
    BACKUP_DIRECTORY = "BackupDirectory"
    PANEL_DATA_DIRECTORY = "PanelDataDirectory"
    FINALIZE = "Finalize"

    # Create-only steps
    WRITE_MANIFEST = "WriteManifest"
    COMPRESS = "Compress"
    UPLOAD = "Upload"


class SnapshotStatus(str, Enum):
    """Status of one record track (create, recover or rollback)."""

    WAITING = "Waiting"
    SUCCESS = "Success"
    FAILED = "Failed"


RECOVER_SEQUENCE: Tuple[Step, ...] = (
    Step.DOWNLOAD,
    Step.DECOMPRESS,
    Step.READ_MANIFEST,
    Step.LOAD_RUNTIME_INFO,
    Step.UPDATE_LIVE_RESTORE,
    Step.DOCKER_DATA_DIR,
    Step.DAEMON_JSON,
    Step.PANEL_BINARY,
    Step.CONTROL_BINARY,
    Step.SERVICE_UNIT,
    Step.BACKUP_DIRECTORY,
    Step.PANEL_DATA_DIRECTORY,
    Step.FINALIZE,
)

# Steps whose failure leaves the live system untouched
PRE_MUTATION_STEPS = frozenset({Step.DOWNLOAD, Step.DECOMPRESS, Step.READ_MANIFEST})

# Steps that stop the runtime while they run
RUNTIME_STEPS: Tuple[Step, ...] = (Step.DOCKER_DATA_DIR, Step.DAEMON_JSON)

# Steps handled by a resource mutator, in recover order
RESOURCE_STEPS: Tuple[Step, ...] = (
    Step.DOCKER_DATA_DIR,
    Step.DAEMON_JSON,
    Step.PANEL_BINARY,
    Step.CONTROL_BINARY,
    Step.SERVICE_UNIT,
    Step.BACKUP_DIRECTORY,
    Step.PANEL_DATA_DIRECTORY,
)

PANEL_STEPS: Tuple[Step, ...] = RESOURCE_STEPS[2:]

CREATE_SEQUENCE: Tuple[Step, ...] = RESOURCE_STEPS + (
    Step.WRITE_MANIFEST,
    Step.COMPRESS,
    Step.UPLOAD,
)


def parse_step(value: str | None) -> Step | None:
    """
    Convert a stored interrupt step into a Step.

    Returns None for an empty value. Unknown names raise ValueError so a
    corrupted checkpoint is never silently treated as "start over".
    """
    if not value:
        return None
    return Step(value)


def step_index(step: Step) -> int:
    """Position of a step in the recover sequence."""
    return RECOVER_SEQUENCE.index(step)


def is_at_or_before(step: Step, limit: Step | None) -> bool:
    """
    True if ``step`` lies at or before ``limit`` in the recover sequence.

    A missing limit means the recover ran to completion, so every step
    qualifies.
    """
    if limit is None:
        return True
    return step_index(step) <= step_index(limit)


def furthest(a: Step | None, b: Step | None) -> Step | None:
    """Return whichever step lies further along the recover sequence."""
    if a is None:
        return b
    if b is None:
        return a
    return a if step_index(a) >= step_index(b) else b


class ResumeCursor:
    """
    Decides which recover steps run in one attempt.

    A retry skips every step before the recorded interrupt step. Once any
    step runs, every later step runs too: the checkpoint is a single resume
    point, not a per-step ledger.
    """

    def __init__(self, interrupt_step: Step | None, is_retry: bool):
        self.interrupt_step = interrupt_step
        self._skipping = is_retry and interrupt_step is not None

    @property
    def skipping(self) -> bool:
        return self._skipping

    def should_run(self, step: Step) -> bool:
        if not self._skipping:
            return True
        if step == self.interrupt_step:
            self._skipping = False
            return True
        return False

    def force(self) -> None:
        """Stop skipping from here on."""
        self._skipping = False
