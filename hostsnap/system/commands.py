# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
External command execution with an enforced timeout.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Tuple

import structlog

from hostsnap.exceptions import CommandError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    *args: str,
    timeout: float,
    check: bool = True,
) -> CommandResult:
    """
    Run a command and wait for it, killing it once ``timeout`` passes.

    Args:
        *args: Program and arguments (no shell)
        timeout: Seconds to wait before the process is killed
        check: Raise CommandError on a non-zero exit status

    Returns:
        CommandResult with decoded output

    Raises:
        CommandError: On timeout, a missing program, or (with check) failure
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(
            f"Failed to start command: {e}",
            details={"args": list(args)},
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        logger.error("command_timed_out", args=list(args), timeout=timeout)
        raise CommandError(
            f"Command timed out after {timeout}s: {' '.join(args)}",
            details={"args": list(args), "timeout": timeout},
        )

    result = CommandResult(
        args=tuple(args),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", "ignore"),
        stderr=stderr.decode("utf-8", "ignore"),
    )

    logger.debug("command_finished", args=list(args), returncode=result.returncode)

    if check and not result.ok:
        output = (result.stderr or result.stdout).strip()
        raise CommandError(
            f"Command failed rc={result.returncode}: {' '.join(args)}: {output}",
            details={"args": list(args), "returncode": result.returncode},
        )
    return result
