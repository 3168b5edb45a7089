# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ExecutionStatus(str, Enum):
    """Terminal states of a snippet execution."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"
    CANCELLED = "cancelled"


class ExecutionResult(BaseModel):
    """Represents the result of running a snippet in a sandbox.

    Attributes:
        stdout: Standard output captured from the execution.
        stderr: Standard error captured from the execution.
        exit_code: Exit code of the process, None when it was killed by a signal.
        signal: Number of the signal that terminated the process, if any.
        status: Terminal state of the execution.
        timed_out: True when the timeout boundary was reached.
        execution_duration: Wall-clock duration in seconds.
    """

    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str
    exit_code: int | None
    signal: int | None = None
    status: ExecutionStatus
    timed_out: bool = False
    execution_duration: float

    @classmethod
    def from_exit(
        cls, stdout: str, stderr: str, returncode: int, duration: float
    ) -> "ExecutionResult":
        """Builds a result from a subprocess return code.

        Negative return codes follow the subprocess convention of ``-signum``.
        """
        if returncode < 0:
            return cls(
                stdout=stdout,
                stderr=stderr,
                exit_code=None,
                signal=-returncode,
                status=ExecutionStatus.CRASHED,
                execution_duration=duration,
            )
        return cls(
            stdout=stdout,
            stderr=stderr,
            exit_code=returncode,
            status=ExecutionStatus.COMPLETED if returncode == 0 else ExecutionStatus.CRASHED,
            execution_duration=duration,
        )
