# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

from abc import ABC, abstractmethod

from coreason_docverify.models import ExecutionResult, Snippet


class SandboxRuntime(ABC):
    """
    Abstract base class for sandbox runtimes (e.g., local process, Docker).
    Follows the Strategy Pattern.

    One runtime instance serves one execution unit: a single snippet, or the
    snippets of one chain run in order against the same working directory.
    """

    partial_result: ExecutionResult | None = None

    @abstractmethod
    async def start(self) -> None:
        """Boot the environment.

        Creates a fresh, empty working directory (or container) for the unit.

        Raises:
            InfrastructureError: If the sandbox cannot be created.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def execute(self, snippet: Snippet, interpreter: list[str], timeout: float) -> ExecutionResult:
        """Run a snippet and capture its output.

        Runaway snippets are terminated at the timeout boundary and reported
        with ``ExecutionStatus.TIMED_OUT``; they never raise.

        On cancellation the runtime kills the running process, stores what was
        captured so far in ``partial_result`` and re-raises the cancellation.

        Args:
            snippet: The snippet to execute. Its ``program`` is what runs.
            interpreter: Command used to run the program file.
            timeout: Wall-clock budget in seconds.

        Returns:
            ExecutionResult: Captured streams, exit status and duration.

        Raises:
            RuntimeError: If the sandbox is not running.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def terminate(self) -> None:
        """Kill and cleanup the sandbox environment.

        Releases the working directory so nothing leaks into the next unit.
        """
        pass  # pragma: no cover
