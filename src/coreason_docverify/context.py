# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import anyio
from loguru import logger

from coreason_docverify.config import VerifierConfig
from coreason_docverify.factory import SandboxFactory
from coreason_docverify.models import ExecutionStatus
from coreason_docverify.reporter import ReportCollector
from coreason_docverify.runtime import SandboxRuntime


class SnippetState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"
    CANCELLED = "cancelled"


_TRANSITIONS: dict[SnippetState, set[SnippetState]] = {
    SnippetState.PENDING: {SnippetState.RUNNING, SnippetState.CANCELLED},
    SnippetState.RUNNING: {
        SnippetState.COMPLETED,
        SnippetState.TIMED_OUT,
        SnippetState.CRASHED,
        SnippetState.CANCELLED,
    },
}

TERMINAL_STATES = frozenset(
    {SnippetState.COMPLETED, SnippetState.TIMED_OUT, SnippetState.CRASHED, SnippetState.CANCELLED}
)


def state_for(status: ExecutionStatus) -> SnippetState:
    return SnippetState(status.value)


@dataclass
class RunContext:
    """Explicit state of one verification run, passed to every component.

    Attributes:
        config: Run configuration.
        collector: Sink for verification records, in source order.
        limiter: Bounds the number of concurrently live sandboxes.
        runtime_factory: Builds a fresh runtime per execution unit.
        cancel_scope: Scope cancelled by ``VerifierAsync.cancel``.
        states: Lifecycle state per snippet id.
    """

    config: VerifierConfig
    collector: ReportCollector
    limiter: anyio.CapacityLimiter
    runtime_factory: Callable[[VerifierConfig], SandboxRuntime] = SandboxFactory.get_runtime
    cancel_scope: anyio.CancelScope = field(default_factory=anyio.CancelScope)
    states: dict[str, SnippetState] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        config: VerifierConfig,
        collector: ReportCollector | None = None,
        runtime_factory: Callable[[VerifierConfig], SandboxRuntime] | None = None,
    ) -> "RunContext":
        return cls(
            config=config,
            collector=collector or ReportCollector(),
            limiter=anyio.CapacityLimiter(config.max_workers),
            runtime_factory=runtime_factory or SandboxFactory.get_runtime,
        )

    def transition(self, snippet_id: str, state: SnippetState) -> None:
        """Move a snippet to a new lifecycle state.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        current = self.states.get(snippet_id, SnippetState.PENDING)
        if state not in _TRANSITIONS.get(current, set()):
            raise RuntimeError(f"Illegal state transition for {snippet_id}: {current.value} -> {state.value}")
        self.states[snippet_id] = state
        logger.trace(f"{snippet_id}: {current.value} -> {state.value}")
