# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Scheduling of snippets onto sandboxes.

Independent snippets run in parallel, bounded by the run's capacity limiter.
The snippets of one chain form a single unit that runs sequentially on one
sandbox, so later snippets see the working directory earlier ones left.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

import anyio
from loguru import logger

from coreason_docverify import differ
from coreason_docverify.config import VerifierConfig
from coreason_docverify.context import RunContext, SnippetState, state_for
from coreason_docverify.exceptions import InfrastructureError
from coreason_docverify.models import Snippet
from coreason_docverify.runtime import SandboxRuntime


@dataclass
class ExecutionUnit:
    """Snippets that must run in order on the same sandbox."""

    snippets: list[Snippet] = field(default_factory=list)
    chain: str | None = None


def build_units(snippets: Iterable[Snippet]) -> list[ExecutionUnit]:
    """Group snippets into execution units.

    Chains are scoped per document. Units are returned in the source order of
    their first snippet.
    """
    units: list[ExecutionUnit] = []
    chains: dict[tuple[str, str], ExecutionUnit] = {}
    for snippet in snippets:
        if snippet.chain is None:
            units.append(ExecutionUnit(snippets=[snippet]))
            continue
        key = (snippet.location.document, snippet.chain)
        unit = chains.get(key)
        if unit is None:
            unit = ExecutionUnit(chain=snippet.chain)
            chains[key] = unit
            units.append(unit)
        unit.snippets.append(snippet)
    return units


def select(snippets: list[Snippet], tags: set[str]) -> list[Snippet]:
    """Keep snippets carrying one of ``tags``, plus their chain predecessors.

    An empty tag set selects everything.
    """
    if not tags:
        return list(snippets)

    by_id = {snippet.id: snippet for snippet in snippets}
    selected: set[str] = set()
    for snippet in snippets:
        if not snippet.tags & tags:
            continue
        current: Snippet | None = snippet
        while current is not None and current.id not in selected:
            selected.add(current.id)
            current = by_id.get(current.depends_on) if current.depends_on else None
    return [snippet for snippet in snippets if snippet.id in selected]


def skip_reason(snippet: Snippet, config: VerifierConfig) -> str | None:
    """Why a snippet must not reach the sandbox, or None if it can run."""
    if snippet.skip_reason is not None:
        return snippet.skip_reason
    missing = [need for need in snippet.needs if need not in config.available_dependencies]
    if missing:
        return f"needs external dependency: {', '.join(missing)}"
    if config.interpreter_for(snippet.lang) is None:
        return f"no interpreter configured for language {snippet.lang!r}"
    return None


async def _run_snippet(snippet: Snippet, runtime: SandboxRuntime, ctx: RunContext) -> None:
    interpreter = ctx.config.interpreter_for(snippet.lang) or []
    timeout = snippet.timeout or ctx.config.execution_timeout

    ctx.transition(snippet.id, SnippetState.RUNNING)
    try:
        result = await runtime.execute(snippet, interpreter, timeout)
    except anyio.get_cancelled_exc_class():
        ctx.transition(snippet.id, SnippetState.CANCELLED)
        ctx.collector.add(snippet.index, differ.cancelled(snippet, runtime.partial_result))
        raise
    except InfrastructureError:
        raise
    except Exception as e:
        logger.error(f"Snippet {snippet.id} could not be executed: {e}")
        ctx.transition(snippet.id, SnippetState.CRASHED)
        ctx.collector.add(snippet.index, differ.errored(snippet, e))
        return

    ctx.transition(snippet.id, state_for(result.status))
    ctx.collector.add(snippet.index, differ.judge(snippet, result))


def record_skips(unit: ExecutionUnit, ctx: RunContext) -> ExecutionUnit:
    """Record skipped snippets and return the unit reduced to what must run.

    Skips are settled before any task is spawned, so they never touch a
    sandbox and survive an early cancellation.
    """
    runnable: list[Snippet] = []
    for snippet in unit.snippets:
        reason = skip_reason(snippet, ctx.config)
        if reason is None:
            runnable.append(snippet)
            continue
        logger.debug(f"Skipping {snippet.id}: {reason}")
        ctx.collector.add(snippet.index, differ.skipped(snippet, reason))
    return ExecutionUnit(snippets=runnable, chain=unit.chain)


async def run_unit(unit: ExecutionUnit, ctx: RunContext) -> None:
    """Run the snippets of one unit in order on a single sandbox.

    Raises:
        InfrastructureError: If the sandbox cannot be created or started.
    """
    async with ctx.limiter:
        try:
            runtime = ctx.runtime_factory(ctx.config)
            await runtime.start()
        except InfrastructureError:
            raise
        except Exception as e:
            logger.error(f"Failed to create sandbox: {e}")
            raise InfrastructureError(f"Cannot create sandbox: {e}") from e

        try:
            for snippet in unit.snippets:
                await _run_snippet(snippet, runtime, ctx)
        finally:
            with anyio.CancelScope(shield=True):
                await runtime.terminate()


def find_exception(group: BaseExceptionGroup, kind: type[BaseException]) -> BaseException | None:
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            found = find_exception(exc, kind)
            if found is not None:
                return found
        elif isinstance(exc, kind):
            return exc
    return None


async def run_all(snippets: list[Snippet], ctx: RunContext) -> None:
    """Execute and judge every snippet, recording exactly one record each.

    Snippets still pending or running when the run is cancelled are recorded
    as Cancelled.

    Raises:
        InfrastructureError: If any sandbox could not be created. The rest of
            the run is cancelled.
    """
    ctx.collector.expect([snippet.index for snippet in snippets])
    units = [unit for unit in (record_skips(u, ctx) for u in build_units(snippets)) if unit.snippets]
    logger.info(
        f"Scheduling {len(snippets)} snippets in {len(units)} units",
        workers=ctx.limiter.total_tokens,
    )

    try:
        with ctx.cancel_scope:
            async with anyio.create_task_group() as tg:
                for unit in units:
                    tg.start_soon(run_unit, unit, ctx)
    except BaseExceptionGroup as group:
        infrastructure = find_exception(group, InfrastructureError)
        if infrastructure is not None:
            raise infrastructure from None
        raise

    if ctx.cancel_scope.cancel_called:
        logger.warning("Verification run cancelled")
        for snippet in snippets:
            if ctx.collector.has(snippet.index):
                continue
            if ctx.states.get(snippet.id, SnippetState.PENDING) == SnippetState.PENDING:
                ctx.transition(snippet.id, SnippetState.CANCELLED)
            ctx.collector.add(snippet.index, differ.cancelled(snippet))
