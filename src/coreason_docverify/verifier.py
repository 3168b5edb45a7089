# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

import signal
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

import anyio
from anyio import from_thread, lowlevel
from loguru import logger

from coreason_docverify import scheduler
from coreason_docverify.config import VerifierConfig
from coreason_docverify.context import RunContext
from coreason_docverify.exceptions import InfrastructureError, ParseError
from coreason_docverify.extractor import Extractor, extract_snippets
from coreason_docverify.models import Outcome, Snippet, VerificationRecord, VerificationReport
from coreason_docverify.reporter import ReportCollector, format_record
from coreason_docverify.runtime import SandboxRuntime


def _log_record(record: VerificationRecord) -> None:
    if record.outcome in (Outcome.PASSED, Outcome.SKIPPED):
        logger.info(format_record(record))
    else:
        logger.warning(format_record(record))


class VerifierAsync:
    """Async-native documentation verifier (The Core).

    Extracts snippets, runs them through the scheduler and builds the
    report. Each call to ``verify`` is an independent run with its own
    ``RunContext``.
    """

    def __init__(
        self,
        config: VerifierConfig | None = None,
        runtime_factory: Callable[[VerifierConfig], SandboxRuntime] | None = None,
        on_record: Callable[[VerificationRecord], None] | None = _log_record,
    ):
        """Initializes the VerifierAsync service.

        Args:
            config: Configuration for the run.
            runtime_factory: Optional override of ``SandboxFactory.get_runtime``.
            on_record: Called once per record, in source order, as results settle.
        """
        self.config = config or VerifierConfig()
        self.runtime_factory = runtime_factory
        self.on_record = on_record
        self.extractor = Extractor()
        self._context: RunContext | None = None
        self._cancel_requested = False
        self._loop_token: object | None = None
        self._loop_thread: int | None = None

    async def extract(self, paths: Sequence[Path], collector: ReportCollector | None = None) -> list[Snippet]:
        """Extract snippets from every path, in input order.

        Parse errors are fatal to their document only. They are logged and,
        when a collector is given, attached to the document's report entry.
        """
        snippets: list[Snippet] = []
        for path in dict.fromkeys(paths):
            try:
                found = await self.extractor.extract_file(path, start_index=len(snippets))
            except ParseError as e:
                logger.error(f"Failed to parse {path}: {e}")
                if collector is not None:
                    collector.add_document(str(path), error=str(e))
                continue
            if collector is not None:
                collector.add_document(str(path))
            snippets.extend(found)
        return snippets

    async def _run(self, snippets: list[Snippet], collector: ReportCollector, handle_signals: bool) -> None:
        ctx = RunContext.create(self.config, collector, self.runtime_factory)
        self._loop_token = lowlevel.current_token()
        self._loop_thread = threading.get_ident()
        self._context = ctx
        if self._cancel_requested:
            ctx.cancel_scope.cancel()

        selected = scheduler.select(snippets, self.config.tags)
        try:
            if not handle_signals:
                await scheduler.run_all(selected, ctx)
                return
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._watch_signals)
                await scheduler.run_all(selected, ctx)
                tg.cancel_scope.cancel()
        except BaseExceptionGroup as group:
            infrastructure = scheduler.find_exception(group, InfrastructureError)
            if infrastructure is not None:
                raise infrastructure from None
            raise
        finally:
            self._context = None
            self._loop_token = None
            self._loop_thread = None
            self._cancel_requested = False

    async def _watch_signals(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                logger.warning(f"Received {signal.Signals(signum).name}, cancelling run")
                self.cancel()

    async def verify(self, paths: Sequence[Path], handle_signals: bool = False) -> VerificationReport:
        """Verify every snippet found in ``paths``.

        Args:
            paths: Documentation sources.
            handle_signals: Cancel the run on SIGINT/SIGTERM instead of dying.

        Returns:
            VerificationReport: One record per selected snippet, in source order.

        Raises:
            InfrastructureError: If a sandbox could not be created.
        """
        collector = ReportCollector(on_record=self.on_record)
        snippets = await self.extract(paths, collector)
        await self._run(snippets, collector, handle_signals)
        report = collector.build()
        summary = report.summary
        logger.info(
            "Verification finished",
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return report

    async def verify_text(self, text: str, document: str = "<string>") -> VerificationReport:
        """Verify snippets from an in-memory documentation source.

        Raises:
            ParseError: If the markup is malformed.
            InfrastructureError: If a sandbox could not be created.
        """
        collector = ReportCollector(on_record=self.on_record)
        snippets = extract_snippets(text, document)
        collector.add_document(document)
        await self._run(snippets, collector, handle_signals=False)
        return collector.build()

    def cancel(self) -> None:
        """Cancel the current run. Outstanding snippets are recorded as Cancelled.

        Safe to call from the event loop running the verification or from
        any other thread.
        """
        ctx, token = self._context, self._loop_token
        if ctx is None or token is None:
            self._cancel_requested = True
            return
        if threading.get_ident() == self._loop_thread:
            ctx.cancel_scope.cancel()
            return
        logger.debug("Cancelling run from another thread")
        from_thread.run_sync(ctx.cancel_scope.cancel, token=token)  # type: ignore[arg-type]


class Verifier:
    """Sync Facade for VerifierAsync (The Facade).

    Wraps VerifierAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: VerifierConfig | None = None,
        runtime_factory: Callable[[VerifierConfig], SandboxRuntime] | None = None,
    ):
        """Initializes the Verifier facade.

        Args:
            config: Configuration for the run.
            runtime_factory: Optional override of the sandbox factory.
        """
        self._async = VerifierAsync(config, runtime_factory)

    @property
    def config(self) -> VerifierConfig:
        return self._async.config

    def verify(self, paths: Sequence[Path], handle_signals: bool = False) -> VerificationReport:
        """Verifies documentation sources synchronously."""
        return anyio.run(self._async.verify, paths, handle_signals)

    def verify_text(self, text: str, document: str = "<string>") -> VerificationReport:
        """Verifies an in-memory documentation source synchronously."""
        return anyio.run(self._async.verify_text, text, document)

    def cancel(self) -> None:
        self._async.cancel()
