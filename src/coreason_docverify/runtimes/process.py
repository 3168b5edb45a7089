# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

import functools
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream, Process
from loguru import logger

from coreason_docverify.exceptions import InfrastructureError
from coreason_docverify.models import ExecutionResult, ExecutionStatus, Snippet
from coreason_docverify.runtime import SandboxRuntime

_UNSHARE_ARGS = ["--net", "--map-root-user"]


@functools.cache
def network_isolation_prefix() -> tuple[str, ...]:
    """Command prefix that runs a program without network access.

    Uses an unprivileged network namespace. Returns an empty prefix when the
    platform does not support it.
    """
    if not sys.platform.startswith("linux"):
        return ()
    unshare = shutil.which("unshare")
    if unshare is None:
        return ()
    try:
        probe = subprocess.run(
            [unshare, *_UNSHARE_ARGS, "true"],
            capture_output=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return ()
    if probe.returncode != 0:
        return ()
    return (unshare, *_UNSHARE_ARGS)


async def _drain(stream: ByteReceiveStream | None, sink: list[bytes]) -> None:
    if stream is None:
        return
    async for chunk in stream:
        sink.append(chunk)


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


class ProcessRuntime(SandboxRuntime):
    """Local subprocess implementation of the SandboxRuntime.

    Each unit gets a fresh temporary working directory, a scrubbed
    environment, a closed stdin and its own process group so a timeout kills
    everything the snippet spawned. Background processes still alive when
    the snippet exits are killed with it, and the timeout bounds output
    collection as well as the process itself.
    """

    def __init__(
        self,
        program_suffix: str = ".raku",
        allow_network: bool = False,
        inherit_env: list[str] | None = None,
    ):
        """Initializes the ProcessRuntime.

        Args:
            program_suffix: File suffix for the program written to disk.
            allow_network: When False, snippets run in a network namespace if available.
            inherit_env: Names of environment variables passed through to snippets.
        """
        self.program_suffix = program_suffix
        self.allow_network = allow_network
        self.inherit_env = inherit_env if inherit_env is not None else ["PATH", "LANG", "LC_ALL"]
        self.workspace: Path | None = None
        self.partial_result: ExecutionResult | None = None
        self._prefix: tuple[str, ...] = ()
        self._count = 0

    async def start(self) -> None:
        """
        Boot the environment.
        """
        try:
            self.workspace = Path(tempfile.mkdtemp(prefix="docverify-"))
            (self.workspace / ".tmp").mkdir()
        except OSError as e:
            logger.error(f"Failed to create sandbox workspace: {e}")
            raise InfrastructureError(f"Cannot create sandbox workspace: {e}") from e

        if not self.allow_network:
            self._prefix = await anyio.to_thread.run_sync(network_isolation_prefix)
            if not self._prefix:
                logger.warning("Network isolation unavailable on this host; snippets can reach the network")

        logger.debug(f"Process sandbox started in {self.workspace}")

    def _environment(self, workspace: Path) -> dict[str, str]:
        env = {name: os.environ[name] for name in self.inherit_env if name in os.environ}
        env["HOME"] = str(workspace)
        env["TMPDIR"] = str(workspace / ".tmp")
        return env

    @staticmethod
    def _kill(process: Process) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:  # pragma: no cover
                process.kill()
        except ProcessLookupError:
            pass

    async def execute(self, snippet: Snippet, interpreter: list[str], timeout: float) -> ExecutionResult:
        """
        Run snippet and capture output.
        """
        if self.workspace is None:
            raise RuntimeError("Sandbox not started")

        self.partial_result = None
        self._count += 1
        program = self.workspace / f"snippet-{self._count}{self.program_suffix}"
        program.write_text(snippet.program, encoding="utf-8")
        command = [*self._prefix, *interpreter, str(program)]

        logger.info("Executing snippet", snippet_id=snippet.id, interpreter=interpreter[0], timeout=timeout)

        stdout: list[bytes] = []
        stderr: list[bytes] = []
        timed_out = False
        start_time = time.monotonic()
        process = await anyio.open_process(
            command,
            stdin=subprocess.DEVNULL,
            cwd=self.workspace,
            env=self._environment(self.workspace),
            start_new_session=True,
        )
        try:
            with anyio.move_on_after(timeout) as scope:
                async with anyio.create_task_group() as tg:
                    tg.start_soon(_drain, process.stdout, stdout)
                    tg.start_soon(_drain, process.stderr, stderr)
                    await process.wait()
                    # Leftover members of the group would hold the pipes open.
                    self._kill(process)
            if scope.cancelled_caught:
                timed_out = True
                logger.warning(f"Snippet {snippet.id} exceeded {timeout}s; killing process group {process.pid}")
                self._kill(process)
                await process.wait()
        except anyio.get_cancelled_exc_class():
            self._kill(process)
            self.partial_result = ExecutionResult(
                stdout=_decode(stdout),
                stderr=_decode(stderr),
                exit_code=None,
                status=ExecutionStatus.CANCELLED,
                execution_duration=time.monotonic() - start_time,
            )
            raise
        finally:
            with anyio.CancelScope(shield=True):
                await process.aclose()

        duration = time.monotonic() - start_time
        if timed_out:
            return ExecutionResult(
                stdout=_decode(stdout),
                stderr=_decode(stderr),
                exit_code=None,
                signal=signal.SIGKILL.value,
                status=ExecutionStatus.TIMED_OUT,
                timed_out=True,
                execution_duration=duration,
            )

        returncode = process.returncode if process.returncode is not None else -signal.SIGKILL.value
        return ExecutionResult.from_exit(_decode(stdout), _decode(stderr), returncode, duration)

    async def terminate(self) -> None:
        """
        Kill and cleanup the sandbox environment.
        """
        if self.workspace is None:
            logger.warning("Attempted to terminate non-existent process sandbox")
            return
        logger.debug(f"Removing sandbox workspace {self.workspace}")
        await anyio.to_thread.run_sync(functools.partial(shutil.rmtree, self.workspace, ignore_errors=True))
        self.workspace = None
