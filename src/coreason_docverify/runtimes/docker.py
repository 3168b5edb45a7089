# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

import asyncio
import io
import tarfile
import time
from typing import Any

import anyio
import docker
from docker.errors import DockerException
from docker.models.containers import Container
from loguru import logger

from coreason_docverify.exceptions import InfrastructureError
from coreason_docverify.models import ExecutionResult, ExecutionStatus, Snippet
from coreason_docverify.runtime import SandboxRuntime


class DockerRuntime(SandboxRuntime):
    """
    Docker-based implementation of the SandboxRuntime.

    One container per unit. The container has no network unless explicitly
    allowed, and is killed (and auto-removed) on terminate.
    """

    def __init__(
        self,
        image: str = "rakudo-star:latest",
        cpu_limit: float = 1.0,
        mem_limit: str = "512m",
        allow_network: bool = False,
        program_suffix: str = ".raku",
    ):
        self.client: docker.DockerClient | None = None
        self.image = image
        self.cpu_limit = cpu_limit
        self.mem_limit = mem_limit
        self.allow_network = allow_network
        self.program_suffix = program_suffix
        self.container: Container | None = None
        self.partial_result: ExecutionResult | None = None
        self.work_dir = "/work"
        self._count = 0

    async def start(self) -> None:
        """
        Boot the environment.
        """
        logger.info(f"Starting Docker sandbox with image {self.image}")
        options: dict[str, Any] = {
            "command": "tail -f /dev/null",
            "detach": True,
            "mem_limit": self.mem_limit,
            "nano_cpus": int(self.cpu_limit * 1e9),
            "remove": True,
            "working_dir": self.work_dir,
        }
        if not self.allow_network:
            options["network_mode"] = "none"
        try:
            self.client = await asyncio.to_thread(docker.from_env)
            self.container = await asyncio.to_thread(self.client.containers.run, self.image, **options)
            # Ensure working directory exists
            await asyncio.to_thread(self.container.exec_run, f"mkdir -p {self.work_dir}")

            logger.info(f"Docker sandbox started: {self.container.short_id}")
        except DockerException as e:
            logger.error(f"Failed to start Docker sandbox: {e}")
            raise InfrastructureError(f"Cannot start Docker sandbox: {e}") from e

    def _archive(self, filename: str, content: str) -> bytes:
        data = content.encode("utf-8")
        tar_stream = io.BytesIO()
        with tarfile.open(fileobj=tar_stream, mode="w") as tar:
            info = tarfile.TarInfo(name=filename)
            info.size = len(data)
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))
        return tar_stream.getvalue()

    async def execute(self, snippet: Snippet, interpreter: list[str], timeout: float) -> ExecutionResult:
        """
        Run snippet and capture output.
        """
        if not self.container:
            raise RuntimeError("Sandbox not started")

        self.partial_result = None
        self._count += 1
        filename = f"snippet-{self._count}{self.program_suffix}"
        archive = self._archive(filename, snippet.program)
        await asyncio.to_thread(self.container.put_archive, path=self.work_dir, data=archive)
        cmd = [*interpreter, f"{self.work_dir}/{filename}"]

        logger.info(f"Executing snippet {snippet.id} in sandbox {self.container.short_id}")

        start_time = time.monotonic()
        try:
            # Offload blocking Docker call to thread and enforce timeout
            exit_code, output = await asyncio.wait_for(
                asyncio.to_thread(self.container.exec_run, cmd, demux=True, workdir=self.work_dir),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Execution timed out ({timeout}s). "
                f"Restarting container {self.container.short_id} to cleanup process."
            )
            await asyncio.to_thread(self.container.restart)
            return ExecutionResult(
                stdout="",
                stderr="",
                exit_code=None,
                status=ExecutionStatus.TIMED_OUT,
                timed_out=True,
                execution_duration=time.monotonic() - start_time,
            )
        except anyio.get_cancelled_exc_class():
            self.partial_result = ExecutionResult(
                stdout="",
                stderr="",
                exit_code=None,
                status=ExecutionStatus.CANCELLED,
                execution_duration=time.monotonic() - start_time,
            )
            raise
        except DockerException as e:
            logger.error(f"Execution failed: {e}")
            raise

        duration = time.monotonic() - start_time

        stdout_bytes, stderr_bytes = output if output else (None, None)
        stdout_str = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        stderr_str = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

        # Shells inside the container report signal deaths as 128 + signum
        if exit_code is not None and exit_code > 128:
            return ExecutionResult(
                stdout=stdout_str,
                stderr=stderr_str,
                exit_code=exit_code,
                signal=exit_code - 128,
                status=ExecutionStatus.CRASHED,
                execution_duration=duration,
            )
        return ExecutionResult.from_exit(stdout_str, stderr_str, exit_code or 0, duration)

    async def terminate(self) -> None:
        """
        Kill and cleanup the sandbox environment.
        """
        if self.container:
            logger.info(f"Terminating Docker sandbox: {self.container.short_id}")
            try:
                await asyncio.to_thread(self.container.kill)
            except DockerException as e:
                logger.warning(f"Error terminating Docker sandbox: {e}")
            finally:
                self.container = None
        else:
            logger.warning("Attempted to terminate non-existent Docker sandbox")
