import asyncio
import io
import tarfile
import time
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException

from coreason_docverify.exceptions import InfrastructureError
from coreason_docverify.models import ExecutionStatus, Snippet
from coreason_docverify.runtimes.docker import DockerRuntime

CODE = "=begin code\nsay 1+1;\n=end code\n"


@pytest.fixture
def mock_docker_client() -> Any:
    with patch("coreason_docverify.runtimes.docker.docker.from_env") as mock:
        yield mock


@pytest.fixture
def docker_runtime(mock_docker_client: Any) -> Any:
    runtime = DockerRuntime()
    # Mock a started container
    runtime.container = MagicMock()
    runtime.container.short_id = "test_id"
    return runtime


@pytest.mark.asyncio
async def test_start_isolates_network_by_default(mock_docker_client: Any) -> None:
    runtime = DockerRuntime(image="rakudo-star:2024.01", cpu_limit=0.5, mem_limit="256m")

    await runtime.start()

    mock_docker_client.return_value.containers.run.assert_called_once_with(
        "rakudo-star:2024.01",
        command="tail -f /dev/null",
        detach=True,
        mem_limit="256m",
        nano_cpus=500_000_000,
        remove=True,
        working_dir="/work",
        network_mode="none",
    )
    assert runtime.container is mock_docker_client.return_value.containers.run.return_value


@pytest.mark.asyncio
async def test_start_with_network_allowed(mock_docker_client: Any) -> None:
    runtime = DockerRuntime(allow_network=True)

    await runtime.start()

    _, kwargs = mock_docker_client.return_value.containers.run.call_args
    assert "network_mode" not in kwargs


@pytest.mark.asyncio
async def test_start_failure_is_infrastructure_error(mock_docker_client: Any) -> None:
    mock_docker_client.side_effect = DockerException("daemon not running")

    with pytest.raises(InfrastructureError, match="Cannot start Docker sandbox: daemon not running"):
        await DockerRuntime().start()


@pytest.mark.asyncio
async def test_slow_container_start_leaves_event_loop_free(mock_docker_client: Any) -> None:
    finished: list[str] = []

    def slow_run(*args: Any, **kwargs: Any) -> Any:
        time.sleep(0.3)
        return MagicMock()

    mock_docker_client.return_value.containers.run.side_effect = slow_run

    async def start() -> None:
        await DockerRuntime().start()
        finished.append("start")

    async def ticker() -> None:
        for _ in range(5):
            await asyncio.sleep(0.02)
        finished.append("ticker")

    await asyncio.gather(start(), ticker())

    assert finished == ["ticker", "start"]


@pytest.mark.asyncio
async def test_execute_success(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    docker_runtime.container.exec_run.return_value = (0, (b"2\n", b""))

    result = await docker_runtime.execute(snippet_from(CODE), ["raku"], 5.0)

    assert result.status == ExecutionStatus.COMPLETED
    assert result.exit_code == 0
    assert result.stdout == "2\n"
    assert result.stderr == ""

    args, kwargs = docker_runtime.container.exec_run.call_args
    assert args[0] == ["raku", "/work/snippet-1.raku"]
    assert kwargs["demux"] is True
    assert kwargs["workdir"] == "/work"


@pytest.mark.asyncio
async def test_execute_uploads_program(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    docker_runtime.container.exec_run.return_value = (0, (b"", b""))

    await docker_runtime.execute(snippet_from(CODE), ["raku"], 5.0)

    kwargs = docker_runtime.container.put_archive.call_args.kwargs
    assert kwargs["path"] == "/work"
    with tarfile.open(fileobj=io.BytesIO(kwargs["data"])) as tar:
        member = tar.extractfile("snippet-1.raku")
        assert member is not None
        assert member.read() == b"say 1+1;\n"


@pytest.mark.asyncio
async def test_execute_stderr_and_exit_code(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    docker_runtime.container.exec_run.return_value = (1, (None, b"Died"))

    result = await docker_runtime.execute(snippet_from(CODE), ["raku"], 5.0)

    assert result.status == ExecutionStatus.CRASHED
    assert result.exit_code == 1
    assert result.stdout == ""
    assert result.stderr == "Died"


@pytest.mark.asyncio
async def test_execute_signal_exit(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    docker_runtime.container.exec_run.return_value = (137, None)

    result = await docker_runtime.execute(snippet_from(CODE), ["raku"], 5.0)

    assert result.status == ExecutionStatus.CRASHED
    assert result.signal == 9


@pytest.mark.asyncio
async def test_execute_timeout_restarts_container(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    def slow_exec(*args: Any, **kwargs: Any) -> Any:
        time.sleep(0.5)
        return (0, (b"", b""))

    docker_runtime.container.exec_run.side_effect = slow_exec

    result = await docker_runtime.execute(snippet_from(CODE), ["raku"], 0.05)

    assert result.status == ExecutionStatus.TIMED_OUT
    assert result.timed_out
    docker_runtime.container.restart.assert_called_once()


@pytest.mark.asyncio
async def test_execute_docker_error_propagates(docker_runtime: Any, snippet_from: Callable[..., Snippet]) -> None:
    docker_runtime.container.exec_run.side_effect = APIError("container gone")

    with pytest.raises(APIError):
        await docker_runtime.execute(snippet_from(CODE), ["raku"], 5.0)


@pytest.mark.asyncio
async def test_execute_no_container(mock_docker_client: Any, snippet_from: Callable[..., Snippet]) -> None:
    with pytest.raises(RuntimeError, match="Sandbox not started"):
        await DockerRuntime().execute(snippet_from(CODE), ["raku"], 5.0)


@pytest.mark.asyncio
async def test_terminate_kills_container(docker_runtime: Any) -> None:
    container = docker_runtime.container

    await docker_runtime.terminate()

    container.kill.assert_called_once()
    assert docker_runtime.container is None


@pytest.mark.asyncio
async def test_terminate_swallows_kill_errors(docker_runtime: Any) -> None:
    docker_runtime.container.kill.side_effect = APIError("already dead")

    with patch("coreason_docverify.runtimes.docker.logger") as mock_logger:
        await docker_runtime.terminate()

    mock_logger.warning.assert_called_once()
    assert docker_runtime.container is None


@pytest.mark.asyncio
async def test_terminate_without_container(mock_docker_client: Any) -> None:
    with patch("coreason_docverify.runtimes.docker.logger") as mock_logger:
        await DockerRuntime().terminate()
    mock_logger.warning.assert_called_once_with("Attempted to terminate non-existent Docker sandbox")
