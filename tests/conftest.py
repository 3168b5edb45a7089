import sys
from collections.abc import Callable
from typing import Any, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from loguru import logger

from coreason_docverify.config import VerifierConfig
from coreason_docverify.extractor import extract_snippets
from coreason_docverify.models import ExecutionResult, ExecutionStatus, Snippet


@pytest.fixture(autouse=True)
def reset_logger() -> Generator[None, None, None]:
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


@pytest.fixture
def python_config() -> VerifierConfig:
    """Configuration that runs snippets with the current Python interpreter."""
    return VerifierConfig(
        interpreter=[sys.executable],
        languages={"python": [sys.executable]},
        program_suffix=".py",
        execution_timeout=5.0,
        max_workers=4,
        allow_network=True,
        inherit_env=["PATH", "SYSTEMROOT"],
    )


@pytest.fixture
def snippet_from() -> Callable[..., Snippet]:
    def _make(text: str, document: str = "doc.pod") -> Snippet:
        snippets = extract_snippets(text, document)
        assert len(snippets) == 1
        return snippets[0]

    return _make


def completed(stdout: str = "", stderr: str = "", exit_code: int = 0, duration: float = 0.01) -> ExecutionResult:
    return ExecutionResult.from_exit(stdout, stderr, exit_code, duration)


def timed_out(duration: float = 1.0) -> ExecutionResult:
    return ExecutionResult(
        stdout="",
        stderr="",
        exit_code=None,
        signal=9,
        status=ExecutionStatus.TIMED_OUT,
        timed_out=True,
        execution_duration=duration,
    )


@pytest.fixture
def mock_runtime() -> Any:
    mock = MagicMock()
    mock.start = AsyncMock()
    mock.terminate = AsyncMock()
    mock.execute = AsyncMock(return_value=completed("out\n"))
    mock.partial_result = None
    return mock
