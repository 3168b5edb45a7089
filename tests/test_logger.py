import json
from pathlib import Path

from coreason_docverify.utils.logger import configure_logging, logger


def test_configure_logging_stderr_only() -> None:
    configure_logging("debug")
    # Note: Accessing internal attributes like this is for testing purposes.
    handlers = list(logger._core.handlers.values())  # type: ignore[attr-defined]
    assert len(handlers) == 1
    assert handlers[0].levelno == 10


def test_configure_logging_writes_json_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "docverify.log"

    configure_logging("INFO", log_file)
    logger.info("Verification started", documents=2)
    logger.debug("Not written at INFO")
    logger.remove()  # flushes the enqueued file sink

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["record"]["message"] == "Verification started"
    assert entry["record"]["extra"]["documents"] == 2


def test_configure_logging_replaces_sinks(tmp_path: Path) -> None:
    configure_logging("INFO", tmp_path / "a.log")
    configure_logging("INFO")
    assert len(logger._core.handlers) == 1  # type: ignore[attr-defined]
