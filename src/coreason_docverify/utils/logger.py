# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

import sys
from pathlib import Path

from loguru import logger

__all__ = ["configure_logging", "logger"]

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure loguru sinks for the verifier.

    Replaces any existing sinks with a stderr sink and, when ``log_file`` is
    given, a JSON-serialized file sink.

    Args:
        level: Minimum level for all sinks.
        log_file: Optional path of a JSON log file. Parent directories are created.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_FORMAT)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level.upper(),
            serialize=True,
            enqueue=True,
            rotation="10 MB",
            retention="7 days",
        )
