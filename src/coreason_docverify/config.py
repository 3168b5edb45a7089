# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_workers() -> int:
    return os.cpu_count() or 1


class VerifierConfig(BaseSettings):
    """
    Configuration for a verification run.
    """

    runtime: Literal["process", "docker"] = "process"

    # Interpreter used for snippets without a declared language
    interpreter: list[str] = Field(default=["raku"], min_length=1)
    # Interpreters for snippets declaring :lang<...>
    languages: dict[str, list[str]] = {"raku": ["raku"], "perl6": ["raku"]}
    program_suffix: str = ".raku"

    docker_image: str = "rakudo-star:latest"
    docker_mem_limit: str = "512m"
    docker_cpu_limit: float = 1.0

    execution_timeout: float = Field(default=10.0, gt=0)
    max_workers: int = Field(default_factory=_default_workers, ge=1)
    allow_network: bool = False

    available_dependencies: set[str] = set()
    tags: set[str] = set()
    inherit_env: list[str] = ["PATH", "LANG", "LC_ALL", "RAKULIB"]

    log_level: str = "INFO"
    log_file: Path | None = None

    model_config = SettingsConfigDict(
        env_prefix="COREASON_DOCVERIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def interpreter_for(self, lang: str | None) -> list[str] | None:
        """Returns the interpreter command for a language, None if unsupported."""
        if lang is None:
            return list(self.interpreter)
        command = self.languages.get(lang.lower())
        return list(command) if command else None
