# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

from coreason_docverify.config import VerifierConfig
from coreason_docverify.runtime import SandboxRuntime
from coreason_docverify.runtimes.docker import DockerRuntime
from coreason_docverify.runtimes.process import ProcessRuntime


class SandboxFactory:
    """
    Factory to create SandboxRuntime instances based on configuration.
    """

    @staticmethod
    def get_runtime(config: VerifierConfig) -> SandboxRuntime:
        """
        Returns a new, not yet started instance of the configured SandboxRuntime.
        """
        if config.runtime == "process":
            return ProcessRuntime(
                program_suffix=config.program_suffix,
                allow_network=config.allow_network,
                inherit_env=config.inherit_env,
            )
        elif config.runtime == "docker":
            return DockerRuntime(
                image=config.docker_image,
                cpu_limit=config.docker_cpu_limit,
                mem_limit=config.docker_mem_limit,
                allow_network=config.allow_network,
                program_suffix=config.program_suffix,
            )
        else:
            # This should be unreachable due to Pydantic validation, but for safety:
            raise ValueError(f"Unknown runtime: {config.runtime}")  # pragma: no cover
