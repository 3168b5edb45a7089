# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""
coreason-docverify
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import VerifierConfig
from .exceptions import DocVerifyError, InfrastructureError, ParseError
from .extractor import Extractor, extract_snippets
from .factory import SandboxFactory
from .models import ExecutionResult, Snippet, VerificationRecord, VerificationReport
from .runtime import SandboxRuntime
from .runtimes.docker import DockerRuntime
from .runtimes.process import ProcessRuntime
from .verifier import Verifier, VerifierAsync

__all__ = [
    "DocVerifyError",
    "DockerRuntime",
    "ExecutionResult",
    "Extractor",
    "InfrastructureError",
    "ParseError",
    "ProcessRuntime",
    "SandboxFactory",
    "SandboxRuntime",
    "Snippet",
    "VerificationRecord",
    "VerificationReport",
    "Verifier",
    "VerifierAsync",
    "VerifierConfig",
    "extract_snippets",
]
