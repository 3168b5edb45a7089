# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Error taxonomy for the documentation verifier.

Only ``ParseError`` (per document) and ``InfrastructureError`` (per run) are
raised past component boundaries. The per-snippet errors name the failure
categories recorded in the report.
"""


class DocVerifyError(Exception):
    """Base class for all verifier errors."""


class ParseError(DocVerifyError):
    """Malformed documentation markup. Fatal to one document only."""

    def __init__(self, document: str, line: int, message: str):
        self.document = document
        self.line = line
        self.message = message
        super().__init__(f"{document}:{line}: {message}")


class InfrastructureError(DocVerifyError):
    """The sandbox could not be created. Fatal to the whole run."""


class ExecutionTimeout(DocVerifyError):
    """A snippet exceeded its time budget."""


class ExecutionCrash(DocVerifyError):
    """A snippet exited with a non-zero status or was killed by a signal."""


class ComparisonMismatch(DocVerifyError):
    """Captured output differs from the declared expectation."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f'mismatch: expected "{expected}", got "{actual}"')
