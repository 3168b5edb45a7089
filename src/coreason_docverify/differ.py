# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Comparison of captured output against declared expectations."""

import re

from coreason_docverify.exceptions import (
    ComparisonMismatch,
    DocVerifyError,
    ExecutionCrash,
    ExecutionTimeout,
)
from coreason_docverify.models import (
    ExecutionResult,
    ExecutionStatus,
    FailureKind,
    Outcome,
    OutputMode,
    Snippet,
    VerificationRecord,
)

WILDCARD = "..."
_DIGITS = re.compile(r"\d+")


def normalize(text: str) -> str:
    """Drop line-ending differences, trailing whitespace and trailing blank lines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def matches_pattern(pattern: str, actual: str) -> bool:
    """Match ``actual`` against ``pattern`` where ``...`` stands for any text.

    Both sides are expected to be normalized already. The whole output must
    match.
    """
    regex = ".*?".join(re.escape(piece) for piece in pattern.split(WILDCARD))
    return re.fullmatch(regex, actual, flags=re.DOTALL) is not None


def _relax(text: str) -> str:
    return _DIGITS.sub("0", text)


def outputs_match(snippet: Snippet, actual: str) -> bool:
    """Compare captured stdout with the snippet's expected output."""
    if snippet.expected is None:
        return True
    expected = normalize(snippet.expected.text)
    actual = normalize(actual)
    if snippet.nondeterministic:
        expected, actual = _relax(expected), _relax(actual)
    if snippet.expected.mode == OutputMode.PATTERN:
        return matches_pattern(expected, actual)
    return expected == actual


def _execution_failure(result: ExecutionResult) -> tuple[FailureKind, DocVerifyError] | None:
    if result.status == ExecutionStatus.TIMED_OUT:
        return FailureKind.TIMED_OUT, ExecutionTimeout(f"timed out after {result.execution_duration:.2f}s")
    if result.status == ExecutionStatus.CRASHED:
        if result.signal is not None:
            return FailureKind.CRASHED, ExecutionCrash(f"killed by signal {result.signal}")
        return FailureKind.CRASHED, ExecutionCrash(f"exited with status {result.exit_code}")
    return None


def judge(snippet: Snippet, result: ExecutionResult) -> VerificationRecord:
    """Decide the verification outcome for an executed snippet.

    Args:
        snippet: The executed snippet.
        result: Its execution result.

    Returns:
        VerificationRecord: Passed, Failed or Cancelled.
    """
    expected = snippet.expected.text if snippet.expected else None
    common = {
        "snippet_id": snippet.id,
        "location": snippet.location,
        "expected": expected,
        "actual": result.stdout,
        "stderr": result.stderr,
        "duration": result.execution_duration,
    }

    if result.status == ExecutionStatus.CANCELLED:
        return VerificationRecord(outcome=Outcome.CANCELLED, reason="run cancelled", **common)

    failure = _execution_failure(result)
    if failure is not None:
        kind, error = failure
        return VerificationRecord(outcome=Outcome.FAILED, failure=kind, reason=str(error), **common)

    if outputs_match(snippet, result.stdout):
        return VerificationRecord(outcome=Outcome.PASSED, **common)

    mismatch = ComparisonMismatch(normalize(expected or ""), normalize(result.stdout))
    return VerificationRecord(outcome=Outcome.FAILED, failure=FailureKind.MISMATCH, reason=str(mismatch), **common)


def skipped(snippet: Snippet, reason: str) -> VerificationRecord:
    return VerificationRecord(
        snippet_id=snippet.id,
        location=snippet.location,
        outcome=Outcome.SKIPPED,
        reason=reason,
        expected=snippet.expected.text if snippet.expected else None,
    )


def errored(snippet: Snippet, cause: BaseException) -> VerificationRecord:
    return VerificationRecord(
        snippet_id=snippet.id,
        location=snippet.location,
        outcome=Outcome.ERRORED,
        reason=f"{type(cause).__name__}: {cause}",
        expected=snippet.expected.text if snippet.expected else None,
    )


def cancelled(snippet: Snippet, partial: ExecutionResult | None = None) -> VerificationRecord:
    if partial is not None:
        return judge(snippet, partial)
    return VerificationRecord(
        snippet_id=snippet.id,
        location=snippet.location,
        outcome=Outcome.CANCELLED,
        reason="run cancelled",
        expected=snippet.expected.text if snippet.expected else None,
    )
