# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Data models for verification records and the aggregate report."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from coreason_docverify.models.snippet import SourceLocation


class Outcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class FailureKind(str, Enum):
    MISMATCH = "mismatch"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"


class VerificationRecord(BaseModel):
    """Final judgement for one snippet.

    Attributes:
        snippet_id: Id of the judged snippet.
        location: Source location of the snippet.
        outcome: Passed, Failed, Skipped, Errored or Cancelled.
        failure: Why the snippet failed, only set for Failed outcomes.
        reason: Human-readable explanation for any non-passing outcome.
        expected: Declared expected output, if any.
        actual: Captured standard output, if the snippet ran.
        stderr: Captured standard error, if the snippet ran.
        duration: Wall-clock execution time in seconds.
    """

    model_config = ConfigDict(frozen=True)

    snippet_id: str
    location: SourceLocation
    outcome: Outcome
    failure: FailureKind | None = None
    reason: str | None = None
    expected: str | None = None
    actual: str | None = None
    stderr: str | None = None
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASSED


class DocumentReport(BaseModel):
    """Records for one documentation source, in source order."""

    document: str
    records: list[VerificationRecord] = Field(default_factory=list)
    error: str | None = None


class ReportSummary(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    errored: int = 0
    cancelled: int = 0
    document_errors: int = 0


class VerificationReport(BaseModel):
    """The aggregate report of a verification run."""

    documents: list[DocumentReport] = Field(default_factory=list)

    @property
    def records(self) -> list[VerificationRecord]:
        return [record for document in self.documents for record in document.records]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> ReportSummary:
        summary = ReportSummary(document_errors=sum(1 for d in self.documents if d.error))
        for record in self.records:
            summary.total += 1
            setattr(summary, record.outcome.value, getattr(summary, record.outcome.value) + 1)
        return summary

    @property
    def ok(self) -> bool:
        """True when every non-skipped snippet passed and every document parsed."""
        if any(document.error for document in self.documents):
            return False
        return all(record.outcome in (Outcome.PASSED, Outcome.SKIPPED) for record in self.records)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
