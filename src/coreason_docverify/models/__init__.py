# src/coreason_docverify/models/__init__.py

"""
Data models for the documentation verifier.
"""

from .execution import ExecutionResult, ExecutionStatus
from .report import DocumentReport, FailureKind, Outcome, ReportSummary, VerificationRecord, VerificationReport
from .snippet import (
    Annotation,
    AnnotationKind,
    ExpectedOutput,
    OutputMode,
    PreambleBlock,
    Snippet,
    SourceLocation,
)

__all__ = [
    "Annotation",
    "AnnotationKind",
    "DocumentReport",
    "ExecutionResult",
    "ExecutionStatus",
    "ExpectedOutput",
    "FailureKind",
    "Outcome",
    "OutputMode",
    "PreambleBlock",
    "ReportSummary",
    "Snippet",
    "SourceLocation",
    "VerificationRecord",
    "VerificationReport",
]
