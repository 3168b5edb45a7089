# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Aggregation of verification records into a source-ordered report."""

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Literal

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from coreason_docverify.models import DocumentReport, Outcome, VerificationRecord, VerificationReport

ReportFormat = Literal["json", "text"]


class ReportCollector:
    """Collects records from parallel workers and restores source order.

    Records arrive keyed by the snippet's global index, in any order. Each
    contiguous prefix of the expected indexes is released to ``on_record`` as
    soon as it is complete, so listeners observe source order. ``build``
    sorts everything, including records that were never released.
    """

    def __init__(self, on_record: Callable[[VerificationRecord], None] | None = None):
        self.on_record = on_record
        self._records: dict[int, VerificationRecord] = {}
        self._expected: list[int] = []
        self._cursor = 0
        self._documents: list[str] = []
        self._errors: dict[str, str] = {}

    def add_document(self, document: str, error: str | None = None) -> None:
        """Declare a document in input order, optionally with its parse error."""
        if document not in self._documents:
            self._documents.append(document)
        if error is not None:
            self._errors[document] = error

    def expect(self, indexes: list[int]) -> None:
        """Declare the indexes that will receive a record."""
        self._expected = sorted(set(self._expected) | set(indexes))

    def has(self, index: int) -> bool:
        return index in self._records

    def add(self, index: int, record: VerificationRecord) -> None:
        """Store a record.

        Raises:
            ValueError: If a record for this index already exists.
        """
        if index in self._records:
            raise ValueError(f"Duplicate record for {record.snippet_id}")
        self._records[index] = record
        self._flush()

    def _flush(self) -> None:
        while self._cursor < len(self._expected) and self._expected[self._cursor] in self._records:
            record = self._records[self._expected[self._cursor]]
            self._cursor += 1
            if self.on_record is not None:
                self.on_record(record)

    def build(self) -> VerificationReport:
        """Assemble the report, documents in input order, records in source order."""
        by_document: dict[str, DocumentReport] = {
            document: DocumentReport(document=document, error=self._errors.get(document))
            for document in self._documents
        }
        for index in sorted(self._records):
            record = self._records[index]
            document = record.location.document
            if document not in by_document:
                by_document[document] = DocumentReport(document=document)
            by_document[document].records.append(record)
        return VerificationReport(documents=list(by_document.values()))


_LABELS = {
    Outcome.PASSED: "PASS",
    Outcome.FAILED: "FAIL",
    Outcome.SKIPPED: "SKIP",
    Outcome.ERRORED: "ERROR",
    Outcome.CANCELLED: "CANCEL",
}


def format_record(record: VerificationRecord) -> str:
    line = f"{_LABELS[record.outcome]:<6} {record.location}"
    if record.reason:
        line += f"  {record.reason}"
    return line


def render(report: VerificationReport, fmt: ReportFormat = "json") -> str:
    """Render a report as JSON or as one line per record plus a summary."""
    if fmt == "json":
        return report.model_dump_json(indent=2) + "\n"

    lines: list[str] = []
    for document in report.documents:
        if document.error:
            lines.append(f"{'ERROR':<6} {document.document}  {document.error}")
        lines.extend(format_record(record) for record in document.records)
    summary = report.summary
    lines.append(
        f"{summary.total} snippets: {summary.passed} passed, {summary.failed} failed, "
        f"{summary.skipped} skipped, {summary.errored} errored, {summary.cancelled} cancelled; "
        f"{summary.document_errors} document errors"
    )
    return "\n".join(lines) + "\n"


async def write_report(report: VerificationReport, output: Path | None = None, fmt: ReportFormat = "json") -> None:
    """Write the rendered report to a file, or to stdout when ``output`` is None."""
    content = render(report, fmt)
    if output is None:
        sys.stdout.write(content)
        sys.stdout.flush()
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(output, "w", encoding="utf-8") as f:
        await f.write(content)
    logger.info(f"Report written to {output}")
