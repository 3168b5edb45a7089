import json
from pathlib import Path

import pytest

from coreason_docverify.models import FailureKind, Outcome, SourceLocation, VerificationRecord
from coreason_docverify.reporter import ReportCollector, format_record, render, write_report


def _record(document: str, line: int, outcome: Outcome = Outcome.PASSED, reason: str | None = None) -> VerificationRecord:
    return VerificationRecord(
        snippet_id=f"{document}:{line}",
        location=SourceLocation(document=document, start_line=line, end_line=line + 2),
        outcome=outcome,
        reason=reason,
    )


def test_records_are_released_in_source_order() -> None:
    released: list[str] = []
    collector = ReportCollector(on_record=lambda record: released.append(record.snippet_id))
    collector.expect([0, 1, 2])

    collector.add(2, _record("a.pod", 30))
    assert released == []
    collector.add(1, _record("a.pod", 20))
    assert released == []
    collector.add(0, _record("a.pod", 10))
    assert released == ["a.pod:10", "a.pod:20", "a.pod:30"]


def test_expect_can_be_extended() -> None:
    released: list[str] = []
    collector = ReportCollector(on_record=lambda record: released.append(record.snippet_id))
    collector.expect([0])
    collector.add(0, _record("a.pod", 1))
    collector.expect([3, 1])
    collector.add(3, _record("b.pod", 1))
    collector.add(1, _record("a.pod", 5))
    assert released == ["a.pod:1", "a.pod:5", "b.pod:1"]


def test_duplicate_record_is_rejected() -> None:
    collector = ReportCollector()
    collector.add(0, _record("a.pod", 1))
    assert collector.has(0)
    with pytest.raises(ValueError, match="Duplicate record for a.pod:1"):
        collector.add(0, _record("a.pod", 1))


def test_build_groups_by_document_in_input_order() -> None:
    collector = ReportCollector()
    collector.add_document("b.pod")
    collector.add_document("a.pod", error="a.pod:4: unterminated =begin code block")
    collector.add_document("b.pod")
    collector.add(1, _record("b.pod", 9))
    collector.add(0, _record("b.pod", 3))

    report = collector.build()

    assert [d.document for d in report.documents] == ["b.pod", "a.pod"]
    assert [r.snippet_id for r in report.documents[0].records] == ["b.pod:3", "b.pod:9"]
    assert report.documents[1].records == []
    assert report.documents[1].error is not None
    assert report.exit_code == 1


def test_format_record() -> None:
    record = _record("a.pod", 7, Outcome.FAILED, 'mismatch: expected "3", got "2"')
    assert format_record(record) == 'FAIL   a.pod:7  mismatch: expected "3", got "2"'
    assert format_record(_record("a.pod", 1)) == "PASS   a.pod:1"


def test_render_json() -> None:
    collector = ReportCollector()
    collector.add_document("a.pod")
    collector.add(
        0,
        VerificationRecord(
            snippet_id="a.pod:1",
            location=SourceLocation(document="a.pod", start_line=1, end_line=3),
            outcome=Outcome.FAILED,
            failure=FailureKind.TIMED_OUT,
            reason="timed out after 1.00s",
        ),
    )
    data = json.loads(render(collector.build(), "json"))
    assert data["summary"]["failed"] == 1
    assert data["documents"][0]["records"][0]["failure"] == "timed_out"


def test_render_text() -> None:
    collector = ReportCollector()
    collector.add_document("a.pod")
    collector.add_document("bad.pod", error="bad.pod:2: boom")
    collector.add(0, _record("a.pod", 1))
    collector.add(1, _record("a.pod", 5, Outcome.SKIPPED, "marked :skip"))

    text = render(collector.build(), "text")

    assert text.splitlines() == [
        "PASS   a.pod:1",
        "SKIP   a.pod:5  marked :skip",
        "ERROR  bad.pod  bad.pod:2: boom",
        "2 snippets: 1 passed, 0 failed, 1 skipped, 0 errored, 0 cancelled; 1 document errors",
    ]


@pytest.mark.asyncio
async def test_write_report_to_file(tmp_path: Path) -> None:
    collector = ReportCollector()
    collector.add(0, _record("a.pod", 1))
    output = tmp_path / "reports" / "report.json"

    await write_report(collector.build(), output)

    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["summary"]["passed"] == 1


@pytest.mark.asyncio
async def test_write_report_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    collector = ReportCollector()
    collector.add(0, _record("a.pod", 1))

    await write_report(collector.build(), None, "text")

    assert capsys.readouterr().out.startswith("PASS   a.pod:1\n")
