# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Command line entry point.

Exit codes: 0 when every non-skipped snippet passed, 1 when any snippet
failed or a document could not be parsed, 2 when the sandbox could not be
created.
"""

import shlex
from pathlib import Path
from typing import Any, Optional

import anyio
import typer
from loguru import logger
from pydantic import ValidationError

from coreason_docverify import __version__
from coreason_docverify.config import VerifierConfig
from coreason_docverify.exceptions import InfrastructureError
from coreason_docverify.reporter import ReportCollector, ReportFormat, write_report
from coreason_docverify.utils.logger import configure_logging
from coreason_docverify.verifier import VerifierAsync

EXIT_INFRASTRUCTURE = 2

app = typer.Typer(
    name="coreason-docverify",
    help="Extract code examples from documentation and verify their claimed output.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"coreason-docverify {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit."
    ),
) -> None:
    """Documentation example verifier."""


def _build_config(**overrides: Any) -> VerifierConfig:
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return VerifierConfig(**values)
    except ValidationError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=EXIT_INFRASTRUCTURE) from e


@app.command()
def verify(
    paths: list[Path] = typer.Argument(..., help="Documentation source files."),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Maximum concurrent sandboxes."),
    tag: Optional[list[str]] = typer.Option(None, "--tag", "-t", help="Only run snippets carrying this tag."),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0.001, help="Per-snippet timeout in seconds."),
    runtime: Optional[str] = typer.Option(None, "--runtime", help="Sandbox runtime: process or docker."),
    interpreter: Optional[str] = typer.Option(None, "--interpreter", help="Interpreter command, e.g. 'raku'."),
    allow_network: Optional[bool] = typer.Option(
        None, "--allow-network/--no-network", help="Let snippets reach the network."
    ),
    fmt: str = typer.Option("json", "--format", "-f", help="Report format: json or text."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to this file."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write JSON logs to this file."),
) -> None:
    """Run every snippet in PATHS and report pass/fail per snippet."""
    if fmt not in ("json", "text"):
        raise typer.BadParameter("must be 'json' or 'text'", param_hint="--format")

    config = _build_config(
        max_workers=jobs,
        tags=set(tag) if tag else None,
        execution_timeout=timeout,
        runtime=runtime,
        interpreter=shlex.split(interpreter) if interpreter else None,
        allow_network=allow_network,
        log_level=log_level,
        log_file=log_file,
    )
    configure_logging(config.log_level, config.log_file)

    verifier = VerifierAsync(config)

    async def _main() -> int:
        report = await verifier.verify(paths, handle_signals=True)
        report_format: ReportFormat = "text" if fmt == "text" else "json"
        await write_report(report, output, report_format)
        return report.exit_code

    try:
        exit_code = anyio.run(_main)
    except InfrastructureError as e:
        logger.error(f"Verification aborted: {e}")
        raise typer.Exit(code=EXIT_INFRASTRUCTURE) from e

    raise typer.Exit(code=exit_code)


@app.command("list")
def list_snippets(
    paths: list[Path] = typer.Argument(..., help="Documentation source files."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
) -> None:
    """Extract snippets from PATHS and print them without running anything."""
    config = _build_config(log_level=log_level)
    configure_logging(config.log_level)

    verifier = VerifierAsync(config)
    collector = ReportCollector(on_record=None)
    snippets = anyio.run(verifier.extract, paths, collector)

    for snippet in snippets:
        flags = " ".join(
            f":{a.kind.value}" + (f"<{a.value}>" if a.value is not None else "") for a in snippet.annotations
        )
        expectation = f"expects {snippet.expected.mode.value} output" if snippet.expected else "no expectation"
        typer.echo(f"{snippet.id}  {flags or '-'}  {expectation}")

    errors = [document for document in collector.build().documents if document.error]
    for document in errors:
        typer.echo(f"ERROR {document.error}", err=True)
    if errors:
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
