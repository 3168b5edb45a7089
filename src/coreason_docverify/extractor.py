# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Extraction of code snippets and expected outputs from Pod-style sources.

Recognized blocks::

    =begin code :tag<io> :chain<files>
    say 1+1;
    =end code

    =begin output :pattern
    2
    =end output

    =for code :skip<reads from a terminal>
    my $name = prompt "name? ";

``preamble`` blocks declare setup code inherited by every later code block of
the document (or of one chain when they carry ``:chain<...>``). Any other
block type is only checked for balanced markers.

Code and preamble bodies are dedented. Output bodies are kept exactly as
written, including indentation and leading blank lines.
"""

import re
import textwrap
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from coreason_docverify.exceptions import ParseError
from coreason_docverify.models import (
    Annotation,
    AnnotationKind,
    ExpectedOutput,
    OutputMode,
    PreambleBlock,
    Snippet,
    SourceLocation,
)

_DIRECTIVE = re.compile(r"^\s*=(?P<directive>[A-Za-z][\w-]*)(?:\s+(?P<rest>.*?))?\s*$")
_NAME = re.compile(r"[A-Za-z][\w-]*")

CODE = "code"
OUTPUT = "output"
PREAMBLE = "preamble"
_INTERPRETED = {CODE, OUTPUT, PREAMBLE}

_VALUE_REQUIRED = {
    AnnotationKind.NEEDS,
    AnnotationKind.PREAMBLE,
    AnnotationKind.CHAIN,
    AnnotationKind.LANG,
    AnnotationKind.TIMEOUT,
    AnnotationKind.TAG,
}
_VALUELESS = {AnnotationKind.NONDETERMINISTIC, AnnotationKind.PATTERN}
_ALLOWED = {
    CODE: set(AnnotationKind) - {AnnotationKind.PATTERN},
    OUTPUT: {AnnotationKind.PATTERN},
    PREAMBLE: {AnnotationKind.CHAIN},
}


@dataclass
class _RawBlock:
    type: str
    annotations: tuple[Annotation, ...]
    body: str
    start_line: int
    end_line: int


def parse_annotations(text: str, document: str, line: int) -> tuple[Annotation, ...]:
    """Parse Pod colon pairs such as ``:skip``, ``:chain<files>``.

    Pairs may be separated by whitespace and/or commas. Values may contain
    balanced angle brackets.

    Raises:
        ParseError: On unknown annotation names or malformed pairs.
    """
    annotations: list[Annotation] = []
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char.isspace() or char == ",":
            pos += 1
            continue
        if char != ":":
            raise ParseError(document, line, f"unexpected text in annotations: {text[pos:]!r}")

        match = _NAME.match(text, pos + 1)
        if match is None:
            raise ParseError(document, line, "expected an annotation name after ':'")
        name = match.group(0)
        pos = match.end()

        value: str | None = None
        if pos < length and text[pos] == "<":
            depth = 0
            i = pos
            while i < length:
                if text[i] == "<":
                    depth += 1
                elif text[i] == ">":
                    depth -= 1
                    if depth == 0:
                        break
                i += 1
            else:
                raise ParseError(document, line, f"unterminated value for :{name}")
            value = text[pos + 1 : i]
            pos = i + 1

        try:
            kind = AnnotationKind(name)
        except ValueError:
            raise ParseError(document, line, f"unknown annotation :{name}") from None
        annotations.append(Annotation(kind=kind, value=value))

    return tuple(annotations)


def _validate(block_type: str, annotations: tuple[Annotation, ...], document: str, line: int) -> None:
    for annotation in annotations:
        name = annotation.kind.value
        if annotation.kind not in _ALLOWED[block_type]:
            raise ParseError(document, line, f":{name} is not allowed on a {block_type} block")
        if annotation.kind in _VALUE_REQUIRED and not (annotation.value or "").strip():
            raise ParseError(document, line, f":{name} requires a value")
        if annotation.kind in _VALUELESS and annotation.value is not None:
            raise ParseError(document, line, f":{name} does not take a value")
        if annotation.kind == AnnotationKind.TIMEOUT:
            try:
                seconds = float(annotation.value or "")
            except ValueError:
                raise ParseError(document, line, f"invalid timeout {annotation.value!r}") from None
            if seconds <= 0:
                raise ParseError(document, line, f"timeout must be positive, got {annotation.value!r}")


def _body(block_type: str, lines: list[str]) -> str:
    # Expected output is compared verbatim, so only program text is dedented.
    if block_type == OUTPUT:
        return "\n".join(lines)
    return textwrap.dedent("\n".join(lines)).strip("\n")


def _scan(text: str, document: str) -> Iterator[_RawBlock | None]:
    """Yield interpreted blocks in source order, and None for any other content."""
    lines = text.splitlines()
    open_blocks: list[tuple[str, int]] = []
    i = 0
    while i < len(lines):
        lineno = i + 1
        match = _DIRECTIVE.match(lines[i])
        if match is None:
            if lines[i].strip():
                yield None
            i += 1
            continue

        directive = match.group("directive")
        rest = match.group("rest") or ""
        parts = rest.split(None, 1)
        block_type = parts[0] if parts else ""
        config = parts[1].strip() if len(parts) > 1 else ""

        if directive == "begin":
            if not block_type:
                raise ParseError(document, lineno, "=begin without a block type")
            if block_type not in _INTERPRETED:
                open_blocks.append((block_type, lineno))
                yield None
                i += 1
                continue

            annotations = parse_annotations(config, document, lineno)
            _validate(block_type, annotations, document, lineno)
            end = re.compile(rf"^\s*=end\s+{re.escape(block_type)}\s*$")
            j = i + 1
            while j < len(lines) and not end.match(lines[j]):
                j += 1
            if j == len(lines):
                raise ParseError(document, lineno, f"unterminated =begin {block_type} block")
            yield _RawBlock(block_type, annotations, _body(block_type, lines[i + 1 : j]), lineno, j + 1)
            i = j + 1

        elif directive == "end":
            if not block_type:
                raise ParseError(document, lineno, "=end without a block type")
            if not open_blocks or open_blocks[-1][0] != block_type:
                raise ParseError(document, lineno, f"=end {block_type} without a matching =begin")
            open_blocks.pop()
            yield None
            i += 1

        elif directive == "for":
            if not block_type:
                raise ParseError(document, lineno, "=for without a block type")
            j = i + 1
            while j < len(lines) and lines[j].strip() and not _DIRECTIVE.match(lines[j]):
                j += 1
            if block_type in _INTERPRETED:
                annotations = parse_annotations(config, document, lineno)
                _validate(block_type, annotations, document, lineno)
                body = _body(block_type, lines[i + 1 : j])
                yield _RawBlock(block_type, annotations, body, lineno, max(j, lineno))
            else:
                yield None
            i = j

        else:
            yield None
            i += 1

    if open_blocks:
        block_type, lineno = open_blocks[-1]
        raise ParseError(document, lineno, f"unterminated =begin {block_type} block")


def _values(annotations: tuple[Annotation, ...], kind: AnnotationKind) -> list[str]:
    return [a.value.strip() for a in annotations if a.kind == kind and a.value is not None]


def _has(annotations: tuple[Annotation, ...], kind: AnnotationKind) -> bool:
    return any(a.kind == kind for a in annotations)


class _SnippetBuilder:
    """Accumulates snippets for one document, resolving preambles and chains."""

    def __init__(self, document: str, start_index: int):
        self.document = document
        self.start_index = start_index
        self.snippets: list[Snippet] = []
        self.preambles: list[tuple[str | None, PreambleBlock]] = []
        self.chain_tails: dict[str, str] = {}

    def location(self, raw: _RawBlock) -> SourceLocation:
        return SourceLocation(document=self.document, start_line=raw.start_line, end_line=raw.end_line)

    def add_preamble(self, raw: _RawBlock) -> None:
        chains = _values(raw.annotations, AnnotationKind.CHAIN)
        chain = chains[-1] if chains else None
        self.preambles.append((chain, PreambleBlock(location=self.location(raw), code=raw.body)))

    def add_code(self, raw: _RawBlock, expected: ExpectedOutput | None) -> Snippet:
        annotations = raw.annotations
        location = self.location(raw)

        chains = _values(annotations, AnnotationKind.CHAIN)
        chain = chains[-1] if chains else None

        preamble = [block for scope, block in self.preambles if scope is None or scope == chain]
        for inline in _values(annotations, AnnotationKind.PREAMBLE):
            preamble.append(PreambleBlock(location=location, code=inline, inline=True))

        skip_reason: str | None = None
        for annotation in annotations:
            if annotation.kind == AnnotationKind.SKIP:
                skip_reason = (annotation.value or "").strip() or "marked :skip"

        langs = _values(annotations, AnnotationKind.LANG)
        timeouts = _values(annotations, AnnotationKind.TIMEOUT)

        snippet_id = f"{self.document}:{raw.start_line}"
        snippet = Snippet(
            id=snippet_id,
            index=self.start_index + len(self.snippets),
            location=location,
            code=raw.body,
            lang=langs[-1] if langs else None,
            preamble=tuple(preamble),
            expected=expected,
            annotations=annotations,
            skip_reason=skip_reason,
            needs=tuple(_values(annotations, AnnotationKind.NEEDS)),
            chain=chain,
            depends_on=self.chain_tails.get(chain) if chain else None,
            nondeterministic=_has(annotations, AnnotationKind.NONDETERMINISTIC),
            timeout=float(timeouts[-1]) if timeouts else None,
            tags=frozenset(_values(annotations, AnnotationKind.TAG)),
        )
        if chain:
            self.chain_tails[chain] = snippet_id
        self.snippets.append(snippet)
        return snippet


def extract_snippets(text: str, document: str, start_index: int = 0) -> list[Snippet]:
    """Extract snippets from a documentation source, in source order.

    Args:
        text: Raw documentation text.
        document: Identifier used in locations and snippet ids.
        start_index: Global index assigned to the first snippet.

    Returns:
        list[Snippet]: The extracted snippets.

    Raises:
        ParseError: On malformed or unterminated markup. Extraction stops at
            the first error.
    """
    builder = _SnippetBuilder(document, start_index)
    pending: _RawBlock | None = None

    for raw in _scan(text, document):
        if raw is not None and raw.type == OUTPUT:
            if pending is None:
                raise ParseError(document, raw.start_line, "output block does not follow a code block")
            mode = OutputMode.PATTERN if _has(raw.annotations, AnnotationKind.PATTERN) else OutputMode.EXACT
            expected = ExpectedOutput(text=raw.body, mode=mode, location=builder.location(raw))
            builder.add_code(pending, expected)
            pending = None
            continue

        if pending is not None:
            builder.add_code(pending, None)
            pending = None

        if raw is None:
            continue
        if raw.type == CODE:
            pending = raw
        elif raw.type == PREAMBLE:
            builder.add_preamble(raw)

    if pending is not None:
        builder.add_code(pending, None)

    logger.debug(f"Extracted {len(builder.snippets)} snippets from {document}")
    return builder.snippets


class Extractor:
    """Reads documentation sources and extracts their snippets."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def extract_file(self, path: Path, start_index: int = 0) -> list[Snippet]:
        """Extract snippets from a file.

        Raises:
            ParseError: If the file cannot be read or its markup is malformed.
        """
        try:
            async with aiofiles.open(path, encoding=self.encoding) as f:
                text = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(str(path), 0, f"cannot read document: {e}") from e
        return extract_snippets(text, str(path), start_index)
