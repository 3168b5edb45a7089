# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_docverify

"""Data models for snippets extracted from documentation sources."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AnnotationKind(str, Enum):
    """The closed set of annotations a block may carry."""

    SKIP = "skip"
    NEEDS = "needs"
    PREAMBLE = "preamble"
    CHAIN = "chain"
    LANG = "lang"
    NONDETERMINISTIC = "nondeterministic"
    TIMEOUT = "timeout"
    TAG = "tag"
    PATTERN = "pattern"


class OutputMode(str, Enum):
    EXACT = "exact"
    PATTERN = "pattern"


class SourceLocation(BaseModel):
    """Position of a block inside a documentation source.

    Attributes:
        document: Identifier of the document (usually its path).
        start_line: 1-based line of the opening marker.
        end_line: 1-based line of the closing marker (or last paragraph line).
    """

    model_config = ConfigDict(frozen=True)

    document: str
    start_line: int
    end_line: int

    def __str__(self) -> str:
        return f"{self.document}:{self.start_line}"


class Annotation(BaseModel):
    """A single parsed annotation such as ``:skip`` or ``:chain<files>``."""

    model_config = ConfigDict(frozen=True)

    kind: AnnotationKind
    value: str | None = None


class PreambleBlock(BaseModel):
    """Setup code run before a snippet.

    Attributes:
        location: Where the preamble was declared.
        code: The setup code.
        inline: True when declared with ``:preamble<...>`` on the code block itself.
    """

    model_config = ConfigDict(frozen=True)

    location: SourceLocation
    code: str
    inline: bool = False


class ExpectedOutput(BaseModel):
    """Output a snippet claims to produce."""

    model_config = ConfigDict(frozen=True)

    text: str
    mode: OutputMode = OutputMode.EXACT
    location: SourceLocation


class Snippet(BaseModel):
    """An example code fragment extracted from a documentation source.

    Snippets are immutable once extracted. Chained snippets reference their
    predecessor through ``depends_on`` rather than by concatenating code.

    Attributes:
        id: Stable identifier, ``<document>:<start_line>``.
        index: Position of the snippet across the whole extraction pass.
        location: Source location of the code block.
        code: The snippet's own code.
        lang: Declared language, if any.
        preamble: Setup blocks inherited or declared inline, in execution order.
        expected: Declared expected output, if any.
        annotations: Raw annotations found on the code block.
        skip_reason: Set when the block is flagged ``:skip``.
        needs: External dependencies the snippet requires.
        chain: Name of the explicit chain the snippet belongs to.
        depends_on: Id of the previous snippet in the same chain.
        nondeterministic: Relaxed comparison requested.
        timeout: Per-snippet timeout override in seconds.
        tags: Filter tags.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    index: int
    location: SourceLocation
    code: str
    lang: str | None = None
    preamble: tuple[PreambleBlock, ...] = ()
    expected: ExpectedOutput | None = None
    annotations: tuple[Annotation, ...] = ()
    skip_reason: str | None = None
    needs: tuple[str, ...] = ()
    chain: str | None = None
    depends_on: str | None = None
    nondeterministic: bool = False
    timeout: float | None = Field(default=None, gt=0)
    tags: frozenset[str] = frozenset()

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @property
    def program(self) -> str:
        """The source actually handed to the interpreter."""
        parts = [block.code for block in self.preamble]
        parts.append(self.code)
        return "\n".join(part.rstrip("\n") for part in parts) + "\n"
