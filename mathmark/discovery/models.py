"""
Domain models for discovered documents, sections and assertions.

Nodes form a tagged union: every variant carries a ``kind`` and callers
dispatch on it rather than on the Python type.
"""

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any


class NodeKind(str, Enum):
    """Variants of tree nodes."""

    DOCUMENT = "document"
    SECTION = "section"
    ASSERTION = "assertion"


class ResolutionState(str, Enum):
    """Lifecycle of a document node."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


class Operator(str, Enum):
    """Binary arithmetic operators an assertion may use."""

    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"

    def apply(self, left: int, right: int) -> Fraction:
        """
        Evaluate ``left <op> right`` exactly.

        Division yields an exact rational, so ``7 / 2`` is ``7/2`` and never
        compares equal to an integer.

        Raises:
            ZeroDivisionError: If dividing by zero
        """
        if self is Operator.ADD:
            return Fraction(left + right)
        if self is Operator.SUBTRACT:
            return Fraction(left - right)
        if self is Operator.MULTIPLY:
            return Fraction(left * right)
        return Fraction(left, right)


def format_value(value: Fraction | int) -> str:
    """Render a number, summarizing values too long to print in decimal."""
    try:
        return str(value)
    except ValueError:
        return f"<{abs(value.numerator).bit_length()}-bit value>"


@dataclass(frozen=True)
class Position:
    """Zero-based line and character offset."""

    line: int
    character: int


@dataclass(frozen=True)
class TextRange:
    """Span of text within a document."""

    start: Position
    end: Position

    @classmethod
    def on_line(cls, line: int, start: int, end: int) -> "TextRange":
        """Build a range that stays on a single line."""
        return cls(Position(line, start), Position(line, end))

    @property
    def line(self) -> int:
        """Line the range starts on."""
        return self.start.line


@dataclass
class AssertionOutcome:
    """Result of evaluating one assertion."""

    passed: bool
    expected: int
    actual: Fraction | None = None
    message: str = ""


@dataclass
class AssertionNode:
    """One ``a op b = c`` check taken from a single source line."""

    id: str
    document_id: str
    range: TextRange
    left: int
    operator: Operator
    right: int
    expected: int
    kind: NodeKind = field(default=NodeKind.ASSERTION, init=False)

    @property
    def label(self) -> str:
        return f"{self.left} {self.operator.value} {self.right} = {self.expected}"

    @property
    def line(self) -> int:
        return self.range.line

    def same_content(self, other: "AssertionNode") -> bool:
        """Check whether two assertions were parsed from identical text."""
        return (
            self.range == other.range
            and self.left == other.left
            and self.operator == other.operator
            and self.right == other.right
            and self.expected == other.expected
        )

    def evaluate(self) -> AssertionOutcome:
        """Evaluate the assertion with exact arithmetic."""
        try:
            actual = self.operator.apply(self.left, self.right)
        except ZeroDivisionError:
            return AssertionOutcome(
                passed=False,
                expected=self.expected,
                message=f"{self.label}: division by zero",
            )

        if actual == self.expected:
            return AssertionOutcome(passed=True, expected=self.expected, actual=actual)
        return AssertionOutcome(
            passed=False,
            expected=self.expected,
            actual=actual,
            message=f"{self.label}: expected {self.expected}, got {format_value(actual)}",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "line": self.line,
        }


@dataclass
class SectionNode:
    """A heading and everything nested under it."""

    id: str
    document_id: str
    range: TextRange
    name: str
    depth: int
    children: list["SectionNode | AssertionNode"] = field(default_factory=list)
    kind: NodeKind = field(default=NodeKind.SECTION, init=False)

    @property
    def label(self) -> str:
        return self.name

    @property
    def line(self) -> int:
        return self.range.line

    def same_content(self, other: "SectionNode") -> bool:
        """Check whether two sections were parsed from identical heading lines."""
        return self.range == other.range and self.name == other.name and self.depth == other.depth

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "depth": self.depth,
            "line": self.line,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class DocumentNode:
    """
    Top-level node for one source document.

    Children stay empty until the document is synchronized for the first
    time; ``state`` records whether that has happened yet.
    """

    id: str
    label: str
    children: list[SectionNode | AssertionNode] = field(default_factory=list)
    state: ResolutionState = ResolutionState.UNRESOLVED
    error: str | None = None
    kind: NodeKind = field(default=NodeKind.DOCUMENT, init=False)

    @property
    def document_id(self) -> str:
        return self.id

    @property
    def is_resolved(self) -> bool:
        return self.state == ResolutionState.RESOLVED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "state": self.state.value,
            "error": self.error,
            "children": [child.to_dict() for child in self.children],
        }


Node = DocumentNode | SectionNode | AssertionNode
ChildNode = SectionNode | AssertionNode
