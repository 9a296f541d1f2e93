"""
Markdown assertion parser.

Scans document text line by line and yields structural events:
- HeadingEvent for ``#``-prefixed heading lines
- AssertionEvent for ``<int> <op> <int> = <int>`` lines

Lines matching neither pattern are ignored, as are assertion lines whose
operands are too long to convert to integers. The scan has no knowledge of
tree shape or execution.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from mathmark.discovery.models import Operator, TextRange

logger = logging.getLogger(__name__)

ASSERTION_RE = re.compile(r"^([0-9]+)\s*([+*/-])\s*([0-9]+)\s*=\s*([0-9]+)")
HEADING_RE = re.compile(r"^(#+)\s*(.+)$")


@dataclass(frozen=True)
class HeadingEvent:
    """A heading line; ``depth`` is the number of leading ``#``."""

    range: TextRange
    name: str
    depth: int


@dataclass(frozen=True)
class AssertionEvent:
    """An arithmetic assertion line."""

    range: TextRange
    left: int
    operator: Operator
    right: int
    expected: int


ParseEvent = HeadingEvent | AssertionEvent


def split_lines(text: str) -> list[str]:
    """Split text on newlines, dropping a trailing carriage return per line."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def parse_line(line: str, line_number: int) -> ParseEvent | None:
    """
    Classify a single line.

    The assertion pattern is tried first; the heading pattern only applies
    when no assertion matched.
    """
    match = ASSERTION_RE.match(line)
    if match:
        left, operator, right, expected = match.groups()
        try:
            values = int(left), int(right), int(expected)
        except ValueError:
            # Operand longer than the interpreter's integer conversion limit
            logger.debug("Ignoring line %d: operand too long", line_number)
            return None
        return AssertionEvent(
            range=TextRange.on_line(line_number, 0, match.end()),
            left=values[0],
            operator=Operator(operator),
            right=values[1],
            expected=values[2],
        )

    heading = HEADING_RE.match(line)
    if heading:
        pounds, name = heading.groups()
        return HeadingEvent(
            range=TextRange.on_line(line_number, 0, len(line)),
            name=name,
            depth=len(pounds),
        )

    return None


class MarkdownParser:
    """
    Lazy, restartable event stream over one document's text.

    Usage:
        for event in MarkdownParser(text):
            ...
    """

    def __init__(self, text: str):
        self.text = text

    def __iter__(self) -> Iterator[ParseEvent]:
        for line_number, line in enumerate(split_lines(self.text)):
            event = parse_line(line, line_number)
            if event is not None:
                yield event


def parse_markdown(text: str) -> list[ParseEvent]:
    """Parse text into a list of events in line order."""
    return list(MarkdownParser(text))
