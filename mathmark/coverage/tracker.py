"""
CoverageTracker - Per-line statement coverage for assertion runs.

Each document taking part in a coverage run gets one slot per non-blank
line. Executing an assertion marks the slot at its starting line. Slots
live for a single run; summaries are reported once at run end.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from mathmark.discovery.parser import split_lines


@dataclass
class StatementCoverage:
    """Coverage slot for one source line."""

    line: int
    executed: int = 0

    @property
    def covered(self) -> bool:
        return self.executed > 0


@dataclass
class FileCoverage:
    """Coverage data for a single document."""

    document_id: str
    statements: dict[int, StatementCoverage] = field(default_factory=dict)

    @classmethod
    def from_text(cls, document_id: str, text: str) -> "FileCoverage":
        """Create a slot for every line with non-whitespace content."""
        return cls(
            document_id=document_id,
            statements={
                line_number: StatementCoverage(line=line_number)
                for line_number, line in enumerate(split_lines(text))
                if line.strip()
            },
        )

    @property
    def covered(self) -> int:
        """Number of slots executed at least once."""
        return sum(1 for statement in self.statements.values() if statement.covered)

    @property
    def total(self) -> int:
        """Number of slots."""
        return len(self.statements)

    @property
    def coverage_percentage(self) -> float:
        """Coverage percentage (0.0 to 100.0)."""
        if self.total == 0:
            return 100.0
        return (self.covered / self.total) * 100.0

    def record(self, line: int) -> bool:
        """
        Count an execution at a line.

        Returns:
            True if the line has a slot
        """
        statement = self.statements.get(line)
        if statement is None:
            return False
        statement.executed += 1
        return True

    def details(self) -> list[tuple[int, int]]:
        """Per-line (line, executed count) pairs in line order."""
        return [(line, self.statements[line].executed) for line in sorted(self.statements)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "document_id": self.document_id,
            "covered": self.covered,
            "total": self.total,
            "coverage_percentage": round(self.coverage_percentage, 2),
            "uncovered_lines": [line for line, executed in self.details() if executed == 0],
        }


@dataclass
class CoverageReport:
    """Coverage across all documents of one run."""

    session_id: str
    timestamp: datetime
    files: list[FileCoverage]

    @property
    def covered(self) -> int:
        return sum(f.covered for f in self.files)

    @property
    def total(self) -> int:
        return sum(f.total for f in self.files)

    @property
    def overall_coverage(self) -> float:
        """Coverage over every slot of every document."""
        if self.total == 0:
            return 100.0
        return (self.covered / self.total) * 100.0

    def get_file(self, document_id: str) -> FileCoverage | None:
        """Get coverage for a specific document."""
        for file_coverage in self.files:
            if file_coverage.document_id == document_id:
                return file_coverage
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "covered": self.covered,
            "total": self.total,
            "overall_coverage": round(self.overall_coverage, 2),
            "files": [f.to_dict() for f in self.files],
        }


class CoverageTracker:
    """
    Track line coverage for the documents of one run.

    Slot maps are created lazily, at most once per document.
    """

    def __init__(self, session_id: str | None = None):
        """
        Initialize coverage tracker.

        Args:
            session_id: Unique session identifier (generated if None)
        """
        self.session_id = session_id or f"cov-{uuid4().hex[:8]}"
        self.files: dict[str, FileCoverage] = {}

    def __contains__(self, document_id: str) -> bool:
        return document_id in self.files

    def add_document(self, document_id: str, text: str) -> FileCoverage:
        """Build the slot map for a document from its text."""
        file_coverage = FileCoverage.from_text(document_id, text)
        self.files[document_id] = file_coverage
        return file_coverage

    def record(self, document_id: str, line: int) -> bool:
        """Count an execution at a document line, if it has a slot."""
        file_coverage = self.files.get(document_id)
        if file_coverage is None:
            return False
        return file_coverage.record(line)

    def generate_report(self) -> CoverageReport:
        """Generate a coverage report in document order."""
        return CoverageReport(
            session_id=self.session_id,
            timestamp=datetime.now(UTC),
            files=list(self.files.values()),
        )
