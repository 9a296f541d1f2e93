"""
Mathmark Coverage Tracking.

Track which document lines were exercised during a run.
"""

from mathmark.coverage.tracker import (
    CoverageReport,
    CoverageTracker,
    FileCoverage,
    StatementCoverage,
)

__all__ = [
    "CoverageReport",
    "CoverageTracker",
    "FileCoverage",
    "StatementCoverage",
]
