"""
Mathmark Runtime.

Provides the scheduler, continuous-run registry and controller.
"""

from mathmark.runtime.controller import MathTestController, WatchHandle
from mathmark.runtime.scheduler import (
    AssertionState,
    BaseRunListener,
    CancellationToken,
    RunHandle,
    RunListener,
    RunRequest,
    RunSummary,
    Scheduler,
    TestResult,
    TestRun,
)
from mathmark.runtime.watch import ALL, ContinuousRunRegistry, Subscription

__all__ = [
    # Controller
    "MathTestController",
    "WatchHandle",
    # Scheduler
    "AssertionState",
    "BaseRunListener",
    "CancellationToken",
    "RunHandle",
    "RunListener",
    "RunRequest",
    "RunSummary",
    "Scheduler",
    "TestResult",
    "TestRun",
    # Continuous runs
    "ALL",
    "ContinuousRunRegistry",
    "Subscription",
]
