"""
Execution scheduler.

Turns a run request into a flat, ordered queue of assertions and executes it:
- depth-first, source-order expansion of the requested scope
- exclusions prune whole subtrees
- unresolved documents are parsed on first visit
- sequential execution with cooperative cancellation
- optional per-line coverage reported once at run end
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from mathmark.config import RunProfile
from mathmark.coverage.tracker import CoverageReport, CoverageTracker, FileCoverage
from mathmark.discovery.models import AssertionNode, Node, NodeKind
from mathmark.discovery.synchronizer import TreeSynchronizer
from mathmark.discovery.tree import TestTree
from mathmark.discovery.workspace import DocumentReader

logger = logging.getLogger(__name__)


class AssertionState(str, Enum):
    """Per-assertion states reported during a run."""

    ENQUEUED = "enqueued"
    STARTED = "started"
    SKIPPED = "skipped"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class RunRequest:
    """
    What to run.

    ``include=None`` means every document in the tree.
    """

    include: list[Node] | None = None
    exclude: list[Node] = field(default_factory=list)
    profile: RunProfile | None = None
    continuous: bool = False

    @property
    def collects_coverage(self) -> bool:
        return self.profile is not None and self.profile.collects_coverage


class CancellationToken:
    """Advisory cancellation flag polled between queue items."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass
class TestResult:
    """Latest reported state of one assertion within a run."""

    __test__ = False

    node_id: str
    label: str
    state: AssertionState = AssertionState.ENQUEUED
    message: str | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.node_id,
            "label": self.label,
            "state": self.state.value,
            "message": self.message,
            "duration_ms": self.duration_ms,
        }


@dataclass
class RunSummary:
    """Outcome of a finished run."""

    run_id: str
    results: list[TestResult]
    coverage: CoverageReport | None = None
    cancelled: bool = False

    def count(self, state: AssertionState) -> int:
        return sum(1 for result in self.results if result.state == state)

    @property
    def passed(self) -> int:
        return self.count(AssertionState.PASSED)

    @property
    def failed(self) -> int:
        return self.count(AssertionState.FAILED)

    @property
    def skipped(self) -> int:
        return self.count(AssertionState.SKIPPED)

    @property
    def success(self) -> bool:
        """True if nothing failed."""
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "cancelled": self.cancelled,
            "total": len(self.results),
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [result.to_dict() for result in self.results],
            "coverage": self.coverage.to_dict() if self.coverage else None,
        }


@runtime_checkable
class RunListener(Protocol):
    """Streaming callbacks a host receives while a run progresses."""

    def on_enqueued(self, run: "TestRun", node: AssertionNode) -> None: ...

    def on_started(self, run: "TestRun", node: AssertionNode) -> None: ...

    def on_skipped(self, run: "TestRun", node: AssertionNode) -> None: ...

    def on_passed(self, run: "TestRun", node: AssertionNode, duration_ms: int) -> None: ...

    def on_failed(
        self, run: "TestRun", node: AssertionNode, message: str, duration_ms: int
    ) -> None: ...

    def on_output(self, run: "TestRun", text: str) -> None: ...

    def on_coverage(self, run: "TestRun", coverage: FileCoverage) -> None: ...

    def on_ended(self, run: "TestRun", summary: RunSummary) -> None: ...


class BaseRunListener:
    """Listener with no-op callbacks; subclasses override what they need."""

    def on_enqueued(self, run: "TestRun", node: AssertionNode) -> None:
        pass

    def on_started(self, run: "TestRun", node: AssertionNode) -> None:
        pass

    def on_skipped(self, run: "TestRun", node: AssertionNode) -> None:
        pass

    def on_passed(self, run: "TestRun", node: AssertionNode, duration_ms: int) -> None:
        pass

    def on_failed(
        self, run: "TestRun", node: AssertionNode, message: str, duration_ms: int
    ) -> None:
        pass

    def on_output(self, run: "TestRun", text: str) -> None:
        pass

    def on_coverage(self, run: "TestRun", coverage: FileCoverage) -> None:
        pass

    def on_ended(self, run: "TestRun", summary: RunSummary) -> None:
        pass


class TestRun:
    """
    One execution instance.

    Records per-assertion results and forwards every report to the
    registered listeners. Once ended, further reports are dropped.
    """

    __test__ = False

    def __init__(
        self,
        request: RunRequest,
        listeners: list[RunListener] | None = None,
        run_id: str | None = None,
    ):
        self.id = run_id or f"run-{uuid4().hex[:8]}"
        self.request = request
        self.listeners = list(listeners or [])
        self.token = CancellationToken()
        self.queue: list[AssertionNode] = []
        self.coverage = CoverageTracker(session_id=self.id) if request.collects_coverage else None
        self.results: dict[str, TestResult] = {}
        self._ended = False
        self._summary: RunSummary | None = None

    @property
    def ended(self) -> bool:
        return self._ended

    def _accepting(self, event: str) -> bool:
        if self._ended:
            logger.warning("Ignoring %s reported after run %s ended", event, self.id)
            return False
        return True

    def _set_state(self, node: AssertionNode, state: AssertionState) -> TestResult:
        result = self.results.get(node.id)
        if result is None:
            result = TestResult(node_id=node.id, label=node.label)
            self.results[node.id] = result
        result.state = state
        return result

    def enqueued(self, node: AssertionNode) -> None:
        if not self._accepting("enqueued"):
            return
        self.queue.append(node)
        self._set_state(node, AssertionState.ENQUEUED)
        for listener in self.listeners:
            listener.on_enqueued(self, node)

    def started(self, node: AssertionNode) -> None:
        if not self._accepting("started"):
            return
        self._set_state(node, AssertionState.STARTED)
        for listener in self.listeners:
            listener.on_started(self, node)

    def skipped(self, node: AssertionNode) -> None:
        if not self._accepting("skipped"):
            return
        self._set_state(node, AssertionState.SKIPPED)
        for listener in self.listeners:
            listener.on_skipped(self, node)

    def passed(self, node: AssertionNode, duration_ms: int) -> None:
        if not self._accepting("passed"):
            return
        result = self._set_state(node, AssertionState.PASSED)
        result.duration_ms = duration_ms
        for listener in self.listeners:
            listener.on_passed(self, node, duration_ms)

    def failed(self, node: AssertionNode, message: str, duration_ms: int) -> None:
        if not self._accepting("failed"):
            return
        result = self._set_state(node, AssertionState.FAILED)
        result.message = message
        result.duration_ms = duration_ms
        for listener in self.listeners:
            listener.on_failed(self, node, message, duration_ms)

    def append_output(self, text: str) -> None:
        if not self._accepting("output"):
            return
        for listener in self.listeners:
            listener.on_output(self, text)

    def add_coverage(self, coverage: FileCoverage) -> None:
        if not self._accepting("coverage"):
            return
        for listener in self.listeners:
            listener.on_coverage(self, coverage)

    def detailed_coverage(self, document_id: str) -> list[tuple[int, int]]:
        """Per-line (line, executed count) pairs for a document, if covered."""
        if self.coverage is None or document_id not in self.coverage:
            return []
        return self.coverage.files[document_id].details()

    def summary(self) -> RunSummary:
        """Summarize the run; frozen once the run has ended."""
        if self._summary is not None:
            return self._summary
        return RunSummary(
            run_id=self.id,
            results=list(self.results.values()),
            coverage=self.coverage.generate_report() if self.coverage else None,
            cancelled=self.token.is_cancellation_requested,
        )

    def end(self) -> RunSummary:
        """End the run and notify listeners; idempotent."""
        if self._ended:
            return self.summary()
        summary = self.summary()
        self._summary = summary
        self._ended = True
        for listener in self.listeners:
            listener.on_ended(self, summary)
        return summary


class RunHandle:
    """Handle on a run executing in the background."""

    def __init__(self, run: TestRun, task: "asyncio.Task[RunSummary]"):
        self.run = run
        self.task = task

    @property
    def id(self) -> str:
        return self.run.id

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> None:
        """Request cancellation; queued assertions not yet started are skipped."""
        self.run.token.cancel()

    async def wait(self) -> RunSummary:
        """Wait for the run to finish and return its summary."""
        return await self.task


class Scheduler:
    """
    Expand run requests into assertion queues and execute them.

    Usage:
        scheduler = Scheduler(tree, synchronizer, workspace.read_text)
        handle = scheduler.start(RunRequest(), listeners=[reporter])
        summary = await handle.wait()
    """

    def __init__(
        self,
        tree: TestTree,
        synchronizer: TreeSynchronizer,
        read_text: DocumentReader,
    ):
        """
        Initialize the scheduler.

        Args:
            tree: Tree supplying the root document set
            synchronizer: Used to resolve unresolved documents on first visit
            read_text: Async reader used to build coverage slots
        """
        self.tree = tree
        self.synchronizer = synchronizer
        self.read_text = read_text

    def start(
        self, request: RunRequest, listeners: list[RunListener] | None = None
    ) -> RunHandle:
        """
        Accept a request and execute it as a background task.

        Must be called from within a running event loop.
        """
        run = TestRun(request, listeners)
        task = asyncio.get_running_loop().create_task(self.execute(run))
        logger.debug("Started %s", run.id)
        return RunHandle(run, task)

    async def run(
        self, request: RunRequest, listeners: list[RunListener] | None = None
    ) -> RunSummary:
        """Execute a request to completion."""
        return await self.execute(TestRun(request, listeners))

    async def execute(self, run: TestRun) -> RunSummary:
        """Build the queue for a run, process it, and end the run."""
        try:
            await self.discover(run)
            await self.run_queue(run)
        finally:
            summary = run.end()
        logger.info(
            "%s finished: %d passed, %d failed, %d skipped",
            run.id,
            summary.passed,
            summary.failed,
            summary.skipped,
        )
        return summary

    async def discover(self, run: TestRun) -> None:
        """Expand the request scope into the run's queue."""
        request = run.request
        roots: list[Node] = (
            list(request.include) if request.include is not None else list(self.tree.documents)
        )
        excluded = {node.id for node in request.exclude}
        await self._discover(run, roots, excluded, set())

    async def _discover(
        self,
        run: TestRun,
        nodes: list[Node],
        excluded: set[str],
        unreadable: set[str],
    ) -> None:
        for node in nodes:
            if node.id in excluded:
                continue

            if node.kind == NodeKind.ASSERTION:
                run.enqueued(node)
            else:
                if node.kind == NodeKind.DOCUMENT:
                    await self.synchronizer.ensure_resolved(node)
                # Snapshot: a concurrent re-sync may replace the child list
                await self._discover(run, list(node.children), excluded, unreadable)

            if (
                run.coverage is not None
                and node.document_id not in run.coverage
                and node.document_id not in unreadable
            ):
                await self._build_coverage(run, node.document_id, unreadable)

    async def _build_coverage(self, run: TestRun, document_id: str, unreadable: set[str]) -> None:
        try:
            text = await self.read_text(document_id)
        except OSError as e:
            logger.warning("No coverage for %s: %s", document_id, getattr(e, "reason", e))
            unreadable.add(document_id)
            return
        run.coverage.add_document(document_id, text)

    async def run_queue(self, run: TestRun) -> None:
        """Process the queue strictly in order, then report coverage."""
        for node in list(run.queue):
            run.append_output(f"Running {node.id}")

            if run.token.is_cancellation_requested:
                run.skipped(node)
            else:
                run.started(node)
                started_at = time.perf_counter()
                outcome = node.evaluate()
                duration_ms = int((time.perf_counter() - started_at) * 1000)
                if outcome.passed:
                    run.passed(node, duration_ms)
                else:
                    run.failed(node, outcome.message, duration_ms)

                if run.coverage is not None:
                    run.coverage.record(node.document_id, node.line)

            run.append_output(f"Completed {node.id}")
            # Let other work (cancellation, change notifications) interleave
            await asyncio.sleep(0)

        if run.coverage is not None:
            for file_coverage in run.coverage.generate_report().files:
                run.add_coverage(file_coverage)
