"""Test doubles shared across mathmark tests."""

import asyncio
from collections.abc import AsyncIterator

from mathmark.coverage.tracker import FileCoverage
from mathmark.discovery.models import AssertionNode
from mathmark.discovery.workspace import DocumentReadError, FileEvent
from mathmark.runtime.scheduler import BaseRunListener, RunSummary, TestRun

SAMPLE_DOC = "# A\n2+2=4\n## B\n3*3=9\n2+2=5\n"


class InMemorySource:
    """Document source backed by a dict; missing ids are unreadable."""

    def __init__(self, documents: dict[str, str] | None = None):
        self.documents = dict(documents or {})
        self.reads: list[str] = []
        self.events: list[FileEvent] = []

    async def read_text(self, document_id: str) -> str:
        self.reads.append(document_id)
        if document_id not in self.documents:
            raise DocumentReadError(document_id, "not found")
        return self.documents[document_id]

    async def find_documents(self, pattern: str) -> list[str]:
        return sorted(self.documents)

    async def watch(
        self, pattern: str, stop: asyncio.Event | None = None
    ) -> AsyncIterator[FileEvent]:
        for event in self.events:
            yield event


class RecordingListener(BaseRunListener):
    """Listener capturing every callback as (event, label) tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.output: list[str] = []
        self.coverage: list[FileCoverage] = []
        self.summaries: list[RunSummary] = []

    def of(self, event: str) -> list[str]:
        return [label for name, label in self.events if name == event]

    def on_enqueued(self, run: TestRun, node: AssertionNode) -> None:
        self.events.append(("enqueued", node.label))

    def on_started(self, run: TestRun, node: AssertionNode) -> None:
        self.events.append(("started", node.label))

    def on_skipped(self, run: TestRun, node: AssertionNode) -> None:
        self.events.append(("skipped", node.label))

    def on_passed(self, run: TestRun, node: AssertionNode, duration_ms: int) -> None:
        self.events.append(("passed", node.label))

    def on_failed(self, run: TestRun, node: AssertionNode, message: str, duration_ms: int) -> None:
        self.events.append(("failed", node.label))

    def on_output(self, run: TestRun, text: str) -> None:
        self.output.append(text)

    def on_coverage(self, run: TestRun, coverage: FileCoverage) -> None:
        self.coverage.append(coverage)

    def on_ended(self, run: TestRun, summary: RunSummary) -> None:
        self.summaries.append(summary)


