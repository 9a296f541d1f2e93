"""
Tests for MathTestController.
"""

import pytest

from mathmark.config import COVERAGE_PROFILE, MathmarkConfig
from mathmark.discovery.tree import UnknownNodeError, node_id
from mathmark.discovery.workspace import FileEvent, FileEventKind
from mathmark.runtime.controller import MathTestController, WatchHandle
from mathmark.runtime.scheduler import RunHandle
from tests.support import SAMPLE_DOC, InMemorySource, RecordingListener

DOC = "/docs/math.md"
OTHER = "/docs/other.md"


@pytest.fixture
def source() -> InMemorySource:
    return InMemorySource({DOC: SAMPLE_DOC, OTHER: "1+1=2\n"})


@pytest.fixture
def controller(source: InMemorySource, listener: RecordingListener) -> MathTestController:
    return MathTestController(source, listeners=[listener])


class TestDiscovery:
    """Tests for seeding and resolving the tree."""

    @pytest.mark.asyncio
    async def test_discover_adds_unresolved_documents(
        self, controller: MathTestController, source: InMemorySource
    ) -> None:
        """Test discovery does not read documents."""
        documents = await controller.discover()

        assert [d.id for d in documents] == [DOC, OTHER]
        assert not any(d.is_resolved for d in documents)
        assert source.reads == []

    @pytest.mark.asyncio
    async def test_resolve_children_seeds_tree(self, controller: MathTestController) -> None:
        """Test resolving the root enumerates documents."""
        await controller.resolve_children()

        assert len(controller.documents) == 2

    @pytest.mark.asyncio
    async def test_resolve_children_of_document(self, controller: MathTestController) -> None:
        """Test resolving a document parses it."""
        await controller.discover()
        document = controller.get(DOC)

        await controller.resolve_children(document)

        assert document.is_resolved
        assert controller.get(node_id(DOC, 1)).label == "2 + 2 = 4"

    @pytest.mark.asyncio
    async def test_rediscover_forgets_missing(
        self, controller: MathTestController, source: InMemorySource
    ) -> None:
        """Test documents gone from disk and not open are removed."""
        await controller.discover()
        del source.documents[OTHER]

        await controller.discover()

        assert [d.id for d in controller.documents] == [DOC]

    @pytest.mark.asyncio
    async def test_get_unknown(self, controller: MathTestController) -> None:
        """Test unknown ids raise."""
        with pytest.raises(UnknownNodeError):
            controller.get("/docs/none.md")

    def test_accepts_uses_include_glob(self, source: InMemorySource) -> None:
        """Test file names are matched against the include glob."""
        controller = MathTestController(source, config=MathmarkConfig(include="**/*.mdx"))

        assert controller.accepts("/docs/page.mdx")
        assert not controller.accepts("/docs/page.md")

    def test_accepts_relative_to_root(self, source: InMemorySource) -> None:
        """Test directory parts of the include glob are matched under the root."""
        controller = MathTestController(
            source, config=MathmarkConfig(include="docs/**/*.md"), root="/work"
        )

        assert controller.accepts("/work/docs/a.md")
        assert controller.accepts("/work/docs/guide/deep/b.md")
        assert not controller.accepts("/work/notes/a.md")
        assert not controller.accepts("/elsewhere/docs/a.md")

    def test_buffers_outside_include_are_ignored(self, source: InMemorySource) -> None:
        """Test an editor buffer outside the included directory is not tracked."""
        controller = MathTestController(
            source, config=MathmarkConfig(include="docs/**/*.md"), root="/work"
        )

        assert controller.on_document_opened("/work/notes/a.md", "1+1=2") is None
        assert "/work/notes/a.md" not in controller.tree


class TestBuffers:
    """Tests for editor buffer events."""

    @pytest.mark.asyncio
    async def test_open_buffer_takes_precedence(
        self, controller: MathTestController, source: InMemorySource
    ) -> None:
        """Test an open buffer is used instead of the disk text."""
        controller.on_document_opened(DOC, "5+5=10\n")

        assert await controller.read_document_text(DOC) == "5+5=10\n"
        assert [n.label for n in controller.get(DOC).children] == ["5 + 5 = 10"]
        assert source.reads == []

    def test_edit_resynchronizes(self, controller: MathTestController) -> None:
        """Test edits re-parse the document."""
        controller.on_document_opened(DOC, "5+5=10\n")

        result = controller.on_document_edited(DOC, "5+5=10\n6+6=12\n")

        assert result.added == 1
        assert len(controller.get(DOC).children) == 2

    def test_non_matching_documents_are_ignored(self, controller: MathTestController) -> None:
        """Test buffers of other file types are not tracked."""
        assert controller.on_document_opened("/docs/notes.txt", "1+1=2") is None
        assert "/docs/notes.txt" not in controller.tree

    @pytest.mark.asyncio
    async def test_close_falls_back_to_disk(self, controller: MathTestController) -> None:
        """Test closing a buffer re-reads the document from the source."""
        controller.on_document_opened(DOC, "5+5=10\n")

        await controller.on_document_closed(DOC)

        assert not controller.is_open(DOC)
        assert len(controller.tree.assertions()) == 3


class TestFileEvents:
    """Tests for file-system change handling."""

    @pytest.mark.asyncio
    async def test_created_document_is_parsed(
        self, controller: MathTestController, source: InMemorySource
    ) -> None:
        """Test a created document is added and synchronized."""
        source.documents["/docs/new.md"] = "3+4=7\n"

        await controller.on_file_event(FileEvent(FileEventKind.CREATED, "/docs/new.md"))

        assert controller.get("/docs/new.md").is_resolved
        assert controller.get(node_id("/docs/new.md", 0)).label == "3 + 4 = 7"

    @pytest.mark.asyncio
    async def test_deleted_document_is_removed(self, controller: MathTestController) -> None:
        """Test deleting a document drops it and its nodes."""
        await controller.discover()
        await controller.resolve_all()

        await controller.on_file_event(FileEvent(FileEventKind.DELETED, DOC))

        assert DOC not in controller.tree
        assert node_id(DOC, 1) not in controller.tree

    @pytest.mark.asyncio
    async def test_deleted_open_document_is_kept(self, controller: MathTestController) -> None:
        """Test an open buffer keeps its document alive."""
        controller.on_document_opened(DOC, SAMPLE_DOC)

        await controller.on_file_event(FileEvent(FileEventKind.DELETED, DOC))

        assert DOC in controller.tree

    @pytest.mark.asyncio
    async def test_changed_document_replays_continuous_run(
        self,
        controller: MathTestController,
        source: InMemorySource,
        listener: RecordingListener,
    ) -> None:
        """Test a change to a watched document starts one run of its registered nodes."""
        await controller.discover()
        await controller.resolve_all()
        controller.request_run(include=[controller.get(node_id(DOC, 2))], continuous=True)
        source.documents[DOC] = SAMPLE_DOC.replace("2+2=5", "2+2=4")

        handle = await controller.on_file_event(FileEvent(FileEventKind.CHANGED, DOC))
        summary = await handle.wait()

        assert summary.passed == 2
        assert summary.failed == 0
        assert listener.of("enqueued") == ["3 * 3 = 9", "2 + 2 = 4"]

    @pytest.mark.asyncio
    async def test_watch_workspace_applies_events(
        self, controller: MathTestController, source: InMemorySource
    ) -> None:
        """Test the watch loop feeds every event to the controller."""
        source.documents["/docs/new.md"] = "1+2=3\n"
        source.events = [
            FileEvent(FileEventKind.CREATED, "/docs/new.md"),
            FileEvent(FileEventKind.CHANGED, "/docs/ignored.txt"),
        ]

        await controller.watch_workspace()

        assert "/docs/new.md" in controller.tree
        assert "/docs/ignored.txt" not in controller.tree


class TestRuns:
    """Tests for run requests."""

    @pytest.mark.asyncio
    async def test_request_run(
        self, controller: MathTestController, listener: RecordingListener
    ) -> None:
        """Test a normal request returns a handle and runs everything."""
        await controller.discover()

        handle = controller.request_run()
        summary = await handle.wait()

        assert isinstance(handle, RunHandle)
        assert len(summary.results) == 4
        assert len(listener.summaries) == 1

    @pytest.mark.asyncio
    async def test_coverage_request(self, controller: MathTestController) -> None:
        """Test coverage profiles attach a coverage report."""
        await controller.discover()

        summary = await controller.request_run(profile=COVERAGE_PROFILE).wait()

        assert summary.coverage is not None
        assert summary.coverage.covered == 4

    @pytest.mark.asyncio
    async def test_continuous_request_registers_all(
        self, controller: MathTestController
    ) -> None:
        """Test a continuous request without scope watches everything and runs nothing."""
        handle = controller.request_run(continuous=True)

        assert isinstance(handle, WatchHandle)
        assert len(handle.ids) == 1
        assert controller.active_runs == {}
        assert controller.cancel_watch(handle.ids[0]) is True

    @pytest.mark.asyncio
    async def test_drain_waits_for_runs(self, controller: MathTestController) -> None:
        """Test drain returns every in-flight run's summary."""
        await controller.discover()
        controller.request_run()
        controller.request_run(profile=COVERAGE_PROFILE)

        summaries = await controller.drain()

        assert len(summaries) == 2
        assert controller.active_runs == {}

    @pytest.mark.asyncio
    async def test_cancel(
        self, controller: MathTestController, listener: RecordingListener
    ) -> None:
        """Test cancelling through the controller skips queued assertions."""
        await controller.discover()
        handle = controller.request_run()

        controller.cancel(handle)
        summary = await handle.wait()

        assert summary.cancelled is True
        assert listener.of("started") == []

    @pytest.mark.asyncio
    async def test_drain_includes_runs_started_while_draining(
        self, controller: MathTestController
    ) -> None:
        """Test a run started by another run's end is waited for too."""
        follow_ups = []

        class StartFollowUp(RecordingListener):
            def on_ended(self, run, summary):
                if not follow_ups:
                    follow_ups.append(controller.request_run())

        controller.listeners.append(StartFollowUp())
        await controller.discover()
        controller.request_run()

        summaries = await controller.drain()

        assert len(follow_ups) == 1
        assert len(summaries) == 2
        assert follow_ups[0].done
        assert controller.active_runs == {}
