"""
MathTestController - the host-facing surface of mathmark.

Glues the tree, synchronizer, scheduler and continuous-run registry to a
document source:
- tree queries and lazy resolution
- editor buffer events (open, edit, close)
- file-system events (created, changed, deleted)
- run requests, cancellation and continuous-run registrations
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePath

from mathmark.config import MathmarkConfig, RunProfile
from mathmark.discovery.models import DocumentNode, Node, NodeKind
from mathmark.discovery.synchronizer import SyncResult, TreeSynchronizer
from mathmark.discovery.tree import TestTree
from mathmark.discovery.workspace import (
    DocumentSource,
    FileEvent,
    FileEventKind,
    glob_matches,
)
from mathmark.runtime.scheduler import RunHandle, RunListener, RunRequest, RunSummary, Scheduler
from mathmark.runtime.watch import ALL, ContinuousRunRegistry, Subscription

logger = logging.getLogger(__name__)


@dataclass
class WatchHandle:
    """Registrations created by one continuous run request."""

    subscriptions: list[Subscription] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [subscription.id for subscription in self.subscriptions]


class MathTestController:
    """
    Discover, synchronize and run assertions for one workspace.

    Example usage:
        ```python
        workspace = FileSystemWorkspace("docs")
        controller = MathTestController(workspace, listeners=[reporter])
        await controller.discover()

        handle = controller.request_run()
        summary = await handle.wait()
        ```
    """

    def __init__(
        self,
        source: DocumentSource,
        config: MathmarkConfig | None = None,
        listeners: list[RunListener] | None = None,
        root: str | Path | None = None,
    ):
        """
        Initialize the controller.

        Args:
            source: Host collaborator for reading, enumerating and watching documents
            config: Discovery and profile configuration
            listeners: Receive the events of every run, continuous ones included
            root: Workspace root the include glob is relative to; without one,
                document paths are matched from their filesystem anchor
        """
        self.source = source
        self.config = config or MathmarkConfig()
        self.listeners = list(listeners or [])
        self.root = Path(root).resolve() if root is not None else None

        self.tree = TestTree()
        self.synchronizer = TreeSynchronizer(self.tree, self.read_document_text)
        self.scheduler = Scheduler(self.tree, self.synchronizer, self.read_document_text)
        self.registry = ContinuousRunRegistry(self.tree, self._start)

        self._buffers: dict[str, str] = {}
        self.active_runs: dict[str, RunHandle] = {}

    # =========================================================================
    # Documents
    # =========================================================================

    async def read_document_text(self, document_id: str) -> str:
        """Read a document, preferring an open editor buffer over the disk."""
        buffer = self._buffers.get(document_id)
        if buffer is not None:
            return buffer
        return await self.source.read_text(document_id)

    def accepts(self, document_id: str) -> bool:
        """Whether a document's path under the root matches the include glob."""
        path = PurePath(document_id)
        if self.root is not None:
            try:
                path = path.relative_to(self.root)
            except ValueError:
                return False
        elif path.anchor:
            path = path.relative_to(path.anchor)
        return glob_matches(path.as_posix(), self.config.include)

    def is_open(self, document_id: str) -> bool:
        return document_id in self._buffers

    # =========================================================================
    # Tree queries
    # =========================================================================

    @property
    def documents(self) -> list[DocumentNode]:
        """Root Document set."""
        return self.tree.documents

    def get(self, node_id: str) -> Node:
        """
        Look up a node by id.

        Raises:
            UnknownNodeError: If the id is not in the tree
        """
        return self.tree.require(node_id)

    async def discover(self) -> list[DocumentNode]:
        """
        Seed the tree from a workspace scan.

        New documents are added unresolved; documents no longer found on
        disk and not open in an editor are forgotten.
        """
        found = await self.source.find_documents(self.config.include)
        for document_id in found:
            self.tree.get_or_create_document(document_id)

        present = set(found) | set(self._buffers)
        for document in self.tree.documents:
            if document.id not in present:
                logger.debug("Forgetting %s", document.id)
                self.tree.remove_document(document.id)

        logger.info("Discovered %d document(s)", len(self.tree))
        return self.tree.documents

    async def resolve_children(self, node: Node | None = None) -> None:
        """
        Resolve a node's children on demand.

        With no node, the tree itself is seeded from the workspace.
        """
        if node is None:
            await self.discover()
        elif node.kind == NodeKind.DOCUMENT:
            await self.synchronizer.refresh(node)

    async def resolve_all(self) -> None:
        """Resolve every document currently in the tree."""
        for document in self.tree.documents:
            await self.synchronizer.ensure_resolved(document)

    # =========================================================================
    # Editor buffers
    # =========================================================================

    def on_document_opened(self, document_id: str, text: str) -> SyncResult | None:
        """Track an open buffer and synchronize the document from it."""
        if not self.accepts(document_id):
            return None
        self._buffers[document_id] = text
        document, _ = self.tree.get_or_create_document(document_id)
        return self.synchronizer.synchronize(document, text)

    def on_document_edited(self, document_id: str, text: str) -> SyncResult | None:
        """Re-synchronize a document from its edited buffer."""
        return self.on_document_opened(document_id, text)

    async def on_document_closed(self, document_id: str) -> SyncResult | None:
        """Drop a buffer and fall back to the on-disk text."""
        if self._buffers.pop(document_id, None) is None:
            return None
        document = self.tree.get_document(document_id)
        if document is None:
            return None
        return await self.synchronizer.refresh(document)

    # =========================================================================
    # File-system events
    # =========================================================================

    async def on_file_event(self, event: FileEvent) -> RunHandle | None:
        """
        Apply a file-system change to the tree and replay continuous runs.

        Returns:
            Handle of the continuous run started, if any
        """
        if not self.accepts(event.document_id):
            return None

        if event.kind == FileEventKind.DELETED:
            if self.is_open(event.document_id):
                return None
            self.tree.remove_document(event.document_id)
            logger.debug("Removed %s", event.document_id)
            return None

        document, _ = self.tree.get_or_create_document(event.document_id)
        await self.synchronizer.refresh(document)
        return self.registry.on_changed(event.document_id)

    async def watch_workspace(self, stop: asyncio.Event | None = None) -> None:
        """Consume the source's change stream until ``stop`` is set."""
        async for event in self.source.watch(self.config.include, stop):
            await self.on_file_event(event)

    # =========================================================================
    # Runs
    # =========================================================================

    def _start(self, request: RunRequest) -> RunHandle:
        handle = self.scheduler.start(request, self.listeners)
        self.active_runs[handle.id] = handle
        handle.task.add_done_callback(lambda _: self.active_runs.pop(handle.id, None))
        return handle

    def request_run(
        self,
        include: list[Node] | None = None,
        exclude: list[Node] | None = None,
        profile: RunProfile | None = None,
        continuous: bool = False,
    ) -> RunHandle | WatchHandle:
        """
        Start a run, or register a continuous one.

        Args:
            include: Nodes to run (None for everything)
            exclude: Nodes skipped together with their subtrees
            profile: Profile to run with; coverage profiles collect coverage
            continuous: Register the scope for replay on change instead of running now

        Returns:
            RunHandle for a normal run, WatchHandle for a continuous one
        """
        if continuous:
            scopes: list[Node | str] = list(include) if include is not None else [ALL]
            return WatchHandle(
                subscriptions=[self.registry.watch(scope, profile) for scope in scopes]
            )

        request = RunRequest(include=include, exclude=list(exclude or []), profile=profile)
        return self._start(request)

    def cancel(self, handle: RunHandle) -> None:
        """Cancel a run; remaining queued assertions are skipped."""
        handle.cancel()

    def cancel_watch(self, subscription_id: str) -> bool:
        """Remove a continuous-run registration."""
        return self.registry.cancel_watch(subscription_id)

    async def drain(self) -> list[RunSummary]:
        """Wait for every run in flight, including runs started while waiting."""
        summaries: list[RunSummary] = []
        while self.active_runs:
            run_id = next(iter(self.active_runs))
            handle = self.active_runs.pop(run_id)
            summaries.append(await handle.wait())
        return summaries
