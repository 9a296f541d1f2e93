"""
Tree synchronizer.

Reconciles a Document's children against a fresh parse of its text:
- nodes whose source line is unchanged keep their identity and object
- new lines get new nodes
- nodes whose line disappeared are dropped

Nesting follows heading depth: a section stays open until a heading of
equal or shallower depth appears.
"""

import logging
from dataclasses import dataclass

from mathmark.discovery.models import (
    AssertionNode,
    ChildNode,
    DocumentNode,
    NodeKind,
    ResolutionState,
    SectionNode,
)
from mathmark.discovery.parser import AssertionEvent, HeadingEvent, MarkdownParser
from mathmark.discovery.tree import TestTree, node_id, walk
from mathmark.discovery.workspace import DocumentReader

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Counts describing one reconciliation."""

    document_id: str
    added: int = 0
    retained: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        return self.added > 0 or self.removed > 0


class TreeSynchronizer:
    """
    Keep document subtrees consistent with their source text.

    Usage:
        synchronizer = TreeSynchronizer(tree, workspace.read_text)
        await synchronizer.refresh(document)
        # or, with text already in hand (editor buffers)
        synchronizer.synchronize(document, text)
    """

    def __init__(self, tree: TestTree, read_text: DocumentReader):
        """
        Initialize the synchronizer.

        Args:
            tree: Tree whose index is kept up to date
            read_text: Async reader returning a document's current text
        """
        self.tree = tree
        self.read_text = read_text

    def synchronize(self, document: DocumentNode, text: str) -> SyncResult:
        """
        Rebuild a document's children from text, reusing unchanged nodes.

        The new child lists are built aside and swapped in at the end, so a
        document is never observed half-updated.
        """
        previous = {node.id: node for node in walk(document.children)}
        result = SyncResult(document_id=document.id)

        roots: list[ChildNode] = []
        sections: dict[str, SectionNode] = {}
        children: dict[str, list[ChildNode]] = {}
        stack: list[SectionNode] = []

        def attach(node: ChildNode) -> None:
            if stack:
                children[stack[-1].id].append(node)
            else:
                roots.append(node)

        for event in MarkdownParser(text):
            identity = node_id(document.id, event.range.line)
            existing = previous.get(identity)

            if isinstance(event, AssertionEvent):
                candidate = AssertionNode(
                    id=identity,
                    document_id=document.id,
                    range=event.range,
                    left=event.left,
                    operator=event.operator,
                    right=event.right,
                    expected=event.expected,
                )
                if (
                    existing is not None
                    and existing.kind == NodeKind.ASSERTION
                    and existing.same_content(candidate)
                ):
                    candidate = existing
                    result.retained += 1
                else:
                    result.added += 1
                attach(candidate)

            elif isinstance(event, HeadingEvent):
                while stack and stack[-1].depth >= event.depth:
                    stack.pop()

                section = SectionNode(
                    id=identity,
                    document_id=document.id,
                    range=event.range,
                    name=event.name,
                    depth=event.depth,
                )
                if (
                    existing is not None
                    and existing.kind == NodeKind.SECTION
                    and existing.same_content(section)
                ):
                    section = existing
                    result.retained += 1
                else:
                    result.added += 1
                attach(section)
                sections[section.id] = section
                children[section.id] = []
                stack.append(section)

        for section_id, section in sections.items():
            section.children = children[section_id]
        document.children = roots
        document.state = ResolutionState.RESOLVED
        document.error = None

        current = {node.id: node for node in walk(roots)}
        result.removed = sum(
            1 for identity, node in previous.items() if current.get(identity) is not node
        )
        self.tree.reindex(previous.values(), current.values())

        logger.debug(
            "Synchronized %s: %d added, %d retained, %d removed",
            document.id,
            result.added,
            result.retained,
            result.removed,
        )
        return result

    async def refresh(self, document: DocumentNode) -> SyncResult | None:
        """
        Re-read a document and synchronize it.

        Best-effort: if the text cannot be read the document keeps its
        previous children and resolution state, the error is recorded on the
        document, and None is returned.
        """
        try:
            text = await self.read_text(document.id)
        except OSError as e:
            logger.warning("Skipping sync of %s: %s", document.id, getattr(e, "reason", e))
            document.error = str(e)
            return None
        return self.synchronize(document, text)

    async def ensure_resolved(self, document: DocumentNode) -> None:
        """Synchronize a document if it has never been parsed."""
        if not document.is_resolved:
            await self.refresh(document)
