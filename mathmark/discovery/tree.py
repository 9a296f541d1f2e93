"""
TestTree - the persistent node hierarchy.

Owns the set of Document nodes and an index from node id to node. Node ids
are plain strings; hosts keep their own mapping from id to whatever handle
they display.
"""

from collections.abc import Iterable, Iterator
from pathlib import Path

from mathmark.discovery.models import ChildNode, DocumentNode, Node, NodeKind


class UnknownNodeError(KeyError):
    """Raised when a node id is not in the tree."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Unknown node: {node_id}")


def node_id(document_id: str, line: int) -> str:
    """Identity of a section or assertion: owning document plus 0-based line."""
    return f"{document_id}#L{line}"


def document_label(document_id: str) -> str:
    """Display name of a document: its file name."""
    return Path(document_id).name or document_id


def walk(nodes: Iterable[Node]) -> Iterator[Node]:
    """Depth-first, source-order traversal of nodes and their descendants."""
    for node in nodes:
        yield node
        if node.kind != NodeKind.ASSERTION:
            yield from walk(node.children)


class TestTree:
    """
    Document set plus id index.

    The synchronizer replaces a document's children and calls
    ``reindex`` so lookups stay consistent with the latest parse.
    """

    __test__ = False

    def __init__(self) -> None:
        self._documents: dict[str, DocumentNode] = {}
        self._index: dict[str, Node] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    @property
    def documents(self) -> list[DocumentNode]:
        """Root Document set, in insertion order."""
        return list(self._documents.values())

    def get(self, node_id: str) -> Node | None:
        """Look up any node by id."""
        return self._index.get(node_id)

    def require(self, node_id: str) -> Node:
        """Look up a node by id, raising if it is not in the tree."""
        node = self._index.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node

    def get_document(self, document_id: str) -> DocumentNode | None:
        """Look up a document by id."""
        return self._documents.get(document_id)

    def get_or_create_document(self, document_id: str) -> tuple[DocumentNode, bool]:
        """
        Get an existing document or create an unresolved one.

        Returns:
            Tuple of (document, created)
        """
        existing = self._documents.get(document_id)
        if existing is not None:
            return existing, False

        document = DocumentNode(id=document_id, label=document_label(document_id))
        self._documents[document_id] = document
        self._index[document_id] = document
        return document, True

    def remove_document(self, document_id: str) -> DocumentNode | None:
        """Remove a document and its whole subtree."""
        document = self._documents.pop(document_id, None)
        if document is None:
            return None
        for node in walk([document]):
            self._index.pop(node.id, None)
        return document

    def reindex(self, previous: Iterable[ChildNode], current: Iterable[ChildNode]) -> None:
        """Swap the index entries of a document's old subtree for its current one."""
        for node in previous:
            self._index.pop(node.id, None)
        for node in current:
            self._index[node.id] = node

    def assertions(self) -> list[Node]:
        """Every assertion node currently in the tree."""
        return [node for node in walk(self.documents) if node.kind == NodeKind.ASSERTION]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"documents": [document.to_dict() for document in self.documents]}
