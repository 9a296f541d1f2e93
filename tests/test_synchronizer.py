"""
Tests for the node tree and the tree synchronizer.
"""

import pytest

from mathmark.discovery.models import NodeKind, ResolutionState
from mathmark.discovery.synchronizer import TreeSynchronizer
from mathmark.discovery.tree import TestTree, UnknownNodeError, node_id, walk
from tests.support import SAMPLE_DOC, InMemorySource

DOC = "/docs/math.md"


@pytest.fixture
def source() -> InMemorySource:
    return InMemorySource({DOC: SAMPLE_DOC})


@pytest.fixture
def tree() -> TestTree:
    return TestTree()


@pytest.fixture
def synchronizer(tree: TestTree, source: InMemorySource) -> TreeSynchronizer:
    return TreeSynchronizer(tree, source.read_text)


def shape(nodes) -> list:
    """Nested (label, children) structure for comparisons."""
    result = []
    for node in nodes:
        if node.kind == NodeKind.ASSERTION:
            result.append(node.label)
        else:
            result.append((node.label, shape(node.children)))
    return result


class TestTestTree:
    """Tests for the document set and id index."""

    def test_get_or_create_document(self, tree: TestTree) -> None:
        """Test documents are created unresolved and only once."""
        document, created = tree.get_or_create_document(DOC)
        again, created_again = tree.get_or_create_document(DOC)

        assert created is True
        assert created_again is False
        assert again is document
        assert document.label == "math.md"
        assert document.state == ResolutionState.UNRESOLVED
        assert tree.get(DOC) is document

    def test_require_unknown(self, tree: TestTree) -> None:
        """Test looking up a missing id raises UnknownNodeError."""
        with pytest.raises(UnknownNodeError) as exc_info:
            tree.require("nope")
        assert exc_info.value.node_id == "nope"

    def test_remove_document_drops_subtree(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test removing a document removes its descendants from the index."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, SAMPLE_DOC)
        assert node_id(DOC, 1) in tree

        tree.remove_document(DOC)

        assert DOC not in tree
        assert node_id(DOC, 1) not in tree
        assert tree.documents == []


class TestSynchronize:
    """Tests for reconciling a document with its text."""

    def test_sample_document_shape(self, tree: TestTree, synchronizer: TreeSynchronizer) -> None:
        """Test sections nest by heading depth."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, SAMPLE_DOC)

        assert document.state == ResolutionState.RESOLVED
        assert shape(document.children) == [
            ("A", ["2 + 2 = 4", ("B", ["3 * 3 = 9", "2 + 2 = 5"])]),
        ]
        section_a = document.children[0]
        assert section_a.depth == 1
        assert section_a.children[1].depth == 2

    def test_equal_depth_heading_closes_section(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test a heading of equal or shallower depth closes open sections."""
        text = "# A\n## B\n1+1=2\n# C\n2+2=4\n## D\n### E\n3+3=6\n## F\n"
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, text)

        assert shape(document.children) == [
            ("A", [("B", ["1 + 1 = 2"])]),
            ("C", ["2 + 2 = 4", ("D", [("E", ["3 + 3 = 6"])]), ("F", [])]),
        ]

    def test_assertions_before_first_heading_attach_to_document(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test assertions with no open section are document children."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, "1+1=2\n# A\n2+2=4\n")

        assert shape(document.children) == ["1 + 1 = 2", ("A", ["2 + 2 = 4"])]

    def test_children_lie_within_their_section(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test every child line is after its heading and before the next closing heading."""
        text = "# A\n1+1=2\n## B\n2+2=4\n### C\n3+3=6\n## D\n4+4=8\n# E\n5+5=10\n"
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, text)

        headings = [n for n in walk(document.children) if n.kind == NodeKind.SECTION]
        for section in headings:
            closing = [
                h.line for h in headings if h.line > section.line and h.depth <= section.depth
            ]
            end = min(closing) if closing else float("inf")
            for child in section.children:
                assert section.line < child.line < end

    def test_idempotent(self, tree: TestTree, synchronizer: TreeSynchronizer) -> None:
        """Test synchronizing identical text twice keeps identities and order."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, SAMPLE_DOC)
        before = list(walk(document.children))

        result = synchronizer.synchronize(document, SAMPLE_DOC)
        after = list(walk(document.children))

        assert len(before) == len(after)
        assert all(a is b for a, b in zip(before, after))
        assert result.added == 0
        assert result.removed == 0
        assert result.retained == 5
        assert not result.changed

    def test_unchanged_lines_keep_identity(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test editing one line only replaces that line's node."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, SAMPLE_DOC)
        kept = tree.get(node_id(DOC, 3))
        edited = tree.get(node_id(DOC, 4))

        result = synchronizer.synchronize(document, SAMPLE_DOC.replace("2+2=5", "2+2=4"))

        assert tree.get(node_id(DOC, 3)) is kept
        replacement = tree.get(node_id(DOC, 4))
        assert replacement is not edited
        assert replacement.expected == 4
        assert result.added == 1
        assert result.removed == 1

    def test_removed_lines_leave_index(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test nodes whose lines disappeared are dropped from the index."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, SAMPLE_DOC)

        result = synchronizer.synchronize(document, "# A\n2+2=4\n")

        assert node_id(DOC, 2) not in tree
        assert node_id(DOC, 3) not in tree
        assert node_id(DOC, 4) not in tree
        assert result.removed == 3
        assert shape(document.children) == [("A", ["2 + 2 = 4"])]

    def test_inserted_line_shifts_identity(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test inserting a line above an assertion reassigns its id."""
        document, _ = tree.get_or_create_document(DOC)
        synchronizer.synchronize(document, "1+1=2\n")

        synchronizer.synchronize(document, "\n1+1=2\n")

        assert node_id(DOC, 0) not in tree
        assert tree.get(node_id(DOC, 1)).label == "1 + 1 = 2"


class TestRefresh:
    """Tests for reading and synchronizing from the source."""

    @pytest.mark.asyncio
    async def test_refresh_reads_source(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test refresh parses the source text."""
        document, _ = tree.get_or_create_document(DOC)

        result = await synchronizer.refresh(document)

        assert result is not None
        assert result.added == 5
        assert document.is_resolved

    @pytest.mark.asyncio
    async def test_unreadable_document_keeps_children(
        self, tree: TestTree, synchronizer: TreeSynchronizer, source: InMemorySource
    ) -> None:
        """Test a read failure leaves the document as it was."""
        document, _ = tree.get_or_create_document(DOC)
        await synchronizer.refresh(document)
        children = list(document.children)
        del source.documents[DOC]

        result = await synchronizer.refresh(document)

        assert result is None
        assert document.children == children
        assert document.is_resolved
        assert "not found" in document.error

    @pytest.mark.asyncio
    async def test_unreadable_unresolved_document_stays_unresolved(
        self, tree: TestTree, synchronizer: TreeSynchronizer
    ) -> None:
        """Test resolution state is left as-is on failure."""
        document, _ = tree.get_or_create_document("/docs/missing.md")

        await synchronizer.ensure_resolved(document)

        assert document.state == ResolutionState.UNRESOLVED
        assert document.children == []

    @pytest.mark.asyncio
    async def test_ensure_resolved_only_parses_once(
        self, tree: TestTree, synchronizer: TreeSynchronizer, source: InMemorySource
    ) -> None:
        """Test resolved documents are not re-read."""
        document, _ = tree.get_or_create_document(DOC)

        await synchronizer.ensure_resolved(document)
        await synchronizer.ensure_resolved(document)

        assert source.reads == [DOC]

    @pytest.mark.asyncio
    async def test_bare_os_error_from_reader(self, tree: TestTree) -> None:
        """Test a host reader raising plain FileNotFoundError is handled like a read error."""

        async def read_text(document_id: str) -> str:
            raise FileNotFoundError(2, "No such file or directory", document_id)

        synchronizer = TreeSynchronizer(tree, read_text)
        document, _ = tree.get_or_create_document(DOC)

        result = await synchronizer.refresh(document)

        assert result is None
        assert document.state == ResolutionState.UNRESOLVED
        assert "No such file or directory" in document.error
