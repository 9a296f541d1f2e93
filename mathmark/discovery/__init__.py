"""
Mathmark Discovery.

Read documents from the workspace, parse them into structural events and
keep the node tree in sync.
"""

from mathmark.discovery.models import (
    AssertionNode,
    AssertionOutcome,
    DocumentNode,
    Node,
    NodeKind,
    Operator,
    Position,
    ResolutionState,
    SectionNode,
    TextRange,
)
from mathmark.discovery.parser import (
    AssertionEvent,
    HeadingEvent,
    MarkdownParser,
    ParseEvent,
    parse_markdown,
)
from mathmark.discovery.synchronizer import SyncResult, TreeSynchronizer
from mathmark.discovery.tree import TestTree, UnknownNodeError, node_id
from mathmark.discovery.workspace import (
    DocumentReadError,
    DocumentSource,
    FileEvent,
    FileEventKind,
    FileSystemWorkspace,
    document_id_for,
)

__all__ = [
    # Models
    "AssertionNode",
    "AssertionOutcome",
    "DocumentNode",
    "Node",
    "NodeKind",
    "Operator",
    "Position",
    "ResolutionState",
    "SectionNode",
    "TextRange",
    # Parser
    "AssertionEvent",
    "HeadingEvent",
    "MarkdownParser",
    "ParseEvent",
    "parse_markdown",
    # Tree
    "SyncResult",
    "TestTree",
    "TreeSynchronizer",
    "UnknownNodeError",
    "node_id",
    # Workspace
    "DocumentReadError",
    "DocumentSource",
    "FileEvent",
    "FileEventKind",
    "FileSystemWorkspace",
    "document_id_for",
]
