"""
Workspace access for document discovery.

Provides the host collaborators the core relies on:
- reading a document's text
- enumerating documents matching a glob
- watching a directory tree for created/changed/deleted documents

FileSystemWorkspace implements them on the local disk, watching by polling
file signatures.
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Type alias for the text reader handed to the synchronizer and scheduler
DocumentReader = Callable[[str], Awaitable[str]]

DEFAULT_PATTERN = "**/*.md"
DEFAULT_EXCLUDE_DIRS = (".git", "node_modules", ".venv")


class DocumentReadError(OSError):
    """Raised when a document's text cannot be read."""

    def __init__(self, document_id: str, reason: str) -> None:
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot read {document_id}: {reason}")


class FileEventKind(str, Enum):
    """Kinds of file-system change."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileEvent:
    """A change to one document on disk."""

    kind: FileEventKind
    document_id: str


def document_id_for(path: str | Path) -> str:
    """Normalized identity of a document: its absolute path."""
    return str(Path(path).resolve())


def _segment_pattern(segment: str) -> str:
    parts: list[str] = []
    index = 0
    while index < len(segment):
        char = segment[index]
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[" and "]" in segment[index + 2 :]:
            end = segment.index("]", index + 2)
            body = segment[index + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\") + "]")
            index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return "".join(parts)


def glob_matches(relative_path: str, pattern: str) -> bool:
    """
    Match a relative POSIX path against a ``Path.glob`` style pattern.

    ``*``, ``?`` and ``[...]`` stay within one path segment; a ``**``
    segment spans zero or more directories.
    """
    segments = pattern.split("/")
    regex = ""
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            regex += ".*" if last else "(?:[^/]+/)*"
        else:
            regex += _segment_pattern(segment) + ("" if last else "/")
    return re.fullmatch(regex, relative_path) is not None


@runtime_checkable
class DocumentSource(Protocol):
    """Interface the controller needs from its host's file system."""

    async def read_text(self, document_id: str) -> str:
        """
        Read a document's full text.

        Raises:
            DocumentReadError: If the document is missing or unreadable
        """
        ...

    async def find_documents(self, pattern: str) -> list[str]:
        """Enumerate document ids matching a glob pattern."""
        ...

    def watch(self, pattern: str, stop: asyncio.Event | None = None) -> AsyncIterator[FileEvent]:
        """Stream change events for documents matching a glob pattern."""
        ...


class FileSystemWorkspace:
    """
    Local directory acting as the document source.

    Usage:
        workspace = FileSystemWorkspace("docs")
        ids = await workspace.find_documents("**/*.md")
        text = await workspace.read_text(ids[0])
    """

    def __init__(
        self,
        root: str | Path,
        encoding: str = "utf-8",
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        poll_interval_seconds: float = 0.5,
    ):
        """
        Initialize the workspace.

        Args:
            root: Directory to scan and watch
            encoding: Text encoding of documents
            exclude_dirs: Directory names never descended into
            poll_interval_seconds: Delay between watch polls
        """
        self.root = Path(root).resolve()
        self.encoding = encoding
        self.exclude_dirs = frozenset(exclude_dirs)
        self.poll_interval_seconds = poll_interval_seconds

    async def read_text(self, document_id: str) -> str:
        return await asyncio.to_thread(self._read_text, document_id)

    def _read_text(self, document_id: str) -> str:
        try:
            return Path(document_id).read_text(encoding=self.encoding)
        except FileNotFoundError as e:
            raise DocumentReadError(document_id, "not found") from e
        except UnicodeDecodeError as e:
            raise DocumentReadError(document_id, f"not valid {self.encoding}") from e
        except OSError as e:
            raise DocumentReadError(document_id, e.strerror or str(e)) from e

    async def find_documents(self, pattern: str = DEFAULT_PATTERN) -> list[str]:
        return sorted(await asyncio.to_thread(self._scan, pattern))

    def _is_excluded(self, path: Path) -> bool:
        relative = path.relative_to(self.root)
        return any(part in self.exclude_dirs for part in relative.parts[:-1])

    def _scan(self, pattern: str) -> dict[str, tuple[int, int]]:
        """Map every matching document to its (mtime_ns, size) signature."""
        signatures: dict[str, tuple[int, int]] = {}
        for path in self.root.glob(pattern):
            if self._is_excluded(path):
                continue
            try:
                stat = path.stat()
            except OSError:
                # Vanished between glob and stat
                continue
            if path.is_file():
                signatures[document_id_for(path)] = (stat.st_mtime_ns, stat.st_size)
        return signatures

    async def watch(
        self, pattern: str = DEFAULT_PATTERN, stop: asyncio.Event | None = None
    ) -> AsyncIterator[FileEvent]:
        """
        Poll the workspace and yield events until ``stop`` is set.

        The first poll only records a baseline; events describe changes
        relative to the previous poll.
        """
        previous = await asyncio.to_thread(self._scan, pattern)
        logger.debug("Watching %d document(s) under %s", len(previous), self.root)

        while stop is None or not stop.is_set():
            await asyncio.sleep(self.poll_interval_seconds)
            current = await asyncio.to_thread(self._scan, pattern)
            for event in diff_signatures(previous, current):
                logger.debug("%s: %s", event.kind.value, event.document_id)
                yield event
            previous = current


def diff_signatures(
    previous: dict[str, tuple[int, int]], current: dict[str, tuple[int, int]]
) -> list[FileEvent]:
    """Compare two scans and describe what changed between them."""
    events: list[FileEvent] = []
    for document_id, signature in current.items():
        if document_id not in previous:
            events.append(FileEvent(FileEventKind.CREATED, document_id))
        elif previous[document_id] != signature:
            events.append(FileEvent(FileEventKind.CHANGED, document_id))
    for document_id in previous:
        if document_id not in current:
            events.append(FileEvent(FileEventKind.DELETED, document_id))
    return events
