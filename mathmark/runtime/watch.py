"""
Continuous-run registry.

Records which scopes asked to be re-run when their documents change, and
turns a change notification into at most one new run.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final
from uuid import uuid4

from mathmark.config import RunProfile
from mathmark.discovery.models import Node
from mathmark.discovery.tree import TestTree
from mathmark.runtime.scheduler import RunHandle, RunRequest

logger = logging.getLogger(__name__)

# Key used for "every node in the tree"
ALL: Final = "ALL"

# Type alias for the callable that starts a run
RunStarter = Callable[[RunRequest], RunHandle]


@dataclass(frozen=True)
class Subscription:
    """One recorded continuous-run scope."""

    id: str
    key: str
    profile: RunProfile | None


class ContinuousRunRegistry:
    """
    Map watch keys (node ids or ALL) to the profile used to replay them.

    Nodes are stored by id and looked up in the tree when a change arrives,
    so a re-parse that keeps an id keeps its registration.
    """

    def __init__(self, tree: TestTree, start_run: RunStarter):
        """
        Initialize the registry.

        Args:
            tree: Tree used to find the current node for each key
            start_run: Starts a run for a request and returns its handle
        """
        self.tree = tree
        self.start_run = start_run
        self._by_key: dict[str, Subscription] = {}
        self._by_id: dict[str, Subscription] = {}

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key

    def watch(self, scope: Node | str, profile: RunProfile | None = None) -> Subscription:
        """
        Record a scope for continuous runs.

        Args:
            scope: A node, or ALL for the whole tree
            profile: Profile used when the scope is replayed

        Returns:
            Subscription whose id cancels the registration
        """
        key = scope if isinstance(scope, str) else scope.id
        if key != ALL:
            self.tree.require(key)

        # Re-inserting keeps the dict in registration order
        previous = self._by_key.pop(key, None)
        if previous is not None:
            self._by_id.pop(previous.id, None)

        subscription = Subscription(id=f"watch-{uuid4().hex[:8]}", key=key, profile=profile)
        self._by_key[key] = subscription
        self._by_id[subscription.id] = subscription
        logger.debug("Watching %s (%s)", key, subscription.id)
        return subscription

    def cancel_watch(self, subscription_id: str) -> bool:
        """
        Remove a registration.

        Returns:
            True if the subscription was still active
        """
        subscription = self._by_id.pop(subscription_id, None)
        if subscription is None:
            return False
        if self._by_key.get(subscription.key) is subscription:
            del self._by_key[subscription.key]
        logger.debug("Stopped watching %s (%s)", subscription.key, subscription.id)
        return True

    def affected(self, document_id: str) -> RunRequest | None:
        """
        Decide what to re-run after a document changed.

        A registration on ALL wins and replays everything. Otherwise every
        registered node owned by the document is combined into one request;
        with several profiles the last registered one is used.
        """
        everything = self._by_key.get(ALL)
        if everything is not None:
            return RunRequest(include=None, profile=everything.profile, continuous=True)

        include: list[Node] = []
        profile: RunProfile | None = None
        for key, subscription in self._by_key.items():
            node = self.tree.get(key)
            if node is None or node.document_id != document_id:
                continue
            include.append(node)
            profile = subscription.profile

        if not include:
            return None
        return RunRequest(include=include, profile=profile, continuous=True)

    def on_changed(self, document_id: str) -> RunHandle | None:
        """Start the run a change to ``document_id`` calls for, if any."""
        request = self.affected(document_id)
        if request is None:
            return None
        logger.info("Replaying continuous run for %s", document_id)
        return self.start_run(request)
