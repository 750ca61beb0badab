"""Versioned holder for the current card tree.

The tree itself is immutable; this holder is the one place a new snapshot is
substituted for the old one. Writers read ``(version, tree)``, compute a new
tree with pure operations, and commit against the version they read. A commit
against a stale version fails instead of overwriting a concurrent edit.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from cardweave.errors import StaleSnapshotError
from cardweave.tree import CardTree

logger = logging.getLogger(__name__)


class Snapshot:
    """Compare-and-swap cell holding a ``CardTree`` and its version number."""

    def __init__(self, tree: CardTree | None = None) -> None:
        self._tree = tree if tree is not None else CardTree()
        self._version = 0
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    @property
    def tree(self) -> CardTree:
        return self._tree

    def read(self) -> tuple[int, CardTree]:
        """The current version and tree, read together."""
        with self._lock:
            return self._version, self._tree

    def commit(self, expected_version: int, tree: CardTree) -> int:
        """Substitute *tree* if nobody committed since *expected_version*.

        Returns:
            The new version number.

        Raises:
            StaleSnapshotError: If the snapshot moved on.
        """
        with self._lock:
            if self._version != expected_version:
                raise StaleSnapshotError(expected_version, self._version)
            self._tree = tree
            self._version += 1
            logger.debug("Committed snapshot version %d", self._version)
            return self._version

    def apply(self, operation: Callable[[CardTree], CardTree]) -> CardTree:
        """Run *operation* on the current tree and commit its result once.

        Exceptions from *operation* propagate and nothing is committed.
        """
        version, tree = self.read()
        new_tree = operation(tree)
        self.commit(version, new_tree)
        return new_tree
