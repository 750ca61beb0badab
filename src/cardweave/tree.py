"""Immutable card hierarchy snapshots with cycle-safe mutation.

A ``CardTree`` stores its cards in an arena: a flat mapping from card key to
``CardNode`` plus explicit ordered child-key tuples and a root-key tuple. No
node holds a reference to its parent; parents are found by scanning child
lists.

Every mutating method validates first, builds a new arena, and returns a new
``CardTree``. The receiver is never modified, so a failed operation leaves the
caller's snapshot exactly as it was.

Child order is always ascending rank order (``rank.sort_key``). Moves compute a
single new rank between the destination neighbours; siblings are only
re-ranked when no token fits between them (rank exhaustion), in which case the
destination group is rebalanced.
"""

from __future__ import annotations

import bisect
import enum
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from cardweave import rank as ranks
from cardweave.errors import (
    CycleDetectedError,
    DuplicateCardError,
    HasDescendantsError,
    InvalidRankError,
    NotFoundError,
    OperationCancelledError,
    RankExhaustedError,
)
from cardweave.types.cards import CardNodeDict
from cardweave.validation import check_name, sanitize_title
from cardweave.workflow import Workflow, WorkflowTransition, apply_transition, available_transitions, creation_state

logger = logging.getLogger(__name__)

DEFAULT_MAX_RANK_LENGTH = 64

CardPredicate = Callable[["CardNode"], bool]
CancelCheck = Callable[[], bool]

# Keys read from / written to the nested dict form; everything else is an annotation.
_CARD_KEYS = frozenset({"key", "title", "rank", "cardType", "workflowState", "children"})


class DeletionPolicy(enum.Enum):
    """What happens to the descendants of a removed card."""

    CASCADE = "cascade"  # remove the whole subtree
    REPARENT = "reparent"  # children take the removed card's place
    BLOCK = "block"  # refuse while descendants exist


@dataclass(frozen=True)
class CardNode:
    """One card in a snapshot.

    ``annotations`` carries data attached by external layers (policy checks,
    denied operations, ...). It is opaque here and preserved unchanged.
    """

    key: str
    title: str = ""
    rank: str | None = None
    card_type: str = ""
    workflow_state: str | None = None
    children: tuple[str, ...] = ()
    annotations: Mapping[str, Any] = field(default_factory=dict, compare=False)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def title_matches(query: str) -> CardPredicate:
    """Default search predicate: case-insensitive substring match on title.

    An empty or whitespace-only query matches every card.
    """
    needle = query.strip().casefold()
    if not needle:
        return lambda node: True
    return lambda node: needle in node.title.casefold()


class CardTree:
    """An immutable forest of ranked cards."""

    def __init__(
        self,
        nodes: Mapping[str, CardNode] | None = None,
        roots: Sequence[str] = (),
        *,
        max_rank_length: int = DEFAULT_MAX_RANK_LENGTH,
    ) -> None:
        self._nodes: dict[str, CardNode] = dict(nodes or {})
        self._roots: tuple[str, ...] = tuple(roots)
        self.max_rank_length = max_rank_length

    # -- Construction / export ----------------------------------------------

    @classmethod
    def from_dicts(cls, cards: Sequence[CardNodeDict | Mapping[str, Any]], *, max_rank_length: int = DEFAULT_MAX_RANK_LENGTH) -> CardTree:
        """Build a snapshot from nested card dicts.

        Each dict needs ``key``; ``title``, ``rank``, ``cardType``,
        ``workflowState`` and ``children`` (nested dicts) are optional. Other
        keys are kept as annotations. Each sibling group is sorted by rank.

        Raises:
            ValueError: If a key is missing or malformed, or a title is not
                a string.
            InvalidRankError: If a rank is not a string.
            DuplicateCardError: If a key appears twice.
        """
        nodes: dict[str, CardNode] = {}

        def build(items: Sequence[CardNodeDict | Mapping[str, Any]]) -> tuple[str, ...]:
            level: list[CardNode] = []
            for raw in items:
                key, error = check_name(raw.get("key"), "card key")
                if error:
                    raise ValueError(error)
                if key in nodes:
                    raise DuplicateCardError(key)
                title = raw.get("title")
                if title is not None and not isinstance(title, str):
                    msg = f"Card '{key}' has a non-string title: {title!r}"
                    raise ValueError(msg)
                rank = raw.get("rank")
                if rank is not None and not isinstance(rank, str):
                    msg = f"Card '{key}' has a non-string rank: {rank!r}"
                    raise InvalidRankError(msg)
                nodes[key] = CardNode(key=key)  # reserve before recursing
                child_keys = build(raw.get("children") or [])
                node = CardNode(
                    key=key,
                    title=title or "",
                    rank=rank or None,
                    card_type=raw.get("cardType") or "",
                    workflow_state=raw.get("workflowState"),
                    children=child_keys,
                    annotations={k: v for k, v in raw.items() if k not in _CARD_KEYS},
                )
                nodes[key] = node
                level.append(node)
            return tuple(n.key for n in ranks.sort_siblings(level))

        roots = build(cards)
        return cls(nodes, roots, max_rank_length=max_rank_length)

    def to_dicts(self) -> list[dict[str, Any]]:
        """Nested dict form accepted by ``from_dicts()``."""

        def dump(key: str) -> dict[str, Any]:
            node = self._nodes[key]
            out: dict[str, Any] = dict(node.annotations)
            out.update(
                {
                    "key": node.key,
                    "title": node.title,
                    "rank": node.rank,
                    "cardType": node.card_type,
                    "workflowState": node.workflow_state,
                    "children": [dump(c) for c in node.children],
                }
            )
            return out

        return [dump(k) for k in self._roots]

    def _derive(self, nodes: dict[str, CardNode], roots: Sequence[str]) -> CardTree:
        return CardTree(nodes, roots, max_rank_length=self.max_rank_length)

    def with_max_rank_length(self, max_rank_length: int) -> CardTree:
        """Same cards, different rank-length limit for later insertions."""
        return CardTree(self._nodes, self._roots, max_rank_length=max_rank_length)

    # -- Basic access ---------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __iter__(self) -> Iterator[CardNode]:
        return iter(self.flatten())

    @property
    def root_keys(self) -> tuple[str, ...]:
        return self._roots

    @property
    def roots(self) -> list[CardNode]:
        return [self._nodes[k] for k in self._roots]

    def find(self, key: str) -> CardNode | None:
        return self._nodes.get(key)

    def get(self, key: str) -> CardNode:
        """Return the card with *key*, or raise ``NotFoundError``."""
        node = self._nodes.get(key)
        if node is None:
            raise NotFoundError("Card", key)
        return node

    def children(self, key: str | None) -> list[CardNode]:
        """Children of *key* in rank order; ``None`` means the root level."""
        return [self._nodes[c] for c in self._child_keys(key)]

    def _child_keys(self, key: str | None) -> tuple[str, ...]:
        if key is None:
            return self._roots
        return self.get(key).children

    def find_parent(self, key: str) -> CardNode | None:
        """Parent card of *key*; None for a root-level or unknown card."""
        for node in self._nodes.values():
            if key in node.children:
                return node
        return None

    def parent_key(self, key: str) -> str | None:
        parent = self.find_parent(key)
        return None if parent is None else parent.key

    def path_to(self, key: str) -> list[CardNode] | None:
        """Cards from the root down to *key* (inclusive), or None if absent."""
        if key not in self._nodes:
            return None
        path = [self._nodes[key]]
        parent = self.find_parent(key)
        while parent is not None:
            path.append(parent)
            parent = self.find_parent(parent.key)
        path.reverse()
        return path

    # -- Traversal -------------------------------------------------------------

    def flatten(self, *, cancel_check: CancelCheck | None = None) -> list[CardNode]:
        """All cards in pre-order (parent before children, siblings by rank)."""
        result: list[CardNode] = []

        def walk(keys: Sequence[str]) -> None:
            _poll(cancel_check)
            for k in keys:
                node = self._nodes[k]
                result.append(node)
                walk(node.children)

        walk(self._roots)
        return result

    def descendant_keys(self, key: str) -> list[str]:
        """Keys strictly below *key*, pre-order."""
        result: list[str] = []
        stack = list(reversed(self.get(key).children))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self._nodes[current].children))
        return result

    def count_descendants_inclusive(self, key: str) -> int:
        """The card itself plus everything below it (for delete warnings)."""
        return 1 + len(self.descendant_keys(key))

    def is_descendant_of(self, key: str, ancestor_key: str) -> bool:
        """True when *key* lies strictly below *ancestor_key*."""
        if key not in self._nodes or ancestor_key not in self._nodes:
            return False
        return key in self.descendant_keys(ancestor_key)

    def filter(self, predicate: CardPredicate, *, cancel_check: CancelCheck | None = None) -> CardTree:
        """Keep cards that match *predicate* or have a matching descendant.

        Kept cards keep only their kept children. Root order is preserved and
        applying the same predicate again returns an equal tree.
        """
        kept: dict[str, CardNode] = {}

        def prune(keys: Sequence[str]) -> tuple[str, ...]:
            _poll(cancel_check)
            survivors: list[str] = []
            for k in keys:
                node = self._nodes[k]
                children = prune(node.children)
                if children or predicate(node):
                    kept[k] = node if children == node.children else replace(node, children=children)
                    survivors.append(k)
            return tuple(survivors)

        roots = prune(self._roots)
        return self._derive(kept, roots)

    def search(self, query: str, *, cancel_check: CancelCheck | None = None) -> CardTree:
        """Filter by the default title predicate."""
        return self.filter(title_matches(query), cancel_check=cancel_check)

    # -- Move validation ------------------------------------------------------

    def moveable_targets(self, key: str) -> list[CardNode]:
        """Cards *key* may be re-parented under, in pre-order.

        Excludes the card itself, its current parent (a no-op move), and all of
        its descendants (which would create a cycle).
        """
        self.get(key)
        excluded = {key, *self.descendant_keys(key)}
        parent = self.parent_key(key)
        if parent is not None:
            excluded.add(parent)
        return [n for n in self.flatten() if n.key not in excluded]

    def can_move_to_root(self, key: str) -> bool:
        """Whether the root level is a real (non no-op) destination for *key*."""
        self.get(key)
        return key not in self._roots

    def _check_move(self, key: str, new_parent: str | None) -> None:
        self.get(key)
        if new_parent is None:
            return
        if new_parent == key or self.is_descendant_of(new_parent, key):
            raise CycleDetectedError(key, new_parent)
        self.get(new_parent)

    # -- Ranking helpers ------------------------------------------------------

    def _rank_for_slot(self, nodes: Mapping[str, CardNode], siblings: Sequence[str], index: int) -> str | None:
        """Rank between the siblings around *index*, or None if no token fits."""
        low = nodes[siblings[index - 1]].rank if index > 0 else None
        high = nodes[siblings[index]].rank if index < len(siblings) else None
        if low is None and index > 0:
            return None  # unranked neighbour: nothing to straddle
        try:
            new_rank = ranks.between(low, high)
        except (RankExhaustedError, InvalidRankError):
            return None  # colliding or malformed neighbours: rebalance
        if len(new_rank) > self.max_rank_length:
            logger.debug("Rank %s exceeds max length %d", new_rank, self.max_rank_length)
            return None
        return new_rank

    def _rebalanced(self, nodes: dict[str, CardNode], siblings: Sequence[str]) -> None:
        for k, r in zip(siblings, ranks.rebalance_ranks(len(siblings)), strict=True):
            nodes[k] = replace(nodes[k], rank=r)

    def _place(self, nodes: dict[str, CardNode], siblings: tuple[str, ...], key: str, index: int) -> tuple[str, ...]:
        """Rank *key* into *siblings* (which must not contain it) at *index*.

        Writes the new rank (and any rebalanced sibling ranks) into *nodes*
        and returns the new sibling tuple in rank order.
        """
        index = min(index, len(siblings))
        new_rank = self._rank_for_slot(nodes, siblings, index)
        if new_rank is None:
            logger.info("Rank space exhausted around index %d; rebalancing %d siblings", index, len(siblings))
            self._rebalanced(nodes, siblings)
            low = nodes[siblings[index - 1]].rank if index > 0 else None
            high = nodes[siblings[index]].rank if index < len(siblings) else None
            new_rank = ranks.between(low, high)
        nodes[key] = replace(nodes[key], rank=new_rank)
        order = [ranks.sort_key(nodes[k].rank, k) for k in siblings]
        pos = bisect.bisect(order, ranks.sort_key(new_rank, key))
        return (*siblings[:pos], key, *siblings[pos:])

    def _with_children(self, nodes: dict[str, CardNode], roots: tuple[str, ...], parent: str | None, children: tuple[str, ...]) -> tuple[str, ...]:
        if parent is None:
            return children
        nodes[parent] = replace(nodes[parent], children=children)
        return roots

    # -- Mutations --------------------------------------------------------------

    def move(self, key: str, new_parent: str | None, index: int) -> CardTree:
        """Move *key* under *new_parent* (None = root level) near position *index*.

        The card gets a rank between the destination siblings that currently
        sit at ``index - 1`` and ``index`` (ignoring the moved card itself);
        its final position is whatever that rank dictates. An index past the
        end appends.

        Raises:
            CycleDetectedError: If *new_parent* is *key* or one of its descendants.
            NotFoundError: If *key* or *new_parent* does not exist.
            ValueError: If *index* is negative.
        """
        if index < 0:
            msg = f"Index must be zero or greater, got {index}"
            raise ValueError(msg)
        self._check_move(key, new_parent)

        nodes = dict(self._nodes)
        roots = self._roots
        old_parent = self.parent_key(key)

        # Detach
        old_siblings = tuple(k for k in self._child_keys(old_parent) if k != key)
        roots = self._with_children(nodes, roots, old_parent, old_siblings)

        # Attach
        if new_parent is None:
            destination = roots
        else:
            destination = tuple(k for k in nodes[new_parent].children if k != key)
        placed = self._place(nodes, destination, key, index)
        roots = self._with_children(nodes, roots, new_parent, placed)

        logger.debug("Moved %s from %s to %s (index %d, rank %s)", key, old_parent, new_parent, index, nodes[key].rank)
        return self._derive(nodes, roots)

    def reorder(self, key: str, index: int) -> CardTree:
        """Move *key* to position *index* among its current siblings."""
        return self.move(key, self.parent_key(key), index)

    def rank_first(self, key: str) -> CardTree:
        """Rank *key* before all of its siblings."""
        return self.reorder(key, 0)

    def rank_after(self, key: str, after_key: str) -> CardTree:
        """Rank *key* directly after its sibling *after_key*.

        Raises:
            ValueError: If the two cards do not share a parent.
        """
        self.get(key)
        self.get(after_key)
        parent = self.parent_key(key)
        if self.parent_key(after_key) != parent:
            msg = f"Cards '{key}' and '{after_key}' must have the same parent"
            raise ValueError(msg)
        if key == after_key:
            msg = f"Card '{key}' cannot be ranked after itself"
            raise ValueError(msg)
        siblings = [k for k in self._child_keys(parent) if k != key]
        return self.move(key, parent, siblings.index(after_key) + 1)

    def rebalance_children(self, parent_key: str | None) -> CardTree:
        """Give the children of *parent_key* fresh, evenly spaced ranks.

        Existing order (including the after-all placement of unranked cards)
        is kept.
        """
        siblings = self._child_keys(parent_key)
        nodes = dict(self._nodes)
        self._rebalanced(nodes, siblings)
        return self._derive(nodes, self._roots)

    def rebalance_all(self) -> CardTree:
        """Rebalance every sibling group in the tree."""
        nodes = dict(self._nodes)
        self._rebalanced(nodes, self._roots)
        for node in self._nodes.values():
            self._rebalanced(nodes, node.children)
        return self._derive(nodes, self._roots)

    def add_card(
        self,
        key: str,
        title: str,
        *,
        parent: str | None = None,
        index: int | None = None,
        card_type: str = "",
        workflow: Workflow | None = None,
        annotations: Mapping[str, Any] | None = None,
    ) -> CardTree:
        """Create a card under *parent* (None = root level).

        The rank is computed against the intended siblings (default: last).
        With a workflow, the card starts in the target state of the workflow's
        first creation transition.

        Raises:
            DuplicateCardError: If *key* is already used.
            NotFoundError: If *parent* does not exist.
            ValueError: If the key or title is invalid, or the workflow has no
                creation transition.
        """
        key, error = check_name(key, "card key")
        if error:
            raise ValueError(error)
        title, error = sanitize_title(title)
        if error:
            raise ValueError(error)
        if key in self._nodes:
            raise DuplicateCardError(key)
        siblings = self._child_keys(parent)
        state = None
        if workflow is not None:
            state = creation_state(workflow)
            if state is None:
                msg = f"Workflow '{workflow.name}' has no creation transition; cannot create card '{key}'"
                raise ValueError(msg)

        nodes = dict(self._nodes)
        nodes[key] = CardNode(
            key=key,
            title=title,
            card_type=card_type,
            workflow_state=state,
            annotations=dict(annotations or {}),
        )
        placed = self._place(nodes, siblings, key, len(siblings) if index is None else index)
        roots = self._with_children(nodes, self._roots, parent, placed)
        logger.debug("Created card %s under %s (rank %s, state %s)", key, parent, nodes[key].rank, state)
        return self._derive(nodes, roots)

    def remove(self, key: str, policy: DeletionPolicy) -> CardTree:
        """Remove *key*, handling its descendants according to *policy*.

        ``REPARENT`` puts the children where the removed card was, keeping
        their relative order; they are re-ranked among their new siblings.

        Raises:
            NotFoundError: If *key* does not exist.
            HasDescendantsError: If *policy* is ``BLOCK`` and the card has children.
        """
        node = self.get(key)
        descendants = self.descendant_keys(key)
        if policy is DeletionPolicy.BLOCK and descendants:
            raise HasDescendantsError(key, len(descendants))

        nodes = dict(self._nodes)
        parent = self.parent_key(key)
        siblings = self._child_keys(parent)
        position = siblings.index(key)
        remaining = siblings[:position] + siblings[position + 1 :]
        del nodes[key]

        if policy is DeletionPolicy.CASCADE:
            for d in descendants:
                del nodes[d]
        elif policy is DeletionPolicy.REPARENT:
            for offset, child in enumerate(node.children):
                remaining = self._place(nodes, remaining, child, position + offset)

        roots = self._with_children(nodes, self._roots, parent, remaining)
        logger.debug("Removed %s (%s, %d descendants)", key, policy.value, len(descendants))
        return self._derive(nodes, roots)

    # -- Workflow ---------------------------------------------------------------

    def available_transitions(self, key: str, workflow: Workflow | None) -> list[WorkflowTransition]:
        """Transitions the card may take next under *workflow*."""
        return available_transitions(workflow, self.get(key).workflow_state)

    def transition(self, key: str, workflow: Workflow, transition_name: str) -> CardTree:
        """Apply *transition_name* to the card's workflow state.

        Raises:
            NotFoundError: If *key* does not exist.
            UnknownTransitionError: If the transition is not available.
            UnknownStateError: If its target state is not declared.
        """
        node = self.get(key)
        new_state = apply_transition(workflow, node.workflow_state, transition_name)
        nodes = dict(self._nodes)
        nodes[key] = replace(node, workflow_state=new_state)
        return self._derive(nodes, self._roots)

    # -- Comparison -----------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CardTree):
            return NotImplemented
        return self._roots == other._roots and self._nodes == other._nodes

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"CardTree({len(self._nodes)} cards, {len(self._roots)} roots)"


def _poll(cancel_check: CancelCheck | None) -> None:
    if cancel_check is not None and cancel_check():
        raise OperationCancelledError("Traversal cancelled by caller")
