"""CardEngine -- facade over the snapshot, resource registry, and configuration.

The engine is what an application layer talks to: it resolves a card's
workflow through its card type, commits each successful tree operation to the
snapshot, and logs every operation with its duration. All the real work is
done by the pure functions in ``tree``, ``workflow`` and ``fields``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from cardweave import fields
from cardweave.config import DEFAULT_CONFIG, EngineConfig, find_cardweave_root, read_config
from cardweave.errors import NotFoundError
from cardweave.fields import CardType, CustomField, Direction, VisibilityGroup
from cardweave.logging import setup_logging
from cardweave.resources import ResourceRegistry
from cardweave.snapshot import Snapshot
from cardweave.tree import CardNode, CardTree, DeletionPolicy
from cardweave.workflow import Workflow, WorkflowTransition

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CardEngine:
    """Runs card, workflow, and field-visibility operations against one project."""

    def __init__(
        self,
        tree: CardTree | None = None,
        registry: ResourceRegistry | None = None,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        self.config: EngineConfig = EngineConfig(**{**DEFAULT_CONFIG, **(config or {})})
        tree = (tree if tree is not None else CardTree()).with_max_rank_length(self.config["max_rank_length"])
        self.snapshot = Snapshot(tree)
        self.registry = registry if registry is not None else ResourceRegistry()

    @classmethod
    def from_project(
        cls,
        project_path: Path | None = None,
        *,
        tree: CardTree | None = None,
        registry: ResourceRegistry | None = None,
    ) -> CardEngine:
        """Create an engine by discovering .cardweave/ from project_path (or cwd).

        Reads config.json and starts JSON logging into the same directory.
        """
        cardweave_dir = find_cardweave_root(project_path)
        config = read_config(cardweave_dir)
        setup_logging(cardweave_dir, config.get("log_level", "INFO"))
        return cls(tree, registry, config=config)

    @property
    def tree(self) -> CardTree:
        return self.snapshot.tree

    # -- Instrumentation ------------------------------------------------------

    def _timed(self, operation: str, card: str | None, args: dict[str, Any], fn: Callable[[], T]) -> T:
        t0 = time.monotonic()
        try:
            result = fn()
        except Exception as exc:
            logger.info(
                "operation_failed",
                extra={"operation": operation, "card": card, "args_data": args, "error": str(exc)},
            )
            raise
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info(
            "operation_done",
            extra={"operation": operation, "card": card, "args_data": args, "duration_ms": duration_ms},
        )
        return result

    def _apply(self, operation: str, card: str | None, args: dict[str, Any], fn: Callable[[CardTree], CardTree]) -> CardTree:
        return self._timed(operation, card, args, lambda: self.snapshot.apply(fn))

    # -- Resolution -------------------------------------------------------------

    def workflow_for_card(self, key: str) -> Workflow | None:
        """Workflow of the card's type, or None when the type is unknown."""
        return self.registry.workflow_for(self.tree.get(key).card_type)

    def _require_card_type(self, name: str) -> CardType:
        card_type = self.registry.get_card_type(name)
        if card_type is None:
            raise NotFoundError("Card type", name)
        return card_type

    def _require_workflow(self, key: str) -> Workflow:
        node = self.tree.get(key)
        self._require_card_type(node.card_type)
        workflow = self.registry.workflow_for(node.card_type)
        if workflow is None:
            raise NotFoundError("Workflow for card type", node.card_type)
        return workflow

    # -- Tree queries -----------------------------------------------------------

    def available_transitions(self, key: str) -> list[WorkflowTransition]:
        """Transitions for the card's action menu (empty for untyped cards)."""
        return self.tree.available_transitions(key, self.workflow_for_card(key))

    def moveable_targets(self, key: str) -> list[CardNode]:
        return self.tree.moveable_targets(key)

    def search(self, query: str) -> CardTree:
        return self._timed("search", None, {"query": query}, lambda: self.tree.search(query))

    # -- Tree mutations -----------------------------------------------------------

    def create_card(
        self,
        key: str,
        title: str,
        card_type: str,
        *,
        parent: str | None = None,
        index: int | None = None,
    ) -> CardNode:
        """Create a card of *card_type*, starting in its workflow's creation state."""
        self._require_card_type(card_type)
        workflow = self.registry.workflow_for(card_type)
        args = {"title": title, "card_type": card_type, "parent": parent, "index": index}
        tree = self._apply(
            "create_card",
            key,
            args,
            lambda t: t.add_card(key, title, parent=parent, index=index, card_type=card_type, workflow=workflow),
        )
        return tree.get(key)

    def move(self, key: str, new_parent: str | None, index: int) -> CardNode:
        tree = self._apply(
            "move", key, {"new_parent": new_parent, "index": index}, lambda t: t.move(key, new_parent, index)
        )
        return tree.get(key)

    def reorder(self, key: str, index: int) -> CardNode:
        tree = self._apply("reorder", key, {"index": index}, lambda t: t.reorder(key, index))
        return tree.get(key)

    def rebalance(self, parent: str | None = None) -> CardTree:
        return self._apply("rebalance", parent, {}, lambda t: t.rebalance_children(parent))

    def remove_card(self, key: str, policy: DeletionPolicy) -> int:
        """Remove a card; returns how many cards left the tree."""
        before = len(self.tree)
        tree = self._apply("remove_card", key, {"policy": policy.value}, lambda t: t.remove(key, policy))
        return before - len(tree)

    def transition(self, key: str, transition_name: str) -> CardNode:
        workflow = self._require_workflow(key)
        tree = self._apply(
            "transition",
            key,
            {"transition": transition_name},
            lambda t: t.transition(key, workflow, transition_name),
        )
        return tree.get(key)

    # -- Card type visibility -----------------------------------------------------

    def _update_card_type(self, operation: str, name: str, args: dict[str, Any], fn: Callable[[CardType], CardType]) -> CardType:
        def run() -> CardType:
            updated = fn(self._require_card_type(name))
            return self.registry.register_card_type(updated)

        return self._timed(operation, None, {"card_type": name, **args}, run)

    def add_field(self, card_type: str, new_field: CustomField, into_group: VisibilityGroup | None = None) -> CardType:
        group: Any = into_group or self.config["default_field_group"]
        return self._update_card_type(
            "add_field", card_type, {"field": new_field.name, "group": group}, lambda ct: fields.add_field(ct, new_field, group)
        )

    def remove_field(self, card_type: str, field_name: str) -> CardType:
        return self._update_card_type(
            "remove_field", card_type, {"field": field_name}, lambda ct: fields.remove_field(ct, field_name)
        )

    def set_field_group(
        self, card_type: str, field_name: str, group: VisibilityGroup, index: int | None = None
    ) -> CardType:
        return self._update_card_type(
            "set_field_group",
            card_type,
            {"field": field_name, "group": group, "index": index},
            lambda ct: fields.set_group(ct, field_name, group, index),
        )

    def reorder_field(self, card_type: str, field_name: str, direction: Direction) -> CardType:
        return self._update_card_type(
            "reorder_field",
            card_type,
            {"field": field_name, "direction": direction},
            lambda ct: fields.reorder_within_group(ct, field_name, direction),
        )

    def cycle_field_group(self, card_type: str, field_name: str, direction: Direction = "down") -> CardType:
        return self._update_card_type(
            "cycle_field_group",
            card_type,
            {"field": field_name, "direction": direction},
            lambda ct: fields.cycle_group(ct, field_name, direction),
        )
