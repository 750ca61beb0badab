#!/usr/bin/env python3
"""Ranked card hierarchies, workflow transitions, and field visibility in cardweave.

This example builds a small document hierarchy and walks through:

  - Loading a workflow and a card type from plain dicts
  - Creating cards that start in the workflow's creation state
  - Listing the transitions available for a card (wildcard included)
  - Moving and reordering cards; only the moved card gets a new rank
  - Rejecting a move that would put a card under its own descendant
  - Searching the hierarchy while keeping each match's ancestor chain
  - Regrouping a card type's custom fields (always / optional / hidden)

How to run:
    python docs/examples/card_workflow.py
"""

from __future__ import annotations

from cardweave import CardEngine, CustomField, DeletionPolicy, ResourceRegistry
from cardweave.errors import CycleDetectedError
from cardweave.fields import fields_by_group

REVIEW = {
    "name": "review",
    "states": [
        {"name": "Draft", "category": "initial"},
        {"name": "In review", "category": "active"},
        {"name": "Approved", "category": "closed"},
    ],
    "transitions": [
        {"name": "Create", "fromState": [""], "toState": "Draft"},
        {"name": "Submit", "fromState": ["Draft"], "toState": "In review"},
        {"name": "Approve", "fromState": ["In review"], "toState": "Approved"},
        {"name": "Reopen", "fromState": ["*"], "toState": "Draft"},
    ],
}

DOCUMENT = {
    "name": "document",
    "workflow": "review",
    "customFields": [
        {"name": "owner", "isCalculated": False},
        {"name": "due", "isCalculated": False},
        {"name": "progress", "isCalculated": True},
    ],
    "alwaysVisibleFields": ["owner"],
    "optionallyVisibleFields": ["due"],
}


def show_tree(engine: CardEngine) -> None:
    for node in engine.tree.flatten():
        path = engine.tree.path_to(node.key) or []
        indent = "  " * (len(path) - 1)
        print(f"    {indent}{node.title:<24} rank={node.rank or '-':<8} state={node.workflow_state}")


def main() -> None:
    registry = ResourceRegistry()
    registry.load({"workflows": [REVIEW], "cardTypes": [DOCUMENT]})
    engine = CardEngine(registry=registry)

    print("=== Card Hierarchy Demo ===\n")

    engine.create_card("spec", "Specification", "document")
    engine.create_card("intro", "Introduction", "document", parent="spec")
    engine.create_card("design", "Design notes", "document", parent="spec")
    engine.create_card("api", "API design", "document", parent="design")
    engine.create_card("faq", "FAQ", "document")
    print("1. Initial tree:")
    show_tree(engine)

    print("\n2. Transitions for 'intro':")
    for t in engine.available_transitions("intro"):
        print(f"    -> {t.name} ({t.to_state})")
    engine.transition("intro", "Submit")
    engine.transition("intro", "Approve")
    print(f"    intro is now {engine.tree.get('intro').workflow_state}")

    print("\n3. Move 'faq' between 'intro' and 'design':")
    engine.move("faq", "spec", 1)
    show_tree(engine)

    print("\n4. Try to move 'spec' under its own descendant 'api':")
    try:
        engine.move("spec", "api", 0)
    except CycleDetectedError as exc:
        print(f"    Rejected: {exc}")
    print(f"    Legal targets for 'spec': {[n.key for n in engine.moveable_targets('spec')]}")

    print("\n5. Search for 'design':")
    for node in engine.search("design").flatten():
        print(f"    {node.key}")

    print("\n6. Field visibility for 'document':")
    engine.add_field("document", CustomField("reviewer", display_name="Reviewer"), "optional")
    engine.set_field_group("document", "reviewer", "always", 0)
    card_type = engine.cycle_field_group("document", "due")
    for group, custom_fields in fields_by_group(card_type).items():
        print(f"    {group:<9} {[f.name for f in custom_fields]}")

    print("\n7. Remove 'design', promoting its children:")
    removed = engine.remove_card("design", DeletionPolicy.REPARENT)
    print(f"    removed {removed} card(s)")
    show_tree(engine)


if __name__ == "__main__":
    main()
