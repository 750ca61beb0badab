# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from tree.py, engine.py, or any other cardweave module -- this prevents circular imports.
"""Typed dict contracts for the JSON-compatible forms of cards and resources."""

from __future__ import annotations

from cardweave.types.cards import CardNodeDict
from cardweave.types.resources import (
    CardTypeDict,
    CustomFieldDict,
    ResourceBundle,
    StateDict,
    TransitionDict,
    WorkflowDict,
)

__all__ = [
    "CardNodeDict",
    "CardTypeDict",
    "CustomFieldDict",
    "ResourceBundle",
    "StateDict",
    "TransitionDict",
    "WorkflowDict",
]
