"""Shared pytest fixtures for cardweave tests."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest

from cardweave.config import CARDWEAVE_DIR_NAME, CONFIG_FILENAME
from cardweave.engine import CardEngine
from cardweave.fields import CardType
from cardweave.resources import ResourceRegistry
from cardweave.tree import CardTree
from cardweave.workflow import Workflow
from tests._tree_factory import REVIEW_WORKFLOW, TASK_WORKFLOW, card, make_card_type, make_tree, review_workflow


@pytest.fixture
def workflow() -> Workflow:
    """Draft/Approved workflow with a creation, a concrete, and a wildcard transition."""
    return review_workflow()


@pytest.fixture
def card_type() -> CardType:
    """Card type with fields f1 (always), f2 (optional), f3 (hidden)."""
    return make_card_type()


@pytest.fixture
def chain_tree() -> CardTree:
    """Root -> X -> Y, plus a sibling subtree S -> T under Root and a second root Z."""
    return make_tree(
        card(
            "root",
            "0|h",
            card("x", "0|h", card("y", "0|n")),
            card("s", "0|t", card("t", "0|n")),
        ),
        card("z", "0|t"),
    )


@pytest.fixture
def abc_tree() -> CardTree:
    """Root R with children A, B, C ranked "0|a", "0|b", "0|c"."""
    return make_tree(card("r", "0|n", card("a", "0|a"), card("b", "0|b"), card("c", "0|c")))


@pytest.fixture
def registry() -> ResourceRegistry:
    reg = ResourceRegistry()
    reg.load(
        {
            "workflows": [REVIEW_WORKFLOW, TASK_WORKFLOW],
            "cardTypes": [
                make_card_type().to_dict(),
                {"name": "task", "workflow": "task", "customFields": []},
            ],
        }
    )
    return reg


@pytest.fixture
def engine(registry: ResourceRegistry) -> CardEngine:
    return CardEngine(registry=registry)


@pytest.fixture
def cardweave_project(tmp_path: Path) -> Generator[Path, None, None]:
    """A tmp directory set up as a cardweave project (.cardweave/ with config.json).

    Returns the project root (parent of .cardweave/). The package logger's
    handlers are removed afterwards.
    """
    cardweave_dir = tmp_path / CARDWEAVE_DIR_NAME
    cardweave_dir.mkdir()
    (cardweave_dir / CONFIG_FILENAME).write_text(json.dumps({"max_rank_length": 32, "log_level": "debug"}))
    yield tmp_path
    logger = logging.getLogger("cardweave")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
