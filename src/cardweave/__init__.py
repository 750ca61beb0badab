"""Cardweave -- ordering and consistency engine for hierarchical, workflow-driven cards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cardweave")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from cardweave.engine import CardEngine
from cardweave.fields import CardType, CustomField
from cardweave.resources import ResourceRegistry
from cardweave.snapshot import Snapshot
from cardweave.tree import CardNode, CardTree, DeletionPolicy
from cardweave.workflow import Workflow, WorkflowState, WorkflowTransition

__all__ = [
    "CardEngine",
    "CardNode",
    "CardTree",
    "CardType",
    "CustomField",
    "DeletionPolicy",
    "ResourceRegistry",
    "Snapshot",
    "Workflow",
    "WorkflowState",
    "WorkflowTransition",
    "__version__",
]
