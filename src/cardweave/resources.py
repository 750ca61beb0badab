"""Registry of validated workflows and card types.

Workflows and card types arrive from an external storage layer as dicts. The
registry parses them, validates each one once before first use, and caches the
result. Invalid resources are rejected on direct registration and skipped
(with a warning) when loading a bundle.
"""

from __future__ import annotations

import logging
from typing import Any

from cardweave.errors import NotFoundError
from cardweave.fields import CardType, validate_card_type
from cardweave.types.resources import ResourceBundle
from cardweave.workflow import Workflow, check_workflow_quality, parse_workflow, validate_workflow

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Loads, validates, caches, and resolves workflows and card types."""

    # Size limits for externally supplied resources
    MAX_STATES = 100
    MAX_TRANSITIONS = 400
    MAX_FIELDS = 200

    def __init__(self) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._card_types: dict[str, CardType] = {}

    # -- Registration ---------------------------------------------------------

    def register_workflow(self, workflow: Workflow | dict[str, Any]) -> Workflow:
        """Validate and register a workflow, replacing one with the same name.

        Raises:
            ValueError: If the workflow is malformed, too large, or inconsistent.
        """
        if isinstance(workflow, dict):
            workflow = parse_workflow(workflow)
        if len(workflow.states) > self.MAX_STATES:
            msg = f"Workflow '{workflow.name}' has {len(workflow.states)} states (max {self.MAX_STATES})"
            raise ValueError(msg)
        if len(workflow.transitions) > self.MAX_TRANSITIONS:
            msg = f"Workflow '{workflow.name}' has {len(workflow.transitions)} transitions (max {self.MAX_TRANSITIONS})"
            raise ValueError(msg)
        errors = validate_workflow(workflow)
        if errors:
            msg = f"Workflow '{workflow.name}' is invalid: {'; '.join(errors)}"
            raise ValueError(msg)
        for warning in check_workflow_quality(workflow):
            logger.warning("Quality: workflow %s: %s", workflow.name, warning)
        self._workflows[workflow.name] = workflow
        logger.debug("Registered workflow: %s (%d states)", workflow.name, len(workflow.states))
        return workflow

    def register_card_type(self, card_type: CardType | dict[str, Any]) -> CardType:
        """Validate and register a card type.

        The card type's workflow must already be registered.

        Raises:
            ValueError: If the card type is malformed or breaks visibility invariants.
            NotFoundError: If its workflow is not registered.
        """
        if isinstance(card_type, dict):
            card_type = CardType.from_dict(card_type)
        if len(card_type.custom_fields) > self.MAX_FIELDS:
            msg = f"Card type '{card_type.name}' has {len(card_type.custom_fields)} fields (max {self.MAX_FIELDS})"
            raise ValueError(msg)
        if card_type.workflow not in self._workflows:
            raise NotFoundError("Workflow", card_type.workflow)
        errors = validate_card_type(card_type)
        if errors:
            msg = f"Card type '{card_type.name}' is invalid: {'; '.join(errors)}"
            raise ValueError(msg)
        self._card_types[card_type.name] = card_type
        logger.debug("Registered card type: %s (workflow=%s)", card_type.name, card_type.workflow)
        return card_type

    def load(self, bundle: ResourceBundle | dict[str, Any]) -> None:
        """Register every workflow, then every card type, in *bundle*.

        ``bundle`` has ``workflows`` and ``cardTypes`` lists of dicts. Invalid
        entries are logged and skipped so one bad resource does not hide the
        rest.
        """
        for raw in bundle.get("workflows") or []:
            try:
                self.register_workflow(raw)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping invalid workflow %s: %s", _name_of(raw), exc)
        for raw in bundle.get("cardTypes") or []:
            try:
                self.register_card_type(raw)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping invalid card type %s: %s", _name_of(raw), exc)
        logger.info("Resource loading complete: %d workflows, %d card types", len(self._workflows), len(self._card_types))

    # -- Queries ----------------------------------------------------------------

    def get_workflow(self, name: str) -> Workflow | None:
        return self._workflows.get(name)

    def get_card_type(self, name: str) -> CardType | None:
        return self._card_types.get(name)

    def list_workflows(self) -> list[Workflow]:
        return list(self._workflows.values())

    def list_card_types(self) -> list[CardType]:
        return list(self._card_types.values())

    def workflow_for(self, card_type_name: str) -> Workflow | None:
        """The workflow governing cards of *card_type_name*, or None if unknown."""
        card_type = self._card_types.get(card_type_name)
        if card_type is None:
            return None
        return self._workflows.get(card_type.workflow)

    def card_types_using(self, workflow_name: str) -> list[str]:
        """Names of card types whose workflow is *workflow_name*."""
        return sorted(ct.name for ct in self._card_types.values() if ct.workflow == workflow_name)

    def to_dict(self) -> ResourceBundle:
        """Bundle form accepted by ``load()``."""
        return {
            "workflows": [w.to_dict() for w in self._workflows.values()],
            "cardTypes": [ct.to_dict() for ct in self._card_types.values()],
        }


def _name_of(raw: Any) -> str:
    if isinstance(raw, dict):
        return repr(raw.get("name"))
    return repr(raw)
