"""TypedDicts for workflow and card type resources."""

from __future__ import annotations

from typing import Any, TypedDict


class StateDict(TypedDict):
    """State entry in a workflow's states list."""

    name: str
    category: str


class TransitionDict(TypedDict):
    """Transition entry. ``fromState`` holds state names, ``"*"`` or ``""``."""

    name: str
    fromState: list[str]
    toState: str


class WorkflowDict(TypedDict):
    name: str
    states: list[StateDict]
    transitions: list[TransitionDict]


class _CustomFieldRequired(TypedDict):
    name: str
    isCalculated: bool


class CustomFieldDict(_CustomFieldRequired, total=False):
    """Custom field entry. ``isEditable`` is only written when it differs from ``not isCalculated``."""

    displayName: str
    description: str
    isEditable: bool


class CardTypeDict(TypedDict):
    name: str
    workflow: str
    customFields: list[CustomFieldDict]
    alwaysVisibleFields: list[str]
    optionallyVisibleFields: list[str]


class ResourceBundle(TypedDict, total=False):
    """Input of ``ResourceRegistry.load()``; extra keys are ignored."""

    workflows: list[WorkflowDict | dict[str, Any]]
    cardTypes: list[CardTypeDict | dict[str, Any]]
