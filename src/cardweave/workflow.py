"""Workflow state machines -- parsing, validation, and transition resolution.

A workflow is a flat set of uniquely named states plus a table of named
transitions. Each transition lists the states it may start from and the single
state it leads to. Two pseudo-states can appear on the "from" side:

* ``AnyState`` (wire token ``"*"``) -- legal from every declared state.
* ``PreCreation`` (wire token ``""``) -- legal only for a card that does not
  exist yet. ``AnyState`` never covers this case; creation transitions must
  opt in explicitly.

State categories are display metadata and never affect legality.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Literal

from cardweave.errors import DuplicateStateError, UnknownStateError, UnknownTransitionError
from cardweave.types.resources import StateDict, TransitionDict, WorkflowDict
from cardweave.validation import check_name

logger = logging.getLogger(__name__)

StateCategory = Literal["initial", "active", "closed", "none"]
_VALID_CATEGORIES: frozenset[str] = frozenset({"initial", "active", "closed", "none"})

WILDCARD_TOKEN = "*"
PRE_CREATION_TOKEN = ""

# ---------------------------------------------------------------------------
# From-state entries (tagged union)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamedState:
    """A concrete declared state on the "from" side of a transition."""

    name: str

    def to_token(self) -> str:
        return self.name


@dataclass(frozen=True)
class AnyState:
    """Wildcard: the transition is legal from any declared state."""

    def to_token(self) -> str:
        return WILDCARD_TOKEN


@dataclass(frozen=True)
class PreCreation:
    """The card does not exist yet; gates creation-only transitions."""

    def to_token(self) -> str:
        return PRE_CREATION_TOKEN


FromState = NamedState | AnyState | PreCreation

ANY_STATE = AnyState()
PRE_CREATION = PreCreation()


def parse_from_state(token: str) -> FromState:
    """Map a wire token to its from-state entry."""
    if not isinstance(token, str):
        msg = f"fromState entries must be strings, got {type(token).__name__}"
        raise ValueError(msg)
    if token == WILDCARD_TOKEN:
        return ANY_STATE
    if token == PRE_CREATION_TOKEN:
        return PRE_CREATION
    return NamedState(token)


# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowState:
    """A named state with a display category."""

    name: str
    category: StateCategory = "none"

    def __post_init__(self) -> None:
        if self.category not in _VALID_CATEGORIES:
            allowed = sorted(_VALID_CATEGORIES)
            msg = f"Invalid category '{self.category}' for state '{self.name}': must be one of {allowed}"
            raise ValueError(msg)

    def to_dict(self) -> StateDict:
        return {"name": self.name, "category": self.category}


@dataclass(frozen=True)
class WorkflowTransition:
    """A named move from any of ``from_states`` to ``to_state``."""

    name: str
    from_states: tuple[FromState, ...]
    to_state: str

    @property
    def is_creation(self) -> bool:
        return PRE_CREATION in self.from_states

    @property
    def is_wildcard(self) -> bool:
        return ANY_STATE in self.from_states

    def applies_to(self, current_state: str | None) -> bool:
        """Whether this transition may fire from *current_state* (None = not created)."""
        if current_state is None:
            return self.is_creation
        return self.is_wildcard or NamedState(current_state) in self.from_states

    def to_dict(self) -> TransitionDict:
        return {
            "name": self.name,
            "fromState": [f.to_token() for f in self.from_states],
            "toState": self.to_state,
        }


@dataclass(frozen=True)
class Workflow:
    """A complete state machine for one or more card types."""

    name: str
    states: tuple[WorkflowState, ...]
    transitions: tuple[WorkflowTransition, ...]

    def state(self, name: str) -> WorkflowState | None:
        """Look up a declared state by name."""
        for s in self.states:
            if s.name == name:
                return s
        return None

    def has_state(self, name: str) -> bool:
        return self.state(name) is not None

    def transition(self, name: str) -> WorkflowTransition | None:
        """Look up a transition by name (first declaration wins)."""
        for t in self.transitions:
            if t.name == name:
                return t
        return None

    def to_dict(self) -> WorkflowDict:
        return {
            "name": self.name,
            "states": [s.to_dict() for s in self.states],
            "transitions": [t.to_dict() for t in self.transitions],
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_workflow(raw: dict[str, Any]) -> Workflow:
    """Parse a workflow from its JSON-compatible dict form.

    An empty ``fromState`` list is read as a creation transition, matching
    older workflow files.

    Raises:
        ValueError: If required keys are missing or have the wrong shape.
        DuplicateStateError: If a state name is declared twice.
    """
    if not isinstance(raw, dict):
        msg = f"Workflow must be a dict, got {type(raw).__name__}"
        raise ValueError(msg)
    name, error = check_name(raw.get("name"), "workflow name")
    if error:
        raise ValueError(error)

    raw_states = raw.get("states")
    if not isinstance(raw_states, list):
        msg = f"Workflow '{name}': 'states' must be a list, got {type(raw_states).__name__}"
        raise ValueError(msg)
    raw_transitions = raw.get("transitions")
    if raw_transitions is None:
        raw_transitions = []
    if not isinstance(raw_transitions, list):
        msg = f"Workflow '{name}': 'transitions' must be a list, got {type(raw_transitions).__name__}"
        raise ValueError(msg)

    logger.debug("Parsing workflow: %s", name)

    states: list[WorkflowState] = []
    seen: set[str] = set()
    for i, s in enumerate(raw_states):
        if not isinstance(s, dict) or "name" not in s:
            msg = f"Workflow '{name}': state at index {i} must be a dict with 'name'"
            raise ValueError(msg)
        state_name, error = check_name(s["name"], "state name")
        if error:
            msg = f"Workflow '{name}': {error}"
            raise ValueError(msg)
        if state_name in seen:
            raise DuplicateStateError(name, state_name)
        seen.add(state_name)
        states.append(WorkflowState(name=state_name, category=s.get("category") or "none"))

    transitions: list[WorkflowTransition] = []
    for i, t in enumerate(raw_transitions):
        if not isinstance(t, dict) or "name" not in t or "toState" not in t:
            msg = f"Workflow '{name}': transition at index {i} must be a dict with 'name' and 'toState'"
            raise ValueError(msg)
        raw_from = t.get("fromState") or [PRE_CREATION_TOKEN]
        if not isinstance(raw_from, list):
            msg = f"Workflow '{name}': transition '{t['name']}' fromState must be a list"
            raise ValueError(msg)
        # dict.fromkeys: drop repeated tokens, keep declaration order
        from_states = tuple(dict.fromkeys(parse_from_state(token) for token in raw_from))
        transitions.append(WorkflowTransition(name=t["name"], from_states=from_states, to_state=t["toState"]))

    return Workflow(name=name, states=tuple(states), transitions=tuple(transitions))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_workflow(workflow: Workflow) -> list[str]:
    """Check a workflow for internal consistency.

    Returns:
        List of violation messages. Empty list means valid.
    """
    errors: list[str] = []
    state_names: set[str] = set()
    for s in workflow.states:
        if s.name in state_names:
            errors.append(f"duplicate state name '{s.name}'")
        state_names.add(s.name)

    transition_names: set[str] = set()
    for t in workflow.transitions:
        if t.name in transition_names:
            errors.append(f"duplicate transition name '{t.name}'")
        transition_names.add(t.name)
        if t.to_state not in state_names:
            errors.append(f"transition '{t.name}' toState '{t.to_state}' is not a declared state")
        for f in t.from_states:
            if isinstance(f, NamedState) and f.name not in state_names:
                errors.append(f"transition '{t.name}' fromState '{f.name}' is not a declared state")
    return errors


def check_workflow_quality(workflow: Workflow) -> list[str]:
    """Check a workflow for design problems that do not block its use.

    Returns:
        List of warning messages.
    """
    warnings: list[str] = []
    starts = [t.to_state for t in workflow.transitions if t.is_creation]
    if not starts:
        warnings.append("no creation transition: new cards cannot be given a state")

    # Reachability from the creation states
    if starts:
        reachable: set[str] = set()
        queue = deque(starts)
        while queue:
            current = queue.popleft()
            if current in reachable:
                continue
            reachable.add(current)
            queue.extend(t.to_state for t in available_transitions(workflow, current))
        for s in workflow.states:
            if s.name not in reachable:
                warnings.append(f"state '{s.name}' is unreachable from the creation states")

    for s in workflow.states:
        if s.category != "closed" and not available_transitions(workflow, s.name):
            warnings.append(f"state '{s.name}' (category={s.category}) has no outgoing transitions (dead end)")
    return warnings


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def available_transitions(workflow: Workflow | None, current_state: str | None) -> list[WorkflowTransition]:
    """Transitions that may fire from *current_state*, in declaration order.

    ``current_state=None`` means the card does not exist yet: only transitions
    whose from-states include ``PreCreation`` qualify. Returns an empty list
    when the workflow is None or the state is not declared.
    """
    if workflow is None:
        return []
    if current_state is not None and not workflow.has_state(current_state):
        logger.debug("State '%s' is not declared in workflow '%s'", current_state, workflow.name)
        return []
    return [t for t in workflow.transitions if t.applies_to(current_state)]


def apply_transition(workflow: Workflow | None, current_state: str | None, transition_name: str) -> str:
    """Resolve the state a card lands in after *transition_name*.

    A None workflow has no transitions, so every name is unknown.

    Raises:
        UnknownTransitionError: If the transition is not available from
            *current_state*.
        UnknownStateError: If the transition's target state is not declared.
    """
    if workflow is None:
        raise UnknownTransitionError("<none>", transition_name, current_state, [])
    options = available_transitions(workflow, current_state)
    found = next((t for t in options if t.name == transition_name), None)
    if found is None:
        raise UnknownTransitionError(workflow.name, transition_name, current_state, [t.name for t in options])
    if not workflow.has_state(found.to_state):
        raise UnknownStateError(workflow.name, found.to_state)
    logger.debug("Workflow %s: %s --%s--> %s", workflow.name, current_state, transition_name, found.to_state)
    return found.to_state


def creation_state(workflow: Workflow | None) -> str | None:
    """The state a new card starts in: target of the first creation transition."""
    for t in available_transitions(workflow, None):
        return t.to_state
    return None
