"""Exception types shared by the ordering and consistency engine.

Every error is local and synchronous: the requested operation did not apply and
the snapshot it was given is unchanged. Lookup failures derive from ``KeyError``
and rejected input from ``ValueError`` so callers that only know the builtins
keep working.
"""

from __future__ import annotations


class CardweaveError(Exception):
    """Base class for all cardweave errors."""


class NotFoundError(CardweaveError, KeyError):
    """Raised when a card, field, or resource key does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")

    def __str__(self) -> str:
        return str(self.args[0])


class CycleDetectedError(CardweaveError, ValueError):
    """Raised when a move would place a card under itself or its own descendant."""

    def __init__(self, key: str, target: str) -> None:
        self.key = key
        self.target = target
        if key == target:
            msg = f"Card '{key}' cannot be moved inside itself"
        else:
            msg = f"Card '{key}' cannot be moved under its own descendant '{target}'"
        super().__init__(msg)


class DuplicateFieldError(CardweaveError, ValueError):
    """Raised when a custom field name already exists on a card type."""

    def __init__(self, card_type: str, field_name: str) -> None:
        self.card_type = card_type
        self.field_name = field_name
        super().__init__(f"Card type '{card_type}' already has a custom field '{field_name}'")


class DuplicateStateError(CardweaveError, ValueError):
    """Raised when a workflow declares the same state name twice."""

    def __init__(self, workflow: str, state: str) -> None:
        self.workflow = workflow
        self.state = state
        super().__init__(f"Workflow '{workflow}': duplicate state name '{state}'")


class DuplicateCardError(CardweaveError, ValueError):
    """Raised when a new card reuses an existing key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Card key '{key}' is already in use")


class InvalidRankError(CardweaveError, ValueError):
    """Raised on a malformed rank token or an inverted rank pair."""


class RankExhaustedError(CardweaveError, ValueError):
    """Raised when no rank token fits strictly between two neighbours.

    Callers recover by rebalancing the sibling group (see ``rank.rebalance_ranks``).
    """

    def __init__(self, low: str | None, high: str | None) -> None:
        self.low = low
        self.high = high
        super().__init__(f"No rank fits between {low!r} and {high!r}; rebalance the siblings")


class UnknownTransitionError(CardweaveError, ValueError):
    """Raised when a transition is not available from the card's current state."""

    def __init__(self, workflow: str, transition: str, current_state: str | None, available: list[str]) -> None:
        self.workflow = workflow
        self.transition = transition
        self.current_state = current_state
        self.available = available
        where = "before creation" if current_state is None else f"from state '{current_state}'"
        names = ", ".join(available) or "none"
        super().__init__(
            f"Workflow '{workflow}' has no transition '{transition}' {where}. Available transitions: {names}"
        )


class UnknownStateError(CardweaveError, ValueError):
    """Raised when a transition targets a state the workflow does not declare."""

    def __init__(self, workflow: str, state: str) -> None:
        self.workflow = workflow
        self.state = state
        super().__init__(f"Workflow '{workflow}' does not declare state '{state}'")


class HasDescendantsError(CardweaveError, ValueError):
    """Raised when deletion is blocked because the card still has children."""

    def __init__(self, key: str, descendants: int) -> None:
        self.key = key
        self.descendants = descendants
        super().__init__(f"Card '{key}' has {descendants} descendant card(s); choose cascade or reparent to remove it")


class VisibilityInvariantError(CardweaveError, ValueError):
    """Raised when a card type's visibility lists break their invariants."""


class StaleSnapshotError(CardweaveError, RuntimeError):
    """Raised when a commit is attempted against an outdated snapshot version."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Snapshot version is {actual}, expected {expected}; re-read and retry the edit")


class OperationCancelledError(CardweaveError):
    """Raised when a caller-supplied cancel check stops a traversal."""
