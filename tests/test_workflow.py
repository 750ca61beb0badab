"""Tests for workflow parsing, validation, and transition resolution."""

from __future__ import annotations

import copy
import random
from typing import Any

import pytest

from cardweave.errors import DuplicateStateError, UnknownStateError, UnknownTransitionError
from cardweave.workflow import (
    ANY_STATE,
    PRE_CREATION,
    AnyState,
    NamedState,
    PreCreation,
    Workflow,
    WorkflowState,
    WorkflowTransition,
    apply_transition,
    available_transitions,
    check_workflow_quality,
    creation_state,
    parse_from_state,
    parse_workflow,
    validate_workflow,
)
from tests._tree_factory import REVIEW_WORKFLOW, TASK_WORKFLOW


def _names(transitions: list[WorkflowTransition]) -> list[str]:
    return [t.name for t in transitions]


class TestFromState:
    def test_tokens(self) -> None:
        assert parse_from_state("*") is ANY_STATE
        assert parse_from_state("") is PRE_CREATION
        assert parse_from_state("Draft") == NamedState("Draft")

    def test_round_trip_tokens(self) -> None:
        for token in ("*", "", "Draft"):
            assert parse_from_state(token).to_token() == token

    def test_variants_are_distinct(self) -> None:
        assert AnyState() != PreCreation()
        assert NamedState("*") != ANY_STATE

    def test_non_string_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be strings"):
            parse_from_state(None)  # type: ignore[arg-type]


class TestAvailableTransitions:
    def test_pre_creation(self, workflow: Workflow) -> None:
        assert _names(available_transitions(workflow, None)) == ["Create"]

    def test_named_and_wildcard(self, workflow: Workflow) -> None:
        assert _names(available_transitions(workflow, "Draft")) == ["Approve", "Reopen"]

    def test_wildcard_only(self, workflow: Workflow) -> None:
        assert _names(available_transitions(workflow, "Approved")) == ["Reopen"]

    def test_wildcard_does_not_cover_pre_creation(self, workflow: Workflow) -> None:
        assert "Reopen" not in _names(available_transitions(workflow, None))

    def test_null_workflow(self) -> None:
        assert available_transitions(None, "Draft") == []
        assert available_transitions(None, None) == []

    def test_unknown_state(self, workflow: Workflow) -> None:
        assert available_transitions(workflow, "Nowhere") == []

    def test_declaration_order_preserved(self) -> None:
        wf = parse_workflow(
            {
                "name": "w",
                "states": [{"name": "A"}, {"name": "B"}],
                "transitions": [
                    {"name": "z-any", "fromState": ["*"], "toState": "A"},
                    {"name": "a-named", "fromState": ["A"], "toState": "B"},
                    {"name": "m-any", "fromState": ["*"], "toState": "B"},
                ],
            }
        )
        assert _names(available_transitions(wf, "A")) == ["z-any", "a-named", "m-any"]

    def test_category_never_affects_legality(self, workflow: Workflow) -> None:
        recategorised = Workflow(
            name=workflow.name,
            states=tuple(WorkflowState(s.name, "none") for s in workflow.states),
            transitions=workflow.transitions,
        )
        for state in (None, "Draft", "Approved"):
            assert available_transitions(recategorised, state) == available_transitions(workflow, state)

    def test_legality_over_random_workflows(self) -> None:
        rng = random.Random(42)
        for _ in range(200):
            states = [f"s{i}" for i in range(rng.randint(1, 6))]
            transitions = []
            for j in range(rng.randint(0, 8)):
                pool = [*states, "*", ""]
                tokens = rng.sample(pool, rng.randint(1, min(3, len(pool))))
                transitions.append({"name": f"t{j}", "fromState": tokens, "toState": rng.choice(states)})
            wf = parse_workflow({"name": "rand", "states": [{"name": s} for s in states], "transitions": transitions})

            expected_creation = [t["name"] for t in transitions if "" in t["fromState"]]
            assert _names(available_transitions(wf, None)) == expected_creation
            for s in states:
                expected = [t["name"] for t in transitions if s in t["fromState"] or "*" in t["fromState"]]
                assert _names(available_transitions(wf, s)) == expected


class TestApplyTransition:
    def test_create(self, workflow: Workflow) -> None:
        assert apply_transition(workflow, None, "Create") == "Draft"

    def test_approve_then_reopen(self, workflow: Workflow) -> None:
        state = apply_transition(workflow, "Draft", "Approve")
        assert state == "Approved"
        assert apply_transition(workflow, state, "Reopen") == "Draft"

    def test_unavailable_transition(self, workflow: Workflow) -> None:
        with pytest.raises(UnknownTransitionError) as exc_info:
            apply_transition(workflow, "Approved", "Approve")
        err = exc_info.value
        assert err.current_state == "Approved"
        assert err.available == ["Reopen"]
        assert "Reopen" in str(err)

    def test_no_workflow(self) -> None:
        with pytest.raises(UnknownTransitionError) as exc_info:
            apply_transition(None, "Draft", "Approve")
        assert exc_info.value.available == []

    def test_unknown_transition_name(self, workflow: Workflow) -> None:
        with pytest.raises(UnknownTransitionError):
            apply_transition(workflow, "Draft", "Teleport")

    def test_creation_transition_needs_pre_creation(self, workflow: Workflow) -> None:
        with pytest.raises(UnknownTransitionError, match="from state 'Draft'"):
            apply_transition(workflow, "Draft", "Create")

    def test_unknown_target_state(self) -> None:
        broken = Workflow(
            name="broken",
            states=(WorkflowState("A"),),
            transitions=(WorkflowTransition("Go", (ANY_STATE,), "Ghost"),),
        )
        with pytest.raises(UnknownStateError, match="Ghost"):
            apply_transition(broken, "A", "Go")

    def test_creation_state(self, workflow: Workflow) -> None:
        assert creation_state(workflow) == "Draft"
        assert creation_state(None) is None


class TestParseWorkflow:
    def test_round_trip(self) -> None:
        wf = parse_workflow(TASK_WORKFLOW)
        assert wf.to_dict() == TASK_WORKFLOW
        assert parse_workflow(wf.to_dict()) == wf

    def test_empty_from_state_means_creation(self) -> None:
        raw = copy.deepcopy(REVIEW_WORKFLOW)
        raw["transitions"][0]["fromState"] = []
        wf = parse_workflow(raw)
        assert wf.transitions[0].from_states == (PRE_CREATION,)
        assert wf.transitions[0].is_creation

    def test_missing_from_state_means_creation(self) -> None:
        raw = copy.deepcopy(REVIEW_WORKFLOW)
        del raw["transitions"][0]["fromState"]
        assert parse_workflow(raw).transitions[0].is_creation

    def test_repeated_tokens_collapsed(self) -> None:
        raw = copy.deepcopy(REVIEW_WORKFLOW)
        raw["transitions"][1]["fromState"] = ["Draft", "Draft", "*", "*"]
        assert parse_workflow(raw).transitions[1].from_states == (NamedState("Draft"), ANY_STATE)

    def test_default_category(self) -> None:
        wf = parse_workflow({"name": "w", "states": [{"name": "A"}], "transitions": []})
        assert wf.states[0].category == "none"

    def test_duplicate_state(self) -> None:
        with pytest.raises(DuplicateStateError) as exc_info:
            parse_workflow({"name": "w", "states": [{"name": "A"}, {"name": "A"}]})
        assert exc_info.value.state == "A"

    def test_invalid_category(self) -> None:
        with pytest.raises(ValueError, match="Invalid category"):
            parse_workflow({"name": "w", "states": [{"name": "A", "category": "weird"}]})

    @pytest.mark.parametrize(
        "raw",
        [
            [],
            {"states": []},
            {"name": "", "states": []},
            {"name": "w"},
            {"name": "w", "states": "A"},
            {"name": "w", "states": ["A"]},
            {"name": "w", "states": [{"name": " A"}]},
            {"name": "w", "states": [], "transitions": {}},
            {"name": "w", "states": [], "transitions": [{"name": "t"}]},
            {"name": "w", "states": [], "transitions": [{"name": "t", "toState": "A", "fromState": "A"}]},
        ],
    )
    def test_malformed(self, raw: Any) -> None:
        with pytest.raises(ValueError):
            parse_workflow(raw)


class TestValidateWorkflow:
    def test_valid(self, workflow: Workflow) -> None:
        assert validate_workflow(workflow) == []

    def test_unknown_references(self) -> None:
        wf = parse_workflow(
            {
                "name": "w",
                "states": [{"name": "A"}],
                "transitions": [{"name": "t", "fromState": ["B", "*", ""], "toState": "C"}],
            }
        )
        errors = validate_workflow(wf)
        assert any("toState 'C'" in e for e in errors)
        assert any("fromState 'B'" in e for e in errors)
        assert len(errors) == 2

    def test_duplicate_transition_name(self) -> None:
        wf = parse_workflow(
            {
                "name": "w",
                "states": [{"name": "A"}],
                "transitions": [
                    {"name": "t", "fromState": [""], "toState": "A"},
                    {"name": "t", "fromState": ["A"], "toState": "A"},
                ],
            }
        )
        assert validate_workflow(wf) == ["duplicate transition name 't'"]

    def test_duplicate_state_in_constructed_workflow(self) -> None:
        wf = Workflow(name="w", states=(WorkflowState("A"), WorkflowState("A")), transitions=())
        assert validate_workflow(wf) == ["duplicate state name 'A'"]


class TestWorkflowQuality:
    def test_clean_workflow(self, workflow: Workflow) -> None:
        assert check_workflow_quality(workflow) == []

    def test_no_creation_transition(self) -> None:
        wf = parse_workflow(
            {"name": "w", "states": [{"name": "A"}], "transitions": [{"name": "t", "fromState": ["A"], "toState": "A"}]}
        )
        warnings = check_workflow_quality(wf)
        assert any("no creation transition" in w for w in warnings)

    def test_unreachable_and_dead_end(self) -> None:
        wf = parse_workflow(
            {
                "name": "w",
                "states": [{"name": "A", "category": "initial"}, {"name": "B", "category": "active"}],
                "transitions": [{"name": "new", "fromState": [""], "toState": "A"}],
            }
        )
        warnings = check_workflow_quality(wf)
        assert any("'B' is unreachable" in w for w in warnings)
        assert any("'A'" in w and "dead end" in w for w in warnings)

    def test_closed_state_may_be_terminal(self) -> None:
        wf = parse_workflow(
            {
                "name": "w",
                "states": [{"name": "A"}, {"name": "Z", "category": "closed"}],
                "transitions": [
                    {"name": "new", "fromState": [""], "toState": "A"},
                    {"name": "close", "fromState": ["A"], "toState": "Z"},
                ],
            }
        )
        assert check_workflow_quality(wf) == []


class TestWorkflowLookups:
    def test_state_and_transition(self, workflow: Workflow) -> None:
        assert workflow.state("Approved") == WorkflowState("Approved", "closed")
        assert workflow.state("Nope") is None
        assert workflow.has_state("Draft")
        approve = workflow.transition("Approve")
        assert approve is not None
        assert approve.to_state == "Approved"
        assert workflow.transition("Nope") is None

    def test_transition_flags(self, workflow: Workflow) -> None:
        create, approve, reopen = workflow.transitions
        assert create.is_creation and not create.is_wildcard
        assert not approve.is_creation and not approve.is_wildcard
        assert reopen.is_wildcard and not reopen.is_creation
