"""Tests for the visit transition graph and its pure mappings."""

import pytest

from django_visits.enums import QueueType, ServiceKind, VisitStatus
from django_visits.graph import (
    INITIAL_STATUS,
    QUEUE_TYPE_BY_STATUS,
    TERMINAL_STATUSES,
    VISIT_TRANSITIONS,
    allowed_transitions,
    derive_queue_type,
    is_edge,
    status_after_order,
    status_after_results,
    validate_transition_graph,
)


S = VisitStatus


class TestVisitGraph:
    """Tests for the shape of the visit graph."""

    def test_visit_graph_is_valid(self):
        assert validate_transition_graph() == []

    def test_initial_status_is_registered(self):
        assert INITIAL_STATUS == S.REGISTERED

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert allowed_transitions(status) == []

    def test_every_non_terminal_state_can_cancel(self):
        for status in VisitStatus:
            if status in TERMINAL_STATUSES:
                continue
            assert S.CANCELLED in allowed_transitions(status), status

    def test_main_path_edges(self):
        path = [
            S.REGISTERED,
            S.WAITING_FOR_TRIAGE,
            S.TRIAGED,
            S.WAITING_FOR_DOCTOR,
            S.UNDER_DOCTOR_REVIEW,
            S.SENT_TO_LAB,
            S.AWAITING_RESULTS_REVIEW,
            S.COMPLETED,
        ]
        for from_status, to_status in zip(path, path[1:]):
            assert is_edge(from_status, to_status), (from_status, to_status)

    def test_cannot_skip_triage(self):
        assert not is_edge(S.WAITING_FOR_TRIAGE, S.WAITING_FOR_DOCTOR)
        assert not is_edge(S.REGISTERED, S.TRIAGED)

    def test_cannot_complete_while_sent_to_lab(self):
        assert not is_edge(S.SENT_TO_LAB, S.COMPLETED)

    def test_nurse_service_can_escalate_to_diagnostics(self):
        assert is_edge(S.WAITING_FOR_NURSE_SERVICE, S.SENT_TO_LAB)
        assert is_edge(S.WAITING_FOR_NURSE_SERVICE, S.SENT_TO_BOTH)

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            allowed_transitions("NOT_A_STATUS")


class TestDeriveQueueType:
    """Tests for the status to queue type mapping."""

    def test_every_status_has_a_queue_type(self):
        assert set(QUEUE_TYPE_BY_STATUS) == set(VisitStatus)

    @pytest.mark.parametrize("status,expected", [
        (S.REGISTERED, QueueType.REGISTRATION),
        (S.WAITING_FOR_TRIAGE, QueueType.TRIAGE),
        (S.TRIAGED, QueueType.DOCTOR_ASSIGNMENT),
        (S.UNDER_DOCTOR_REVIEW, QueueType.CONSULTATION),
        (S.SENT_TO_BOTH, QueueType.DIAGNOSTICS),
        (S.NURSE_SERVICES_COMPLETED, QueueType.RESULTS_REVIEW),
        (S.CANCELLED, QueueType.CLOSED),
    ])
    def test_mapping(self, status, expected):
        assert derive_queue_type(status) == expected

    def test_accepts_raw_string(self):
        assert derive_queue_type("SENT_TO_LAB") == QueueType.LAB


class TestStatusAfterOrder:
    """Tests for routing a visit once orders are outstanding."""

    def test_lab_only(self):
        assert status_after_order(S.UNDER_DOCTOR_REVIEW, {ServiceKind.LAB}) == S.SENT_TO_LAB

    def test_radiology_only(self):
        assert status_after_order(S.UNDER_DOCTOR_REVIEW, {ServiceKind.RADIOLOGY}) == S.SENT_TO_RADIOLOGY

    def test_lab_and_radiology(self):
        kinds = {ServiceKind.LAB, ServiceKind.RADIOLOGY}
        assert status_after_order(S.UNDER_DOCTOR_REVIEW, kinds) == S.SENT_TO_BOTH

    def test_lab_added_while_at_radiology(self):
        kinds = {ServiceKind.LAB, ServiceKind.RADIOLOGY}
        assert status_after_order(S.SENT_TO_RADIOLOGY, kinds) == S.SENT_TO_BOTH

    def test_nurse_only(self):
        assert status_after_order(S.UNDER_DOCTOR_REVIEW, {ServiceKind.NURSE}) == S.WAITING_FOR_NURSE_SERVICE

    def test_diagnostics_take_precedence_over_nurse(self):
        kinds = {ServiceKind.NURSE, ServiceKind.LAB}
        assert status_after_order(S.WAITING_FOR_NURSE_SERVICE, kinds) == S.SENT_TO_LAB

    def test_pharmacy_does_not_move_visit(self):
        assert status_after_order(S.UNDER_DOCTOR_REVIEW, {ServiceKind.PHARMACY}) == S.UNDER_DOCTOR_REVIEW

    def test_nurse_order_while_sent_to_lab_stays(self):
        kinds = {ServiceKind.NURSE, ServiceKind.LAB}
        assert status_after_order(S.SENT_TO_LAB, kinds) == S.SENT_TO_LAB


class TestStatusAfterResults:

    def test_nurse_service_completes(self):
        assert status_after_results(S.WAITING_FOR_NURSE_SERVICE) == S.NURSE_SERVICES_COMPLETED

    @pytest.mark.parametrize("status", [S.SENT_TO_LAB, S.SENT_TO_RADIOLOGY, S.SENT_TO_BOTH])
    def test_diagnostics_await_review(self, status):
        assert status_after_results(status) == S.AWAITING_RESULTS_REVIEW


class TestValidateTransitionGraph:
    """Tests for validate_transition_graph on hand-built graphs."""

    def test_detects_unreachable_state(self):
        errors = validate_transition_graph(
            states=["a", "b", "c"],
            transitions={"a": ["b"]},
            initial_state="a",
            terminal_states=["b"],
        )
        assert any("'c' unreachable" in e for e in errors)

    def test_detects_terminal_with_exits(self):
        errors = validate_transition_graph(
            states=["a", "b"],
            transitions={"a": ["b"], "b": ["a"]},
            initial_state="a",
            terminal_states=["b"],
        )
        assert any("terminal state 'b' has outgoing transitions" in e for e in errors)

    def test_detects_unknown_target(self):
        errors = validate_transition_graph(
            states=["a"],
            transitions={"a": ["z"]},
            initial_state="a",
            terminal_states=[],
        )
        assert any("unknown state 'z'" in e for e in errors)

    def test_detects_missing_initial(self):
        errors = validate_transition_graph(
            states=["a"],
            transitions={},
            initial_state="x",
            terminal_states=[],
        )
        assert any("initial_state 'x'" in e for e in errors)

    def test_graph_keys_cover_non_terminal_states(self):
        non_terminal = set(VisitStatus) - set(TERMINAL_STATUSES)
        assert set(VISIT_TRANSITIONS) == non_terminal
