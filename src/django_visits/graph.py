"""
Visit state machine graph and the pure mappings derived from it.

Nothing here touches the database. visits.py applies these rules; tests
exercise them directly.
"""

from typing import Iterable

from .enums import QueueType, ServiceKind, VisitStatus


S = VisitStatus

INITIAL_STATUS = S.REGISTERED

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})

# States from which the assigned doctor may place orders
ORDERING_STATUSES = frozenset({
    S.UNDER_DOCTOR_REVIEW,
    S.SENT_TO_LAB,
    S.SENT_TO_RADIOLOGY,
    S.SENT_TO_BOTH,
    S.WAITING_FOR_NURSE_SERVICE,
    S.AWAITING_RESULTS_REVIEW,
    S.NURSE_SERVICES_COMPLETED,
})

# States in which the visit is parked until its open orders close
WAITING_ON_ORDERS_STATUSES = frozenset({
    S.SENT_TO_LAB,
    S.SENT_TO_RADIOLOGY,
    S.SENT_TO_BOTH,
    S.WAITING_FOR_NURSE_SERVICE,
})

_DISPATCH = [S.SENT_TO_LAB, S.SENT_TO_RADIOLOGY, S.SENT_TO_BOTH, S.WAITING_FOR_NURSE_SERVICE]

# CANCELLED is appended to every non-terminal state below
_EDGES = {
    S.REGISTERED: [S.WAITING_FOR_TRIAGE],
    S.WAITING_FOR_TRIAGE: [S.TRIAGED],
    S.TRIAGED: [S.WAITING_FOR_DOCTOR],
    S.WAITING_FOR_DOCTOR: [S.UNDER_DOCTOR_REVIEW],
    S.UNDER_DOCTOR_REVIEW: _DISPATCH + [S.COMPLETED],
    S.SENT_TO_LAB: [S.SENT_TO_BOTH, S.AWAITING_RESULTS_REVIEW],
    S.SENT_TO_RADIOLOGY: [S.SENT_TO_BOTH, S.AWAITING_RESULTS_REVIEW],
    S.SENT_TO_BOTH: [S.AWAITING_RESULTS_REVIEW],
    S.WAITING_FOR_NURSE_SERVICE: [
        S.SENT_TO_LAB,
        S.SENT_TO_RADIOLOGY,
        S.SENT_TO_BOTH,
        S.NURSE_SERVICES_COMPLETED,
        S.AWAITING_RESULTS_REVIEW,
    ],
    S.AWAITING_RESULTS_REVIEW: [S.UNDER_DOCTOR_REVIEW] + _DISPATCH + [S.COMPLETED],
    S.NURSE_SERVICES_COMPLETED: [S.UNDER_DOCTOR_REVIEW] + _DISPATCH + [S.COMPLETED],
}

VISIT_TRANSITIONS: dict[VisitStatus, list[VisitStatus]] = {
    status: targets + [S.CANCELLED] for status, targets in _EDGES.items()
}

QUEUE_TYPE_BY_STATUS: dict[VisitStatus, QueueType] = {
    S.REGISTERED: QueueType.REGISTRATION,
    S.WAITING_FOR_TRIAGE: QueueType.TRIAGE,
    S.TRIAGED: QueueType.DOCTOR_ASSIGNMENT,
    S.WAITING_FOR_DOCTOR: QueueType.CONSULTATION,
    S.UNDER_DOCTOR_REVIEW: QueueType.CONSULTATION,
    S.SENT_TO_LAB: QueueType.LAB,
    S.SENT_TO_RADIOLOGY: QueueType.RADIOLOGY,
    S.SENT_TO_BOTH: QueueType.DIAGNOSTICS,
    S.WAITING_FOR_NURSE_SERVICE: QueueType.NURSE_SERVICE,
    S.AWAITING_RESULTS_REVIEW: QueueType.RESULTS_REVIEW,
    S.NURSE_SERVICES_COMPLETED: QueueType.RESULTS_REVIEW,
    S.COMPLETED: QueueType.CLOSED,
    S.CANCELLED: QueueType.CLOSED,
}


def derive_queue_type(status: str) -> QueueType:
    """Return the queue type for a visit status.

    Raises:
        ValueError: If status is not a VisitStatus value
    """
    return QUEUE_TYPE_BY_STATUS[VisitStatus(status)]


def allowed_transitions(status: str) -> list[VisitStatus]:
    """Return the states reachable in one step from status."""
    if status in TERMINAL_STATUSES:
        return []
    return list(VISIT_TRANSITIONS.get(VisitStatus(status), []))


def is_edge(from_status: str, to_status: str) -> bool:
    return to_status in allowed_transitions(from_status)


def status_after_order(status: str, kinds: Iterable[str]) -> VisitStatus:
    """Return the visit status once orders are placed.

    kinds are the item kinds still outstanding on the visit, including the
    new order. Lab and radiology combine into SENT_TO_BOTH. Nurse services
    park the visit only when nothing diagnostic is outstanding. Pharmacy
    orders never move the visit, and neither does a target that is not an
    edge from the current status.
    """
    current = VisitStatus(status)
    kinds = set(kinds)

    if ServiceKind.LAB in kinds and ServiceKind.RADIOLOGY in kinds:
        target = S.SENT_TO_BOTH
    elif ServiceKind.LAB in kinds:
        target = S.SENT_TO_LAB
    elif ServiceKind.RADIOLOGY in kinds:
        target = S.SENT_TO_RADIOLOGY
    elif ServiceKind.NURSE in kinds:
        target = S.WAITING_FOR_NURSE_SERVICE
    else:
        return current

    if not is_edge(current, target):
        return current
    return target


def status_after_results(status: str) -> VisitStatus:
    """Return the state a visit re-enters once all its orders have closed."""
    if VisitStatus(status) == S.WAITING_FOR_NURSE_SERVICE:
        return S.NURSE_SERVICES_COMPLETED
    return S.AWAITING_RESULTS_REVIEW


def validate_transition_graph(
    states: list[str] = None,
    transitions: dict[str, list[str]] = None,
    initial_state: str = None,
    terminal_states: list[str] = None,
) -> list[str]:
    """
    Validate a state machine graph is sane and usable.

    Defaults to the visit graph defined in this module.

    Checks:
    - initial_state exists in states
    - all terminal_states exist in states
    - all transition sources and targets exist in states
    - terminal states have no outgoing transitions
    - all states reachable from initial_state
    - every state has a queue type

    Returns:
        List of error message strings (empty if valid)
    """
    states = list(VisitStatus.values) if states is None else states
    transitions = VISIT_TRANSITIONS if transitions is None else transitions
    initial_state = INITIAL_STATUS if initial_state is None else initial_state
    terminal_states = list(TERMINAL_STATUSES) if terminal_states is None else terminal_states

    errors = []
    states_set = set(states)

    if initial_state not in states_set:
        errors.append(f"initial_state '{initial_state}' not in states")

    for ts in terminal_states:
        if ts not in states_set:
            errors.append(f"terminal_state '{ts}' not in states")

    for from_state, to_states in transitions.items():
        if from_state not in states_set:
            errors.append(f"transition from unknown state '{from_state}'")
        for to_state in to_states:
            if to_state not in states_set:
                errors.append(f"transition to unknown state '{to_state}'")

    for ts in terminal_states:
        if transitions.get(ts):
            errors.append(f"terminal state '{ts}' has outgoing transitions")

    if initial_state in states_set:
        reachable = _find_reachable_states(initial_state, transitions)
        for state in states:
            if state not in reachable:
                errors.append(f"state '{state}' unreachable from initial_state")

    for state in states:
        if state in VisitStatus.values and VisitStatus(state) not in QUEUE_TYPE_BY_STATUS:
            errors.append(f"state '{state}' has no queue type")

    return errors


def _find_reachable_states(start: str, transitions: dict[str, list[str]]) -> set[str]:
    """BFS to find all states reachable from start (including start)."""
    visited = {start}
    queue = [start]

    while queue:
        current = queue.pop(0)
        for next_state in transitions.get(current, []):
            if next_state not in visited:
                visited.add(next_state)
                queue.append(next_state)

    return visited
