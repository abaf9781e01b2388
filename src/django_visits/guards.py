"""Transition guards for visit state changes.

A guard inspects a proposed transition and returns the reasons it must not
happen. An empty list means the guard is satisfied. visits.apply_transition
runs every built-in guard plus the ones listed in VISITS_TRANSITION_GUARDS
and raises GuardNotSatisfied with the combined reasons.

Example of a project-specific guard:

    class LabConsentGuard(BaseTransitionGuard):
        applies_to = {VisitStatus.SENT_TO_LAB}

        def check(self, visit, from_status, to_status, actor=None):
            if not consent_on_file(visit.patient_id):
                return ["Lab consent not on file"]
            return []
"""

from typing import TYPE_CHECKING

from .conf import get_configured_guards
from .enums import Role, ServiceKind, VisitStatus
from . import selectors

if TYPE_CHECKING:
    from .actors import Actor
    from .models import Visit


S = VisitStatus


class BaseTransitionGuard:
    """
    Base class for visit transition guards.

    applies_to limits the guard to transitions entering those states. An
    empty set means every transition.
    """

    applies_to: frozenset = frozenset()

    def applies(self, from_status: str, to_status: str) -> bool:
        return not self.applies_to or to_status in self.applies_to

    def check(
        self,
        visit: "Visit",
        from_status: str,
        to_status: str,
        actor: "Actor" = None,
    ) -> list[str]:
        """
        Check a state transition.

        Returns:
            List of reasons the transition is blocked (empty if allowed)
        """
        return []


class EntryFeePaidGuard(BaseTransitionGuard):
    applies_to = frozenset({S.TRIAGED})

    def check(self, visit, from_status, to_status, actor=None):
        if not selectors.is_entry_fee_paid(visit):
            return ["Entry fee has not been paid"]
        return []


class ActiveDoctorGuard(BaseTransitionGuard):
    applies_to = frozenset({
        S.WAITING_FOR_DOCTOR,
        S.UNDER_DOCTOR_REVIEW,
        S.AWAITING_RESULTS_REVIEW,
        S.NURSE_SERVICES_COMPLETED,
    })

    def check(self, visit, from_status, to_status, actor=None):
        if selectors.get_active_doctor_assignment(visit) is None:
            return ["Visit has no active doctor assignment"]
        return []


class ConsultationPaidGuard(BaseTransitionGuard):
    applies_to = frozenset({S.UNDER_DOCTOR_REVIEW})

    def check(self, visit, from_status, to_status, actor=None):
        if not selectors.is_consultation_paid(visit):
            return ["Consultation fee has not been paid"]
        return []


class AssignedDoctorActorGuard(BaseTransitionGuard):
    """A doctor may only open or close a consultation assigned to them."""

    applies_to = frozenset({S.UNDER_DOCTOR_REVIEW, S.COMPLETED})

    def check(self, visit, from_status, to_status, actor=None):
        if actor is None or actor.role != Role.DOCTOR:
            return []
        assignment = selectors.get_active_doctor_assignment(visit)
        if assignment is None or assignment.provider_id != actor.user_id:
            return ["Only the assigned doctor can perform this transition"]
        return []


_REQUIRED_KINDS = {
    S.SENT_TO_LAB: {ServiceKind.LAB},
    S.SENT_TO_RADIOLOGY: {ServiceKind.RADIOLOGY},
    S.SENT_TO_BOTH: {ServiceKind.LAB, ServiceKind.RADIOLOGY},
    S.WAITING_FOR_NURSE_SERVICE: {ServiceKind.NURSE},
}


class OrdersPlacedGuard(BaseTransitionGuard):
    applies_to = frozenset(_REQUIRED_KINDS)

    def check(self, visit, from_status, to_status, actor=None):
        missing = _REQUIRED_KINDS[to_status] - selectors.open_item_kinds(visit)
        return [f"No open {kind} order for this visit" for kind in sorted(missing)]


class OpenOrdersGuard(BaseTransitionGuard):
    """Results must be in before the doctor reviews them or closes the visit."""

    applies_to = frozenset({S.AWAITING_RESULTS_REVIEW, S.NURSE_SERVICES_COMPLETED, S.COMPLETED})

    def check(self, visit, from_status, to_status, actor=None):
        if selectors.has_open_result_orders(visit):
            return ["Visit has open result-bearing orders"]
        return []


BUILTIN_GUARDS = [
    EntryFeePaidGuard(),
    ActiveDoctorGuard(),
    ConsultationPaidGuard(),
    AssignedDoctorActorGuard(),
    OrdersPlacedGuard(),
    OpenOrdersGuard(),
]


def get_guards() -> list[BaseTransitionGuard]:
    return BUILTIN_GUARDS + get_configured_guards()


def check_guards(visit, from_status: str, to_status: str, actor=None) -> list[str]:
    """Run every applicable guard and return the combined block reasons."""
    reasons = []
    for guard in get_guards():
        if guard.applies(from_status, to_status):
            reasons.extend(guard.check(visit, from_status, to_status, actor))
    return reasons
