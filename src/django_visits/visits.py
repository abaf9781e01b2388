"""Visit lifecycle service functions.

Provides:
- create_visit: Register a visit and open its entry-fee billing
- transition_visit: Move a visit along the transition graph
- get_allowed_transitions: Valid next states for a visit
- cancel_visit: Cancel a visit with its open orders and assignments
- record_triage: Store vitals and mark the visit triaged
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.utils import timezone

from . import graph
from .actors import actor_role, actor_user
from .billing import create_billing
from .conf import get_entry_fee
from .enums import BillingPurpose, VisitStatus
from .exceptions import ConcurrencyConflict, GuardNotSatisfied, InvalidTransition, ValidationError
from .guards import check_guards
from .models import Billing, TriageRecord, Visit, VisitTransition
from .money import to_decimal
from .transactions import engine_operation, get_row, lock_row


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitRegistration:
    """Result of create_visit."""
    visit: Visit
    billing: Billing

    @property
    def visit_id(self):
        return self.visit.pk

    @property
    def billing_id(self):
        return self.billing.pk


@dataclass(frozen=True)
class TriageVitals:
    """Vitals captured at triage. Every field is optional."""
    blood_pressure: str = ""
    temperature: Decimal | None = None
    heart_rate: int | None = None
    respiratory_rate: int | None = None
    oxygen_saturation: int | None = None
    weight_kg: Decimal | None = None
    height_cm: Decimal | None = None
    chief_complaint: str = ""

    def cleaned(self) -> dict:
        """Return model field values, raising ValidationError on bad numbers."""
        data = {
            "blood_pressure": self.blood_pressure or "",
            "chief_complaint": self.chief_complaint or "",
        }
        errors = {}
        for name in _VITAL_NUMBERS:
            value = getattr(self, name)
            if value is None:
                data[name] = None
                continue
            try:
                number = to_decimal(value, name)
            except ValidationError as e:
                errors[name] = [str(e)]
                continue
            if number < 0:
                errors[name] = ["Must not be negative"]
                continue
            if name in _VITAL_INTEGERS and number != number.to_integral_value():
                errors[name] = ["Must be a whole number"]
                continue
            data[name] = int(number) if name in _VITAL_INTEGERS else number
        if errors:
            raise ValidationError("Invalid vitals", errors=errors)
        return data


_VITAL_INTEGERS = ("heart_rate", "respiratory_rate", "oxygen_saturation")
_VITAL_NUMBERS = ("temperature", "weight_kg", "height_cm") + _VITAL_INTEGERS


def get_visit(visit_id) -> Visit:
    return get_row(Visit.objects, visit_id, "Visit")


def get_allowed_transitions(visit: Visit) -> list[VisitStatus]:
    """Get list of valid next states from the transition graph."""
    return graph.allowed_transitions(visit.status)


def check_version(instance, expected_version):
    if expected_version is not None and instance.version != int(expected_version):
        raise ConcurrencyConflict(
            f"{type(instance).__name__} {instance.pk} is at version {instance.version}, "
            f"expected {expected_version}"
        )


def apply_transition(visit: Visit, to_status: str, actor=None, metadata: dict = None) -> Visit:
    """
    Move an already locked visit to to_status.

    Checks the graph edge, then the guards, then writes status, queue_type
    and version in one UPDATE plus an audit row. Callers own the
    transaction and the row lock.

    Raises:
        InvalidTransition: If to_status is not reachable in one step
        GuardNotSatisfied: If any guard blocks
    """
    from_status = visit.status

    if not graph.is_edge(from_status, to_status):
        if from_status in graph.TERMINAL_STATUSES:
            raise InvalidTransition(
                from_status, to_status,
                f"Cannot transition from terminal state '{from_status}'"
            )
        raise InvalidTransition(from_status, to_status)

    reasons = check_guards(visit, from_status, to_status, actor)
    if reasons:
        logger.warning(f"Visit {visit.pk} {from_status} -> {to_status} blocked: {reasons}")
        raise GuardNotSatisfied(reasons)

    now = timezone.now()
    visit.status = to_status
    visit.version += 1
    update_fields = ["status", "version", "updated_at"]
    if to_status == VisitStatus.COMPLETED:
        visit.completed_at = now
        update_fields.append("completed_at")
    elif to_status == VisitStatus.CANCELLED:
        visit.cancelled_at = now
        update_fields.append("cancelled_at")
    visit.save(update_fields=update_fields)

    VisitTransition.objects.create(
        visit=visit,
        from_status=from_status,
        to_status=to_status,
        transitioned_by=actor_user(actor),
        actor_role=actor_role(actor),
        transitioned_at=now,
        metadata=metadata or {},
    )

    logger.info(f"Visit {visit.visit_number}: {from_status} -> {to_status}")
    return visit


@engine_operation
def create_visit(patient_id: str, *, actor=None, entry_fee=None, notes: str = "") -> VisitRegistration:
    """
    Register a visit and its entry-fee billing, then queue it for triage.

    Args:
        patient_id: Opaque reference to the patient
        actor: Actor registering the visit
        entry_fee: Overrides VISITS_ENTRY_FEE
        notes: Free text

    Returns:
        VisitRegistration with the visit (WAITING_FOR_TRIAGE) and its billing

    Raises:
        ValidationError: Empty patient_id or invalid fee
    """
    patient_id = (patient_id or "").strip()
    if not patient_id:
        raise ValidationError("patient_id is required", errors={"patient_id": ["Required"]})

    fee = get_entry_fee() if entry_fee is None else entry_fee

    visit = Visit.objects.create(
        patient_id=patient_id,
        created_by=actor_user(actor),
        notes=notes or "",
    )
    billing = create_billing(visit, BillingPurpose.ENTRY_FEE, fee)
    apply_transition(visit, VisitStatus.WAITING_FOR_TRIAGE, actor)

    return VisitRegistration(visit=visit, billing=billing)


@engine_operation
def transition_visit(
    visit_id,
    to_status: str,
    actor=None,
    *,
    expected_version: int = None,
    metadata: dict = None,
) -> Visit:
    """
    Transition a visit to a new state.

    Entering CANCELLED cascades like cancel_visit. Entering COMPLETED closes
    the visit's active assignments.

    Raises:
        NotFound: Unknown visit
        ValidationError: to_status is not a VisitStatus
        ConcurrencyConflict: expected_version is stale
        InvalidTransition: Not an edge of the graph
        GuardNotSatisfied: A guard blocked the transition
    """
    if to_status not in VisitStatus.values:
        raise ValidationError(f"Unknown visit status '{to_status}'", errors={"to_status": ["Invalid choice"]})

    visit = lock_row(Visit.objects, visit_id, "Visit")
    check_version(visit, expected_version)

    if to_status == VisitStatus.CANCELLED:
        reason = (metadata or {}).get("reason", "")
        return _cancel(visit, actor, reason, metadata)

    apply_transition(visit, to_status, actor, metadata)

    if to_status == VisitStatus.COMPLETED:
        from .assignments import complete_active_assignments

        complete_active_assignments(visit)

    return visit


@engine_operation
def cancel_visit(visit_id, actor=None, *, reason: str = "", expected_version: int = None) -> Visit:
    """
    Cancel a visit.

    Cancels every non-terminal batch order with its non-terminal items and
    completes active assignments, in the same transaction.
    """
    visit = lock_row(Visit.objects, visit_id, "Visit")
    check_version(visit, expected_version)
    return _cancel(visit, actor, reason)


def _cancel(visit: Visit, actor, reason: str, metadata: dict = None) -> Visit:
    from .assignments import complete_active_assignments
    from .orders import cancel_open_orders

    metadata = dict(metadata or {})
    if reason:
        metadata["reason"] = reason

    apply_transition(visit, VisitStatus.CANCELLED, actor, metadata)
    if reason:
        visit.cancellation_reason = reason
        visit.save(update_fields=["cancellation_reason", "updated_at"])

    cancelled = cancel_open_orders(visit, actor)
    complete_active_assignments(visit)

    logger.info(f"Visit {visit.visit_number} cancelled with {cancelled} open order(s)")
    return visit


@engine_operation
def record_triage(visit_id, vitals: TriageVitals, actor=None) -> TriageRecord:
    """
    Store triage vitals and move the visit from WAITING_FOR_TRIAGE to TRIAGED.

    Raises:
        InvalidTransition: Visit is not waiting for triage
        GuardNotSatisfied: Entry fee not paid
    """
    data = vitals.cleaned()
    visit = lock_row(Visit.objects, visit_id, "Visit")
    apply_transition(visit, VisitStatus.TRIAGED, actor)

    return TriageRecord.objects.create(
        visit=visit,
        recorded_by=actor_user(actor),
        **data,
    )
