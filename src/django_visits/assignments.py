"""Assignment tracker: who is responsible for a visit or a service item.

Provides:
- assign_doctor: Make a doctor responsible for a triaged visit
- assign_item: Make a nurse responsible for a nurse service item
- get_active_assignment / get_item_assignee: Reads
- complete_active_assignments: Close every ACTIVE assignment of a visit
"""

import logging

from django.utils import timezone

from .actors import actor_user
from .billing import create_billing
from .conf import get_consultation_fee
from .enums import (
    AssignmentRole,
    AssignmentStatus,
    BillingPurpose,
    ServiceKind,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_ORDER_STATUSES,
    VisitStatus,
)
from .exceptions import GuardNotSatisfied, InvalidTransition, ValidationError
from .models import Assignment, BatchOrder, ServiceOrderItem, Visit
from .selectors import get_active_doctor_assignment, get_visit_billings
from .transactions import engine_operation, get_row, lock_row
from .visits import apply_transition


logger = logging.getLogger(__name__)

DOCTOR_ASSIGNABLE_STATUSES = frozenset({VisitStatus.TRIAGED, VisitStatus.WAITING_FOR_DOCTOR})


def get_active_assignment(visit: Visit) -> Assignment | None:
    return get_active_doctor_assignment(visit)


def get_item_assignee(item: ServiceOrderItem):
    """The provider holding the ACTIVE assignment for item, or None."""
    assignment = Assignment.objects.filter(
        item=item, status=AssignmentStatus.ACTIVE,
    ).select_related("provider").first()
    return assignment.provider if assignment else None


def complete_active_assignments(visit: Visit) -> int:
    """Mark every ACTIVE assignment of the visit COMPLETED. Returns the count."""
    count = Assignment.objects.filter(
        visit=visit, status=AssignmentStatus.ACTIVE,
    ).update(status=AssignmentStatus.COMPLETED, completed_at=timezone.now(), updated_at=timezone.now())
    if count:
        logger.info(f"Completed {count} active assignment(s) on visit {visit.pk}")
    return count


@engine_operation
def assign_doctor(visit_id, doctor, actor=None, *, consultation_fee=None) -> Assignment:
    """
    Assign the responsible doctor for a visit.

    From TRIAGED this opens the consultation billing and moves the visit to
    WAITING_FOR_DOCTOR. From WAITING_FOR_DOCTOR it replaces the current
    doctor; the consultation billing is never duplicated.

    Raises:
        NotFound: Unknown visit
        ValidationError: No doctor given
        InvalidTransition: Visit is not TRIAGED or WAITING_FOR_DOCTOR
    """
    if doctor is None or getattr(doctor, "pk", None) is None:
        raise ValidationError("doctor is required", errors={"doctor": ["Required"]})

    visit = lock_row(Visit.objects, visit_id, "Visit")
    if visit.status not in DOCTOR_ASSIGNABLE_STATUSES:
        raise InvalidTransition(
            visit.status, VisitStatus.WAITING_FOR_DOCTOR,
            f"Cannot assign a doctor to a visit in '{visit.status}'"
        )

    previous = get_active_doctor_assignment(visit)
    if previous is not None:
        previous.status = AssignmentStatus.COMPLETED
        previous.completed_at = timezone.now()
        previous.save(update_fields=["status", "completed_at", "updated_at"])

    assignment = Assignment.objects.create(
        visit=visit,
        patient_id=visit.patient_id,
        provider=doctor,
        role=AssignmentRole.DOCTOR,
        assigned_by=actor_user(actor),
    )
    visit.assignment = assignment
    visit.save(update_fields=["assignment", "updated_at"])

    if not get_visit_billings(visit, BillingPurpose.CONSULTATION).exists():
        fee = get_consultation_fee() if consultation_fee is None else consultation_fee
        create_billing(visit, BillingPurpose.CONSULTATION, fee)

    if visit.status == VisitStatus.TRIAGED:
        apply_transition(visit, VisitStatus.WAITING_FOR_DOCTOR, actor, {"doctor_id": str(doctor.pk)})

    logger.info(f"Doctor {doctor.pk} assigned to visit {visit.visit_number}")
    return assignment


@engine_operation
def assign_item(item_id, nurse, actor=None) -> Assignment:
    """
    Assign a nurse to a nurse service item, replacing any current assignee.

    Raises:
        NotFound: Unknown item
        ValidationError: Item is not a nurse service, or no nurse given
        GuardNotSatisfied: Item or its order is already finished
    """
    if nurse is None or getattr(nurse, "pk", None) is None:
        raise ValidationError("nurse is required", errors={"nurse": ["Required"]})

    item = get_row(ServiceOrderItem.objects, item_id, "ServiceOrderItem")
    if item.kind != ServiceKind.NURSE:
        raise ValidationError(
            f"Only nurse service items can be assigned, item is {item.kind}",
            errors={"item": ["Not a nurse service"]},
        )

    # Same lock order as complete_item: visit, then batch order, then re-read the item
    order = get_row(BatchOrder.objects, item.batch_order_id, "BatchOrder")
    lock_row(Visit.objects, order.visit_id, "Visit")
    order = lock_row(BatchOrder.objects, order.pk, "BatchOrder")
    item.refresh_from_db()
    if item.status in TERMINAL_ITEM_STATUSES or order.status in TERMINAL_ORDER_STATUSES:
        raise GuardNotSatisfied([f"Item {item.pk} is already {item.status}"])

    Assignment.objects.filter(item=item, status=AssignmentStatus.ACTIVE).update(
        status=AssignmentStatus.COMPLETED, completed_at=timezone.now(), updated_at=timezone.now(),
    )
    assignment = Assignment.objects.create(
        visit_id=order.visit_id,
        patient_id=order.patient_id,
        provider=nurse,
        role=AssignmentRole.NURSE,
        item=item,
        assigned_by=actor_user(actor),
    )
    logger.info(f"Nurse {nurse.pk} assigned to item {item.pk}")
    return assignment
