"""
Read-only queries shared by the guards, the services and the queue router.

Usage:
    from django_visits.selectors import get_active_doctor_assignment, open_item_kinds
"""

from django.db.models import QuerySet

from .enums import (
    AssignmentRole,
    AssignmentStatus,
    BillingPurpose,
    BillingStatus,
    RESULT_BEARING_KINDS,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_ORDER_STATUSES,
)
from .models import Assignment, BatchOrder, Billing, ServiceOrderItem, Visit


def get_active_doctor_assignment(visit: Visit) -> Assignment | None:
    """The ACTIVE visit-level doctor assignment, or None."""
    return Assignment.objects.filter(
        visit=visit,
        role=AssignmentRole.DOCTOR,
        status=AssignmentStatus.ACTIVE,
        item__isnull=True,
    ).first()


def get_visit_billings(visit: Visit, purpose: str) -> QuerySet[Billing]:
    return Billing.objects.filter(visit=visit, purpose=purpose)


def is_purpose_paid(visit: Visit, purpose: str) -> bool:
    """True if the visit has a billing for purpose and every such billing is PAID."""
    billings = list(get_visit_billings(visit, purpose).values_list("status", flat=True))
    return bool(billings) and all(status == BillingStatus.PAID for status in billings)


def is_entry_fee_paid(visit: Visit) -> bool:
    return is_purpose_paid(visit, BillingPurpose.ENTRY_FEE)


def is_consultation_paid(visit: Visit) -> bool:
    return is_purpose_paid(visit, BillingPurpose.CONSULTATION)


def open_batch_orders(visit: Visit) -> QuerySet[BatchOrder]:
    return BatchOrder.objects.filter(visit=visit).exclude(status__in=TERMINAL_ORDER_STATUSES)


def open_items(visit: Visit) -> QuerySet[ServiceOrderItem]:
    """Non-terminal items in non-terminal batch orders of the visit."""
    return ServiceOrderItem.objects.filter(
        batch_order__visit=visit,
    ).exclude(
        status__in=TERMINAL_ITEM_STATUSES,
    ).exclude(
        batch_order__status__in=TERMINAL_ORDER_STATUSES,
    )


def open_item_kinds(visit: Visit) -> set[str]:
    return set(open_items(visit).values_list("kind", flat=True).distinct())


def has_open_result_orders(visit: Visit, exclude_order=None) -> bool:
    """True if any open item of a result-bearing kind remains on the visit."""
    items = open_items(visit).filter(kind__in=RESULT_BEARING_KINDS)
    if exclude_order is not None:
        items = items.exclude(batch_order=exclude_order)
    return items.exists()
