"""Read-only invariant checks over stored visits, orders and billings.

Each check returns a list of violation strings (empty when the invariant
holds). Nothing here writes; repairs are a human decision.
"""

from collections import defaultdict
from decimal import Decimal

from django.db.models import Q, Sum

from .aggregation import aggregate_status
from .billing import compute_billing_status
from .enums import (
    AssignmentRole,
    AssignmentStatus,
    BatchOrderStatus,
    BillingStatus,
    RESULT_BEARING_KINDS,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_ORDER_STATUSES,
    VisitStatus,
)
from .graph import derive_queue_type
from .models import Assignment, BatchOrder, Billing, ServiceOrderItem, Visit


def check_queue_types() -> list[str]:
    violations = []
    for pk, number, status, queue_type in Visit.objects.values_list("pk", "visit_number", "status", "queue_type"):
        expected = derive_queue_type(status)
        if queue_type != expected:
            violations.append(f"Visit {number}: queue_type {queue_type} but status {status} maps to {expected}")
    return violations


def check_batch_order_aggregates() -> list[str]:
    """Stored order status must equal the aggregate of its items.

    A closed order may not have open items. An explicitly cancelled order
    needs nothing more.
    """
    items_by_order = defaultdict(list)
    for order_id, status in ServiceOrderItem.objects.values_list("batch_order_id", "status"):
        items_by_order[order_id].append(status)

    violations = []
    for order in BatchOrder.objects.only("pk", "status"):
        statuses = items_by_order.get(order.pk, [])
        if order.status in TERMINAL_ORDER_STATUSES and any(s not in TERMINAL_ITEM_STATUSES for s in statuses):
            violations.append(f"BatchOrder {order.pk}: {order.status} with open items")
            continue
        if order.status == BatchOrderStatus.CANCELLED:
            continue
        expected = aggregate_status(order.status, statuses)
        if expected != order.status:
            violations.append(f"BatchOrder {order.pk}: status {order.status} but items aggregate to {expected}")
    return violations


def check_orders_paid() -> list[str]:
    """An order past UNPAID (and not cancelled) must have a PAID billing."""
    unpaid = BatchOrder.objects.exclude(
        status__in=[BatchOrderStatus.UNPAID, BatchOrderStatus.CANCELLED],
    ).exclude(billing__status=BillingStatus.PAID)
    return [f"BatchOrder {order.pk}: {order.status} with unpaid billing" for order in unpaid]


def check_billing_ledgers() -> list[str]:
    violations = []
    billings = Billing.objects.annotate(paid=Sum("payments__amount"))
    for bill in billings:
        expected = compute_billing_status(bill.paid or Decimal("0"), bill.total_amount)
        if expected != bill.status:
            violations.append(f"Billing {bill.pk}: status {bill.status} but ledger gives {expected}")
    return violations


def check_open_orders_on_closed_visits() -> list[str]:
    """A cancelled visit has no open orders; a completed one only open pharmacy orders."""
    open_orders = BatchOrder.objects.exclude(status__in=TERMINAL_ORDER_STATUSES)
    stranded = open_orders.filter(
        Q(visit__status=VisitStatus.CANCELLED)
        | Q(visit__status=VisitStatus.COMPLETED, items__kind__in=RESULT_BEARING_KINDS)
    )
    return [
        f"BatchOrder {order.pk}: {order.status} on {order.visit.status} visit {order.visit.visit_number}"
        for order in stranded.distinct().select_related("visit")
    ]


def check_doctor_assignments() -> list[str]:
    """Visits in doctor-owned states must have an ACTIVE doctor assignment."""
    doctor_states = [
        VisitStatus.WAITING_FOR_DOCTOR,
        VisitStatus.UNDER_DOCTOR_REVIEW,
        VisitStatus.AWAITING_RESULTS_REVIEW,
        VisitStatus.NURSE_SERVICES_COMPLETED,
    ]
    assigned = Assignment.objects.filter(
        role=AssignmentRole.DOCTOR, status=AssignmentStatus.ACTIVE, item__isnull=True,
    ).values("visit_id")
    missing = Visit.objects.filter(status__in=doctor_states).exclude(pk__in=assigned)
    return [f"Visit {visit.visit_number}: {visit.status} without an active doctor" for visit in missing]


CHECKS = [
    ("queue_type_matches_status", check_queue_types),
    ("batch_order_matches_items", check_batch_order_aggregates),
    ("queued_orders_are_paid", check_orders_paid),
    ("billing_matches_ledger", check_billing_ledgers),
    ("closed_visits_have_no_open_orders", check_open_orders_on_closed_visits),
    ("doctor_states_have_assignment", check_doctor_assignments),
]


def run_checks() -> list[tuple[str, list[str]]]:
    return [(name, check()) for name, check in CHECKS]
