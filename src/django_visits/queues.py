"""Queue router: per-role work lists, recomputed from authoritative rows.

Nothing here is stored. Every call to list_for queries the current visits,
billings, orders and assignments, so a committed change shows up on the
next read with no synchronization step.

Usage:
    from django_visits.queues import list_for

    for summary in list_for(Role.LAB_TECHNICIAN):
        print(summary.visit_number, [o.kind for o in summary.batch_orders])
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from django.db.models import DecimalField, Exists, OuterRef, Q, QuerySet, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from .enums import (
    AssignmentRole,
    AssignmentStatus,
    BatchOrderStatus,
    BillingPurpose,
    BillingStatus,
    ItemStatus,
    Role,
    ServiceKind,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_VISIT_STATUSES,
    VisitStatus,
)
from .exceptions import ValidationError
from .models import Assignment, Billing, ServiceOrderItem, Visit


WORKABLE_ORDER_STATUSES = (BatchOrderStatus.QUEUED, BatchOrderStatus.IN_PROGRESS)

OUTSTANDING_BILLING_STATUSES = (BillingStatus.PENDING, BillingStatus.PARTIAL)

DOCTOR_QUEUE_STATUSES = (
    VisitStatus.WAITING_FOR_DOCTOR,
    VisitStatus.UNDER_DOCTOR_REVIEW,
    VisitStatus.AWAITING_RESULTS_REVIEW,
    VisitStatus.NURSE_SERVICES_COMPLETED,
)

TECHNICIAN_KINDS = {
    Role.LAB_TECHNICIAN: ServiceKind.LAB,
    Role.RADIOLOGY_TECHNICIAN: ServiceKind.RADIOLOGY,
    Role.PHARMACIST: ServiceKind.PHARMACY,
}


@dataclass(frozen=True)
class BillingSummary:
    billing_id: object
    purpose: str
    status: str
    total_amount: Decimal
    paid_amount: Decimal
    currency: str

    @property
    def outstanding_amount(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))


@dataclass(frozen=True)
class ItemSummary:
    item_id: object
    position: int
    kind: str
    display_name: str
    service_reference_id: str
    status: str
    assignee_id: object = None


@dataclass(frozen=True)
class BatchOrderSummary:
    batch_order_id: object
    kind: str
    status: str
    version: int
    items: list[ItemSummary] = field(default_factory=list)


@dataclass(frozen=True)
class VisitSummary:
    visit_id: object
    visit_number: str
    patient_id: str
    status: str
    queue_type: str
    assignment_id: object
    doctor_id: object
    created_at: datetime
    batch_orders: list[BatchOrderSummary] = field(default_factory=list)
    billings: list[BillingSummary] = field(default_factory=list)


def _active_doctor(visit_ref="pk") -> QuerySet:
    return Assignment.objects.filter(
        visit=OuterRef(visit_ref),
        role=AssignmentRole.DOCTOR,
        status=AssignmentStatus.ACTIVE,
        item__isnull=True,
    )


def _active_item_assignment() -> QuerySet:
    return Assignment.objects.filter(item=OuterRef("pk"), status=AssignmentStatus.ACTIVE)


def _open_items(kind: str) -> QuerySet:
    """Non-terminal items of kind in orders that are paid for and workable."""
    return ServiceOrderItem.objects.filter(
        kind=kind,
        batch_order__status__in=WORKABLE_ORDER_STATUSES,
    ).exclude(status__in=TERMINAL_ITEM_STATUSES)


def _outstanding_billings() -> QuerySet:
    return Billing.objects.filter(
        status__in=OUTSTANDING_BILLING_STATUSES,
    ).exclude(batch_order__status=BatchOrderStatus.CANCELLED)


def _billing_queue(actor):
    billings = _outstanding_billings()
    visits = Visit.objects.exclude(status=VisitStatus.CANCELLED).filter(
        Exists(billings.filter(visit=OuterRef("pk")))
    )
    items = ServiceOrderItem.objects.filter(batch_order__status=BatchOrderStatus.UNPAID)
    return visits, items, billings


def _nurse_queue(actor):
    entry_paid = Billing.objects.filter(
        visit=OuterRef("pk"), purpose=BillingPurpose.ENTRY_FEE, status=BillingStatus.PAID,
    )
    entry_unpaid = Billing.objects.filter(
        visit=OuterRef("pk"), purpose=BillingPurpose.ENTRY_FEE,
    ).exclude(status=BillingStatus.PAID)

    assignments = _active_item_assignment()
    items = _open_items(ServiceKind.NURSE).filter(
        ~Exists(assignments) | Exists(assignments.filter(provider=actor.user))
    )

    visits = Visit.objects.exclude(status__in=TERMINAL_VISIT_STATUSES).filter(
        Q(status=VisitStatus.WAITING_FOR_TRIAGE) & Exists(entry_paid) & ~Exists(entry_unpaid)
        | Q(status=VisitStatus.TRIAGED) & ~Exists(_active_doctor())
        | Exists(items.filter(batch_order__visit=OuterRef("pk")))
    )
    return visits, items, None


def _doctor_queue(actor):
    visits = Visit.objects.filter(
        status__in=DOCTOR_QUEUE_STATUSES,
    ).filter(
        Exists(_active_doctor().filter(provider=actor.user))
    )
    return visits, ServiceOrderItem.objects.all(), None


def _technician_queue(kind):
    def build(actor):
        items = _open_items(kind)
        visits = Visit.objects.exclude(status=VisitStatus.CANCELLED).filter(
            Exists(items.filter(batch_order__visit=OuterRef("pk")))
        )
        return visits, items, None
    return build


QUEUE_BUILDERS = {
    Role.BILLING_OFFICER: _billing_queue,
    Role.NURSE: _nurse_queue,
    Role.DOCTOR: _doctor_queue,
    Role.LAB_TECHNICIAN: _technician_queue(ServiceKind.LAB),
    Role.RADIOLOGY_TECHNICIAN: _technician_queue(ServiceKind.RADIOLOGY),
    Role.PHARMACIST: _technician_queue(ServiceKind.PHARMACY),
}

ACTOR_REQUIRED = frozenset({Role.NURSE, Role.DOCTOR})


def list_for(role: str, actor=None) -> list[VisitSummary]:
    """
    Return the work list for a role, oldest visit first.

    Raises:
        ValidationError: Unknown role, or a NURSE/DOCTOR queue requested
            without an actor
    """
    try:
        role = Role(role)
    except ValueError:
        raise ValidationError(f"Unknown role '{role}'", errors={"role": ["Invalid choice"]})

    if role in ACTOR_REQUIRED and actor is None:
        raise ValidationError(f"The {role} queue requires an actor", errors={"actor": ["Required"]})

    visits, items, billings = QUEUE_BUILDERS[role](actor)
    return _summarize(visits, items, billings)


def _summarize(visits: QuerySet, items: QuerySet | None, billings: QuerySet | None) -> list[VisitSummary]:
    active = _active_doctor()
    visits = list(
        visits.annotate(
            active_assignment_id=Subquery(active.values("pk")[:1]),
            active_doctor_id=Subquery(active.values("provider_id")[:1]),
        ).order_by("created_at", "pk")
    )
    visit_ids = [visit.pk for visit in visits]

    orders_by_visit = defaultdict(list)
    if items is not None:
        grouped = {}
        item_rows = items.filter(
            batch_order__visit_id__in=visit_ids,
        ).annotate(
            assignee_id=Subquery(_active_item_assignment().values("provider_id")[:1]),
        ).select_related("batch_order").order_by("batch_order__created_at", "batch_order_id", "position")
        for item in item_rows:
            order = item.batch_order
            if order.pk not in grouped:
                grouped[order.pk] = (order, [])
                orders_by_visit[order.visit_id].append(order.pk)
            grouped[order.pk][1].append(ItemSummary(
                item_id=item.pk,
                position=item.position,
                kind=item.kind,
                display_name=item.display_name,
                service_reference_id=item.service_reference_id,
                status=item.status,
                assignee_id=item.assignee_id,
            ))
        for visit_id, order_ids in orders_by_visit.items():
            orders_by_visit[visit_id] = [
                BatchOrderSummary(
                    batch_order_id=grouped[pk][0].pk,
                    kind=grouped[pk][0].kind,
                    status=grouped[pk][0].status,
                    version=grouped[pk][0].version,
                    items=grouped[pk][1],
                )
                for pk in order_ids
            ]

    billings_by_visit = defaultdict(list)
    if billings is not None:
        billing_rows = billings.filter(visit_id__in=visit_ids).annotate(
            paid_amount=Coalesce(
                Sum("payments__amount"),
                Value(Decimal("0")),
                output_field=DecimalField(max_digits=12, decimal_places=2),
            ),
        ).order_by("created_at")
        for billing in billing_rows:
            billings_by_visit[billing.visit_id].append(BillingSummary(
                billing_id=billing.pk,
                purpose=billing.purpose,
                status=billing.status,
                total_amount=billing.total_amount,
                paid_amount=billing.paid_amount,
                currency=billing.currency,
            ))

    return [
        VisitSummary(
            visit_id=visit.pk,
            visit_number=visit.visit_number,
            patient_id=visit.patient_id,
            status=visit.status,
            queue_type=visit.queue_type,
            assignment_id=visit.active_assignment_id,
            doctor_id=visit.active_doctor_id,
            created_at=visit.created_at,
            batch_orders=orders_by_visit.get(visit.pk, []),
            billings=billings_by_visit.get(visit.pk, []),
        )
        for visit in visits
    ]
