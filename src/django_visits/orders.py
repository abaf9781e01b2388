"""Batch order coordinator.

Provides:
- create_batch_order: Group service requests into one billable order
- on_billing_paid: Queue the order once its billing is PAID
- start_item / complete_item: Record work on a single service item
- cancel_batch_order: Explicitly cancel an order and its open items
- cancel_open_orders: Cascade used when a visit is cancelled

Every function that changes an item locks the visit and then the parent
BatchOrder row before reading the item, so concurrent updates to items of
one order serialize and the aggregate status is computed from committed
item rows.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.utils import timezone

from . import graph
from .actors import actor_user
from .aggregation import aggregate_kind, aggregate_status
from .billing import create_billing, validate_amount
from .conf import get_currency
from .enums import (
    AssignmentStatus,
    BatchOrderStatus,
    BillingPurpose,
    BillingStatus,
    ItemStatus,
    ServiceKind,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_ORDER_STATUSES,
)
from .exceptions import GuardNotSatisfied, ValidationError
from .models import Assignment, BatchOrder, Billing, ServiceOrderItem, Visit
from .selectors import get_active_doctor_assignment, open_item_kinds
from .transactions import engine_operation, get_row, lock_row
from .visits import apply_transition, check_version


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceRequest:
    """One requested service, priced by the caller's catalog."""
    service_reference_id: str
    kind: str
    unit_price: Decimal
    quantity: int = 1
    display_name: str = ""
    instructions: str = ""


def validate_service_requests(items) -> list[dict]:
    """
    Validate service requests and return cleaned field values.

    Accepts ServiceRequest instances or dicts with the same keys.

    Raises:
        ValidationError: With errors keyed "items[<index>].<field>"
    """
    if not items:
        raise ValidationError("At least one service request is required", errors={"items": ["Required"]})

    currency = get_currency()
    cleaned = []
    errors = {}

    for index, item in enumerate(items):
        prefix = f"items[{index}]"
        if isinstance(item, dict):
            try:
                item = ServiceRequest(**item)
            except TypeError as e:
                errors[prefix] = [str(e)]
                continue

        reference = str(item.service_reference_id or "").strip()
        if not reference:
            errors[f"{prefix}.service_reference_id"] = ["Required"]

        if item.kind not in ServiceKind.values:
            errors[f"{prefix}.kind"] = [f"Unknown service kind '{item.kind}'"]

        try:
            unit_price = validate_amount(item.unit_price, currency, field="unit_price", allow_zero=True)
        except ValidationError as e:
            errors[f"{prefix}.unit_price"] = [str(e)]
            unit_price = None

        quantity = item.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors[f"{prefix}.quantity"] = ["Must be a positive integer"]

        cleaned.append({
            "service_reference_id": reference,
            "kind": item.kind,
            "unit_price": unit_price,
            "quantity": quantity,
            "display_name": item.display_name or "",
            "instructions": item.instructions or "",
        })

    if errors:
        raise ValidationError("Invalid service requests", errors=errors)
    return cleaned


@engine_operation
def create_batch_order(
    visit_id,
    ordering_provider,
    items,
    *,
    actor=None,
    instructions: str = "",
) -> BatchOrder:
    """
    Create a batch order with its billing, and route the visit.

    The order starts UNPAID with every item PENDING. The visit moves to
    SENT_TO_LAB, SENT_TO_RADIOLOGY, SENT_TO_BOTH or WAITING_FOR_NURSE_SERVICE
    according to the kinds now outstanding; pharmacy orders leave it where
    it is. A zero-priced order is queued immediately.

    Args:
        visit_id: The visit being ordered for
        ordering_provider: User placing the order; must be the assigned doctor
        items: List of ServiceRequest (or dicts)
        actor: Actor placing the order
        instructions: Free text for the whole batch

    Returns:
        The created BatchOrder

    Raises:
        ValidationError: Empty or malformed items
        NotFound: Unknown visit
        GuardNotSatisfied: Visit cannot take orders, or provider is not the
            assigned doctor
    """
    requests = validate_service_requests(items)
    if ordering_provider is None or getattr(ordering_provider, "pk", None) is None:
        raise ValidationError("ordering_provider is required", errors={"ordering_provider": ["Required"]})

    visit = lock_row(Visit.objects, visit_id, "Visit")

    if visit.status not in graph.ORDERING_STATUSES:
        raise GuardNotSatisfied([f"Visit in '{visit.status}' cannot receive orders"])

    assignment = get_active_doctor_assignment(visit)
    if assignment is None or assignment.provider_id != ordering_provider.pk:
        raise GuardNotSatisfied(["Ordering provider is not the visit's assigned doctor"])

    total = sum((r["unit_price"] * r["quantity"] for r in requests), Decimal("0"))
    billing = create_billing(visit, BillingPurpose.ORDER, total)

    order = BatchOrder.objects.create(
        visit=visit,
        patient_id=visit.patient_id,
        ordering_provider=ordering_provider,
        kind=aggregate_kind(r["kind"] for r in requests),
        billing=billing,
        instructions=instructions or "",
    )
    for position, request in enumerate(requests):
        ServiceOrderItem.objects.create(batch_order=order, position=position, **request)

    logger.info(
        f"Batch order {order.pk} ({order.kind}, {len(requests)} item(s), {total}) "
        f"created for visit {visit.visit_number}"
    )

    target = graph.status_after_order(visit.status, open_item_kinds(visit))
    if target != visit.status:
        apply_transition(visit, target, actor, {"batch_order_id": str(order.pk)})

    if billing.status == BillingStatus.PAID:
        on_billing_paid(billing.pk, actor=actor)
        order.refresh_from_db()

    return order


@engine_operation
def on_billing_paid(billing_id, actor=None) -> BatchOrder | None:
    """
    Queue the batch order funded by a PAID billing.

    This is the only path from UNPAID to QUEUED. Billings that fund no
    order, and orders already past UNPAID, are left alone.

    Raises:
        NotFound: Unknown billing
        GuardNotSatisfied: Billing is not PAID
    """
    billing = get_row(Billing.objects, billing_id, "Billing")
    if billing.status != BillingStatus.PAID:
        raise GuardNotSatisfied([f"Billing {billing.pk} is {billing.status}, not PAID"])

    order = BatchOrder.objects.select_for_update().filter(billing=billing).first()
    if order is None:
        return None
    if order.status != BatchOrderStatus.UNPAID:
        logger.debug(f"Batch order {order.pk} already {order.status}, not re-queued")
        return order

    order.status = BatchOrderStatus.QUEUED
    order.queued_at = timezone.now()
    order.version += 1
    order.save(update_fields=["status", "queued_at", "version", "updated_at"])
    logger.info(f"Batch order {order.pk} queued after payment")
    return order


def _lock_order(order_id) -> BatchOrder:
    """Lock the visit, then the order. Every path takes locks in this order."""
    order = get_row(BatchOrder.objects, order_id, "BatchOrder")
    lock_row(Visit.objects, order.visit_id, "Visit")
    return lock_row(BatchOrder.objects, order_id, "BatchOrder")


def _lock_item(item_id) -> tuple[BatchOrder, ServiceOrderItem]:
    """Lock the visit and parent order, then read the item under those locks."""
    item = get_row(ServiceOrderItem.objects, item_id, "ServiceOrderItem")
    order = _lock_order(item.batch_order_id)
    item.refresh_from_db()
    return order, item


def _require_payable(order: BatchOrder):
    if order.status == BatchOrderStatus.UNPAID:
        raise GuardNotSatisfied([f"Batch order {order.pk} has not been paid"])


def _reaggregate(order: BatchOrder, actor=None) -> BatchOrder:
    """Recompute the order status from its items; run the results aggregator when it closes."""
    statuses = list(order.items.values_list("status", flat=True))
    new_status = aggregate_status(order.status, statuses)

    order.version += 1
    update_fields = ["version", "updated_at"]
    if new_status != order.status:
        logger.info(f"Batch order {order.pk}: {order.status} -> {new_status}")
        order.status = new_status
        update_fields.append("status")
        if new_status == BatchOrderStatus.COMPLETED:
            order.completed_at = timezone.now()
            update_fields.append("completed_at")
        elif new_status == BatchOrderStatus.CANCELLED:
            order.cancelled_at = timezone.now()
            update_fields.append("cancelled_at")
    order.save(update_fields=update_fields)

    if order.status in TERMINAL_ORDER_STATUSES:
        from .results import on_batch_order_closed

        on_batch_order_closed(order, actor)
    return order


@engine_operation
def start_item(item_id, actor=None) -> ServiceOrderItem:
    """
    Mark a PENDING item IN_PROGRESS. Starting an item already in progress is a no-op.

    Raises:
        NotFound: Unknown item
        GuardNotSatisfied: Order unpaid, or item already finished
    """
    order, item = _lock_item(item_id)
    _require_payable(order)

    if item.status == ItemStatus.IN_PROGRESS:
        return item
    if item.status in TERMINAL_ITEM_STATUSES:
        raise GuardNotSatisfied([f"Item {item.pk} is already {item.status}"])

    item.status = ItemStatus.IN_PROGRESS
    item.started_at = timezone.now()
    item.save(update_fields=["status", "started_at", "updated_at"])

    _reaggregate(order, actor)
    return item


@engine_operation
def complete_item(
    item_id,
    result_reference: str = "",
    actor=None,
    *,
    outcome: str = ItemStatus.COMPLETED,
    expected_version: int = None,
) -> ServiceOrderItem:
    """
    Finish a service item and recompute its batch order.

    A terminal item is returned unchanged, whatever the requested outcome.

    Args:
        item_id: The item to finish
        result_reference: Opaque reference to stored results
        actor: Actor finishing the item
        outcome: ItemStatus.COMPLETED or ItemStatus.CANCELLED
        expected_version: BatchOrder.version the caller last saw

    Raises:
        NotFound: Unknown item
        ValidationError: outcome is not COMPLETED or CANCELLED
        GuardNotSatisfied: Order unpaid
        ConcurrencyConflict: expected_version is stale
    """
    if outcome not in (ItemStatus.COMPLETED, ItemStatus.CANCELLED):
        raise ValidationError(f"Invalid outcome '{outcome}'", errors={"outcome": ["Invalid choice"]})

    order, item = _lock_item(item_id)

    if item.status in TERMINAL_ITEM_STATUSES:
        logger.debug(f"Item {item.pk} already {item.status}, completion is a no-op")
        return item

    check_version(order, expected_version)
    _require_payable(order)

    now = timezone.now()
    item.status = outcome
    item.completed_at = now
    item.completed_by = actor_user(actor)
    if result_reference:
        item.result_reference = result_reference
    item.save(update_fields=["status", "completed_at", "completed_by", "result_reference", "updated_at"])

    Assignment.objects.filter(item=item, status=AssignmentStatus.ACTIVE).update(
        status=AssignmentStatus.COMPLETED, completed_at=now, updated_at=now,
    )

    logger.info(f"Item {item.pk} {outcome} on batch order {order.pk}")
    _reaggregate(order, actor)
    return item


def _cancel_order(order: BatchOrder, reason: str = "") -> int:
    """Cancel every non-terminal item and the order itself. Order must be locked."""
    now = timezone.now()
    items = order.items.exclude(status__in=TERMINAL_ITEM_STATUSES)
    item_ids = list(items.values_list("pk", flat=True))
    items.update(status=ItemStatus.CANCELLED, completed_at=now, updated_at=now)
    Assignment.objects.filter(item_id__in=item_ids, status=AssignmentStatus.ACTIVE).update(
        status=AssignmentStatus.COMPLETED, completed_at=now, updated_at=now,
    )

    order.status = BatchOrderStatus.CANCELLED
    order.cancelled_at = now
    order.version += 1
    if reason:
        order.instructions = f"{order.instructions}\nCancelled: {reason}".strip()
    order.save(update_fields=["status", "cancelled_at", "version", "instructions", "updated_at"])
    logger.info(f"Batch order {order.pk} cancelled ({len(item_ids)} open item(s))")
    return len(item_ids)


@engine_operation
def cancel_batch_order(batch_order_id, actor=None, *, reason: str = "") -> BatchOrder:
    """
    Cancel a batch order and its non-terminal items.

    Cancelling an already cancelled order is a no-op.

    Raises:
        NotFound: Unknown order
        GuardNotSatisfied: Order is already COMPLETED
    """
    order = _lock_order(batch_order_id)
    if order.status == BatchOrderStatus.CANCELLED:
        return order
    if order.status == BatchOrderStatus.COMPLETED:
        raise GuardNotSatisfied([f"Batch order {order.pk} is already COMPLETED"])

    _cancel_order(order, reason)

    from .results import on_batch_order_closed

    on_batch_order_closed(order, actor)
    return order


def cancel_open_orders(visit: Visit, actor=None) -> int:
    """Cancel every non-terminal order of a visit. Runs inside the caller's transaction."""
    orders = BatchOrder.objects.select_for_update().filter(
        visit=visit,
    ).exclude(status__in=TERMINAL_ORDER_STATUSES).order_by("created_at")
    count = 0
    for order in orders:
        _cancel_order(order)
        count += 1
    return count
