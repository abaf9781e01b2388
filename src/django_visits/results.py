"""Results aggregator: hand the visit back to the doctor when its orders close."""

import logging

from . import graph
from .enums import TERMINAL_ORDER_STATUSES
from .exceptions import GuardNotSatisfied
from .models import BatchOrder, Visit
from .selectors import get_active_doctor_assignment, has_open_result_orders
from .transactions import engine_operation, lock_row
from .visits import apply_transition


logger = logging.getLogger(__name__)


@engine_operation
def on_batch_order_closed(batch_order: BatchOrder, actor=None) -> Visit | None:
    """
    Route the visit back for results review once nothing is outstanding.

    Runs after every item completion and every explicit order cancellation.
    The visit moves only when:
    - the batch order is COMPLETED or CANCELLED
    - the visit is waiting on orders (SENT_TO_* or WAITING_FOR_NURSE_SERVICE)
    - no other result-bearing work is open on the visit

    The visit's doctor assignment is left as is; it routes the visit back
    to the same doctor.

    Returns:
        The transitioned Visit, or None when nothing changed

    Raises:
        GuardNotSatisfied: The visit has no active doctor assignment
    """
    if batch_order.status not in TERMINAL_ORDER_STATUSES:
        return None

    visit = lock_row(Visit.objects, batch_order.visit_id, "Visit")

    if visit.status not in graph.WAITING_ON_ORDERS_STATUSES:
        logger.debug(f"Visit {visit.visit_number} in {visit.status}, not waiting on orders")
        return None

    if has_open_result_orders(visit):
        logger.debug(f"Visit {visit.visit_number} still has open orders")
        return None

    if get_active_doctor_assignment(visit) is None:
        raise GuardNotSatisfied([f"Visit {visit.visit_number} has no active doctor assignment"])

    target = graph.status_after_results(visit.status)
    apply_transition(visit, target, actor, {"batch_order_id": str(batch_order.pk)})
    return visit
