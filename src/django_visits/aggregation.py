"""Pure aggregation rules from service item state to batch order state."""

from typing import Iterable

from .enums import BatchOrderStatus, ItemStatus, OrderKind, ServiceKind, TERMINAL_ITEM_STATUSES


def aggregate_kind(kinds: Iterable[str]) -> OrderKind:
    """Return the common kind of a set of items, or MIXED when they differ."""
    distinct = {ServiceKind(kind) for kind in kinds}
    if not distinct:
        raise ValueError("Cannot aggregate kind of an empty item list")
    if len(distinct) > 1:
        return OrderKind.MIXED
    return OrderKind(distinct.pop().value)


def aggregate_status(current: str, item_statuses: Iterable[str]) -> BatchOrderStatus:
    """
    Derive a batch order's status from its items.

    - COMPLETED iff every item is terminal and at least one COMPLETED
    - CANCELLED iff every item is CANCELLED
    - IN_PROGRESS iff at least one item started or finished and one is PENDING
    - otherwise the current status is kept (UNPAID, PAID and QUEUED are
      owned by the billing gate, not by the items)
    """
    statuses = [ItemStatus(s) for s in item_statuses]
    current = BatchOrderStatus(current)

    if not statuses:
        return current

    if all(s in TERMINAL_ITEM_STATUSES for s in statuses):
        if ItemStatus.COMPLETED in statuses:
            return BatchOrderStatus.COMPLETED
        return BatchOrderStatus.CANCELLED

    worked = any(s in (ItemStatus.IN_PROGRESS, ItemStatus.COMPLETED) for s in statuses)
    if worked and ItemStatus.PENDING in statuses:
        return BatchOrderStatus.IN_PROGRESS

    return current
