"""Billing gate: charges, the payment ledger, and the paid check.

Provides:
- create_billing: Open a charge against a visit
- record_payment: Append a payment and recompute the billing status
- is_payable / billing_status: Read whether gated work may proceed
- compute_billing_status: Pure status rule over the ledger sum
"""

import logging
from decimal import Decimal

from django.db.models import Sum
from django.utils import timezone

from .actors import actor_user
from .conf import get_currency, get_setting
from .enums import BatchOrderStatus, BillingStatus, PaymentMethod, VisitStatus
from .exceptions import GuardNotSatisfied, ValidationError
from .models import BatchOrder, Billing, BillPayment, Visit
from .money import Money, to_decimal
from .transactions import engine_operation, get_row, lock_row


logger = logging.getLogger(__name__)


def compute_billing_status(paid: Decimal, total: Decimal) -> BillingStatus:
    """PAID iff paid >= total; PARTIAL iff 0 < paid < total; else PENDING."""
    if paid >= total:
        return BillingStatus.PAID
    if paid > 0:
        return BillingStatus.PARTIAL
    return BillingStatus.PENDING


def ledger_total(billing: Billing) -> Decimal:
    """Sum of all recorded payments for a billing, at the currency's precision."""
    total = billing.payments.aggregate(total=Sum("amount"))["total"] or Decimal("0")
    return Money(total, billing.currency).quantized().amount


def validate_amount(value, currency: str, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """Coerce value to a Decimal with no more precision than currency allows."""
    amount = to_decimal(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field} must be {qualifier}, got {amount}", errors={field: ["Out of range"]})
    if not Money(amount, currency).has_valid_precision():
        raise ValidationError(
            f"{field} {amount} has more decimal places than {currency} allows",
            errors={field: ["Too many decimal places"]},
        )
    return amount


def create_billing(visit: Visit, purpose: str, amount) -> Billing:
    """
    Open a billing for visit. Runs inside the caller's transaction.

    A zero amount is PAID on creation.
    """
    currency = get_currency()
    total = validate_amount(amount, currency, field="total_amount", allow_zero=True)
    status = compute_billing_status(Decimal("0"), total)

    billing = Billing.objects.create(
        visit=visit,
        patient_id=visit.patient_id,
        purpose=purpose,
        total_amount=total,
        currency=currency,
        status=status,
        paid_at=timezone.now() if status == BillingStatus.PAID else None,
    )
    logger.info(f"Billing {billing.pk} opened: {purpose} {total} {currency} for visit {visit.pk}")
    return billing


@engine_operation
def record_payment(
    billing_id,
    amount,
    method: str,
    insurance_reference: str = None,
    *,
    actor=None,
    reference: str = "",
    idempotency_key: str = "",
) -> Billing:
    """Record a payment against a billing.

    Appends a BillPayment and recomputes the billing status from the ledger.
    When the billing becomes PAID and funds a batch order, the order is
    queued in the same transaction.

    Args:
        billing_id: The billing being paid
        amount: Decimal, int or decimal string. Floats are rejected.
        method: A PaymentMethod value
        insurance_reference: Required for INSURANCE payments
        actor: Actor recording the payment
        reference: Optional receipt or bank transaction reference
        idempotency_key: A replayed key returns the billing unchanged

    Returns:
        The updated Billing

    Raises:
        NotFound: If the billing does not exist
        GuardNotSatisfied: The visit or the funded batch order is cancelled
        ValidationError: Bad amount or method, billing already PAID, or
            amount above the outstanding balance
    """
    billing = lock_row(Billing.objects, billing_id, "Billing")

    if idempotency_key and billing.payments.filter(idempotency_key=idempotency_key).exists():
        logger.debug(f"Payment replay on billing {billing.pk} with key {idempotency_key}, no-op")
        return billing

    if billing.visit.status == VisitStatus.CANCELLED:
        raise GuardNotSatisfied([f"Visit {billing.visit.visit_number} is cancelled"])
    if BatchOrder.objects.filter(billing=billing, status=BatchOrderStatus.CANCELLED).exists():
        raise GuardNotSatisfied([f"Billing {billing.pk} funds a cancelled batch order"])

    amount = validate_amount(amount, billing.currency)

    if method not in PaymentMethod.values:
        raise ValidationError(f"Unknown payment method '{method}'", errors={"method": ["Invalid choice"]})

    insurance_reference = (insurance_reference or "").strip()
    if method == PaymentMethod.INSURANCE and not insurance_reference:
        raise ValidationError(
            "Insurance payments require an insurance reference",
            errors={"insurance_reference": ["Required for insurance payments"]},
        )

    if billing.status == BillingStatus.PAID:
        raise ValidationError(f"Billing {billing.pk} is already paid")

    paid = ledger_total(billing)
    outstanding = billing.total_amount - paid
    if amount > outstanding and not get_setting("ALLOW_OVERPAYMENT"):
        raise ValidationError(
            f"Payment amount {amount} exceeds remaining balance {outstanding}",
            errors={"amount": ["Exceeds remaining balance"]},
        )

    BillPayment.objects.create(
        billing=billing,
        amount=amount,
        method=method,
        insurance_reference=insurance_reference,
        reference=reference,
        idempotency_key=idempotency_key,
        recorded_by=actor_user(actor),
    )

    new_status = compute_billing_status(paid + amount, billing.total_amount)
    if new_status != billing.status:
        billing.status = new_status
        if new_status == BillingStatus.PAID:
            billing.paid_at = timezone.now()
        billing.save(update_fields=["status", "paid_at", "updated_at"])

    logger.info(
        f"Payment {amount} {billing.currency} via {method} on billing {billing.pk}; "
        f"status {billing.status}"
    )

    if billing.status == BillingStatus.PAID:
        from .orders import on_billing_paid

        on_billing_paid(billing.pk, actor=actor)

    return billing


def billing_status(billing_id) -> BillingStatus:
    billing = get_row(Billing.objects, billing_id, "Billing")
    return BillingStatus(billing.status)


def is_payable(billing_id) -> bool:
    """True iff the billing is PAID, so the work it gates may proceed."""
    return billing_status(billing_id) == BillingStatus.PAID
