"""Models for django-visits.

Provides:
- Visit: One clinical episode, with status and the queue type derived from it
- VisitTransition: Audit log of all visit state changes
- TriageRecord: Vitals captured by the triage nurse
- Billing / BillPayment: Charge and its append-only payment ledger
- BatchOrder / ServiceOrderItem: Billable unit of service requests
- Assignment: Responsible provider per visit (doctor) or per item (nurse)
"""

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .enums import (
    AssignmentRole,
    AssignmentStatus,
    BatchOrderStatus,
    BillingPurpose,
    BillingStatus,
    ItemStatus,
    OrderKind,
    PaymentMethod,
    QueueType,
    ServiceKind,
    TERMINAL_ORDER_STATUSES,
    TERMINAL_VISIT_STATUSES,
    VisitStatus,
)
from .exceptions import ImmutableRecordError
from .graph import derive_queue_type


class VisitsBaseModel(models.Model):
    """Base model with UUID primary key and timestamps. Rows are never deleted."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


def generate_visit_number() -> str:
    """VISIT-YYYYMMDD-XXXXXXXX, unique enough to need no sequence table."""
    return f"VISIT-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class Visit(VisitsBaseModel):
    """
    A single clinical episode for one patient.

    status moves only through services (visits.transition_visit and the
    operations built on it). queue_type is recomputed on every save, so it
    is written in the same UPDATE as status.
    """

    visit_number = models.CharField(
        max_length=32,
        unique=True,
        default=generate_visit_number,
        help_text="Human-readable visit identifier"
    )
    patient_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Opaque reference to the patient record"
    )
    status = models.CharField(
        max_length=40,
        choices=VisitStatus.choices,
        default=VisitStatus.REGISTERED,
        db_index=True,
    )
    queue_type = models.CharField(
        max_length=32,
        choices=QueueType.choices,
        default=QueueType.REGISTRATION,
        editable=False,
        db_index=True,
        help_text="Derived from status; never set directly"
    )
    assignment = models.ForeignKey(
        "Assignment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Current responsible doctor assignment"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_visits",
    )
    notes = models.TextField(blank=True, default="")
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every status change"
    )

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["queue_type", "created_at"], name="visits_visit_queue_idx"),
        ]

    def __str__(self):
        return f"{self.visit_number} ({self.status})"

    def save(self, *args, **kwargs):
        self.queue_type = derive_queue_type(self.status)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "status" in update_fields:
            kwargs["update_fields"] = set(update_fields) | {"queue_type"}
        super().save(*args, **kwargs)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_VISIT_STATUSES


class VisitTransition(VisitsBaseModel):
    """
    Audit log of all visit state changes.

    Written in the same transaction as the change it records.
    """

    visit = models.ForeignKey(
        Visit,
        on_delete=models.PROTECT,
        related_name="transitions",
    )
    from_status = models.CharField(max_length=40, choices=VisitStatus.choices)
    to_status = models.CharField(max_length=40, choices=VisitStatus.choices)
    transitioned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="visit_transitions",
    )
    actor_role = models.CharField(max_length=32, blank=True, default="")
    transitioned_at = models.DateTimeField(default=timezone.now)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["transitioned_at"]

    def __str__(self):
        return f"{self.visit_id}: {self.from_status} -> {self.to_status}"


class TriageRecord(VisitsBaseModel):
    """Vitals recorded at triage. Stored as given; the engine does not interpret them."""

    visit = models.ForeignKey(
        Visit,
        on_delete=models.PROTECT,
        related_name="triage_records",
    )
    blood_pressure = models.CharField(max_length=16, blank=True, default="")
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    heart_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    respiratory_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    oxygen_saturation = models.PositiveSmallIntegerField(null=True, blank=True)
    weight_kg = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    height_cm = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    chief_complaint = models.TextField(blank=True, default="")
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="triage_records",
    )

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Triage for {self.visit_id}"


class Billing(VisitsBaseModel):
    """
    A charge against a visit.

    status is recomputed from the payment ledger by billing.record_payment.
    """

    visit = models.ForeignKey(
        Visit,
        on_delete=models.PROTECT,
        related_name="billings",
    )
    patient_id = models.CharField(max_length=64, db_index=True)
    purpose = models.CharField(max_length=20, choices=BillingPurpose.choices)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=10,
        choices=BillingStatus.choices,
        default=BillingStatus.PENDING,
        db_index=True,
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount__gte=0),
                name="visits_billing_total_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.purpose} {self.total_amount} {self.currency} ({self.status})"


# Append-only: no updated_at, no updates, no deletes
class BillPayment(models.Model):
    """
    Immutable payment ledger entry.

    Usage:
        BillPayment.objects.create(
            billing=billing,
            amount=Decimal("200.00"),
            method=PaymentMethod.CASH,
        )
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    billing = models.ForeignKey(
        Billing,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    insurance_reference = models.CharField(max_length=128, blank=True, default="")
    reference = models.CharField(
        max_length=128,
        blank=True,
        default="",
        help_text="Receipt or bank transaction reference"
    )
    idempotency_key = models.CharField(max_length=128, blank=True, default="")
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recorded_payments",
    )
    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["recorded_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="visits_payment_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["billing", "idempotency_key"],
                condition=~Q(idempotency_key=""),
                name="visits_payment_unique_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"{self.amount} {self.method} -> {self.billing_id}"

    def save(self, *args, **kwargs):
        """Refuse to modify a recorded payment."""
        if not self._state.adding:
            raise ImmutableRecordError("Bill payments cannot be modified once recorded")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError("Bill payments cannot be deleted")


class BatchOrder(VisitsBaseModel):
    """
    A group of service requests billed and tracked as one unit.

    status is the aggregate of item statuses (aggregation.aggregate_status),
    except UNPAID -> QUEUED which only orders.on_billing_paid performs.
    """

    visit = models.ForeignKey(
        Visit,
        on_delete=models.PROTECT,
        related_name="batch_orders",
    )
    patient_id = models.CharField(max_length=64, db_index=True)
    ordering_provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="ordered_batches",
    )
    kind = models.CharField(max_length=16, choices=OrderKind.choices)
    status = models.CharField(
        max_length=16,
        choices=BatchOrderStatus.choices,
        default=BatchOrderStatus.UNPAID,
        db_index=True,
    )
    billing = models.OneToOneField(
        Billing,
        on_delete=models.PROTECT,
        related_name="batch_order",
    )
    instructions = models.TextField(blank=True, default="")
    version = models.PositiveIntegerField(default=1)
    queued_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["visit", "status"], name="visits_order_visit_status_idx"),
        ]

    def __str__(self):
        return f"{self.kind} order {self.id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES


class ServiceOrderItem(VisitsBaseModel):
    """One service request inside a batch order."""

    batch_order = models.ForeignKey(
        BatchOrder,
        on_delete=models.CASCADE,
        related_name="items",
    )
    position = models.PositiveIntegerField(default=0)
    service_reference_id = models.CharField(
        max_length=64,
        help_text="Opaque reference to the catalog entry"
    )
    display_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Snapshot of the catalog name at order time"
    )
    kind = models.CharField(max_length=16, choices=ServiceKind.choices, db_index=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    status = models.CharField(
        max_length=16,
        choices=ItemStatus.choices,
        default=ItemStatus.PENDING,
        db_index=True,
    )
    result_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Opaque reference to stored results"
    )
    instructions = models.TextField(blank=True, default="")
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="completed_service_items",
    )

    class Meta:
        ordering = ["batch_order", "position"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch_order", "position"],
                name="visits_item_unique_position",
            ),
            models.CheckConstraint(
                condition=Q(unit_price__gte=0),
                name="visits_item_price_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=1),
                name="visits_item_quantity_positive",
            ),
        ]

    def __str__(self):
        return self.display_name or self.service_reference_id

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class Assignment(VisitsBaseModel):
    """
    Responsible provider for a visit (DOCTOR) or a single service item (NURSE).

    The database allows one ACTIVE visit-level assignment per visit and one
    ACTIVE assignment per item.
    """

    visit = models.ForeignKey(
        Visit,
        on_delete=models.PROTECT,
        related_name="assignments",
    )
    patient_id = models.CharField(max_length=64)
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="visit_assignments",
    )
    role = models.CharField(max_length=16, choices=AssignmentRole.choices)
    status = models.CharField(
        max_length=16,
        choices=AssignmentStatus.choices,
        default=AssignmentStatus.ACTIVE,
        db_index=True,
    )
    item = models.ForeignKey(
        ServiceOrderItem,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="assignments",
    )
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["visit"],
                condition=Q(status="ACTIVE", item__isnull=True),
                name="visits_one_active_visit_assignment",
            ),
            models.UniqueConstraint(
                fields=["item"],
                condition=Q(status="ACTIVE", item__isnull=False),
                name="visits_one_active_item_assignment",
            ),
        ]

    def __str__(self):
        return f"{self.role} {self.provider_id} on {self.visit_id} ({self.status})"
