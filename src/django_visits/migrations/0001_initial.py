# Generated manually for standalone django-visits package

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import django_visits.models
from django_visits.enums import (
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
    VisitStatus,
)


def _base_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Visit",
            fields=_base_fields() + [
                (
                    "visit_number",
                    models.CharField(
                        default=django_visits.models.generate_visit_number,
                        help_text="Human-readable visit identifier",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "patient_id",
                    models.CharField(
                        db_index=True,
                        help_text="Opaque reference to the patient record",
                        max_length=64,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=VisitStatus.choices,
                        db_index=True,
                        default="REGISTERED",
                        max_length=40,
                    ),
                ),
                (
                    "queue_type",
                    models.CharField(
                        choices=QueueType.choices,
                        db_index=True,
                        default="REGISTRATION",
                        editable=False,
                        help_text="Derived from status; never set directly",
                        max_length=32,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Incremented on every status change"
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_visits",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["queue_type", "created_at"],
                        name="visits_visit_queue_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VisitTransition",
            fields=_base_fields() + [
                ("from_status", models.CharField(choices=VisitStatus.choices, max_length=40)),
                ("to_status", models.CharField(choices=VisitStatus.choices, max_length=40)),
                ("actor_role", models.CharField(blank=True, default="", max_length=32)),
                ("transitioned_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transitions",
                        to="django_visits.visit",
                    ),
                ),
                (
                    "transitioned_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="visit_transitions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["transitioned_at"],
            },
        ),
        migrations.CreateModel(
            name="TriageRecord",
            fields=_base_fields() + [
                ("blood_pressure", models.CharField(blank=True, default="", max_length=16)),
                ("temperature", models.DecimalField(blank=True, decimal_places=1, max_digits=4, null=True)),
                ("heart_rate", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("respiratory_rate", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("oxygen_saturation", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("weight_kg", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("height_cm", models.DecimalField(blank=True, decimal_places=1, max_digits=5, null=True)),
                ("chief_complaint", models.TextField(blank=True, default="")),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="triage_records",
                        to="django_visits.visit",
                    ),
                ),
                (
                    "recorded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="triage_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="Billing",
            fields=_base_fields() + [
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                ("purpose", models.CharField(choices=BillingPurpose.choices, max_length=20)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=BillingStatus.choices,
                        db_index=True,
                        default="PENDING",
                        max_length=10,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="billings",
                        to="django_visits.visit",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_amount__gte=0),
                        name="visits_billing_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillPayment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("method", models.CharField(choices=PaymentMethod.choices, max_length=16)),
                ("insurance_reference", models.CharField(blank=True, default="", max_length=128)),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Receipt or bank transaction reference",
                        max_length=128,
                    ),
                ),
                ("idempotency_key", models.CharField(blank=True, default="", max_length=128)),
                ("recorded_at", models.DateTimeField(auto_now_add=True)),
                (
                    "billing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="django_visits.billing",
                    ),
                ),
                (
                    "recorded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="recorded_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["recorded_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0),
                        name="visits_payment_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("idempotency_key", ""), _negated=True),
                        fields=("billing", "idempotency_key"),
                        name="visits_payment_unique_idempotency_key",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BatchOrder",
            fields=_base_fields() + [
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                ("kind", models.CharField(choices=OrderKind.choices, max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=BatchOrderStatus.choices,
                        db_index=True,
                        default="UNPAID",
                        max_length=16,
                    ),
                ),
                ("instructions", models.TextField(blank=True, default="")),
                ("version", models.PositiveIntegerField(default=1)),
                ("queued_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "billing",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batch_order",
                        to="django_visits.billing",
                    ),
                ),
                (
                    "ordering_provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ordered_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batch_orders",
                        to="django_visits.visit",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["visit", "status"],
                        name="visits_order_visit_status_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ServiceOrderItem",
            fields=_base_fields() + [
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "service_reference_id",
                    models.CharField(
                        help_text="Opaque reference to the catalog entry",
                        max_length=64,
                    ),
                ),
                (
                    "display_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Snapshot of the catalog name at order time",
                        max_length=255,
                    ),
                ),
                ("kind", models.CharField(choices=ServiceKind.choices, db_index=True, max_length=16)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField(default=1)),
                (
                    "status",
                    models.CharField(
                        choices=ItemStatus.choices,
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                (
                    "result_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Opaque reference to stored results",
                        max_length=255,
                    ),
                ),
                ("instructions", models.TextField(blank=True, default="")),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "batch_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="django_visits.batchorder",
                    ),
                ),
                (
                    "completed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="completed_service_items",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["batch_order", "position"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("batch_order", "position"),
                        name="visits_item_unique_position",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(unit_price__gte=0),
                        name="visits_item_price_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(quantity__gte=1),
                        name="visits_item_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Assignment",
            fields=_base_fields() + [
                ("patient_id", models.CharField(max_length=64)),
                ("role", models.CharField(choices=AssignmentRole.choices, max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=AssignmentStatus.choices,
                        db_index=True,
                        default="ACTIVE",
                        max_length=16,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "assigned_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="django_visits.serviceorderitem",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="visit_assignments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="django_visits.visit",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("item__isnull", True), ("status", "ACTIVE")),
                        fields=("visit",),
                        name="visits_one_active_visit_assignment",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("item__isnull", False), ("status", "ACTIVE")),
                        fields=("item",),
                        name="visits_one_active_item_assignment",
                    ),
                ],
            },
        ),
        # Visit <-> Assignment is circular, so the visit side is added last
        migrations.AddField(
            model_name="visit",
            name="assignment",
            field=models.ForeignKey(
                blank=True,
                help_text="Current responsible doctor assignment",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="django_visits.assignment",
            ),
        ),
    ]
