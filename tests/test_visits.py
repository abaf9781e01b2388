"""Tests for visit lifecycle services."""

from decimal import Decimal

import pytest
from freezegun import freeze_time

from django_visits.enums import (
    AssignmentStatus,
    BatchOrderStatus,
    BillingPurpose,
    ItemStatus,
    QueueType,
    Role,
    ServiceKind,
    VisitStatus,
)
from django_visits.exceptions import (
    ConcurrencyConflict,
    GuardNotSatisfied,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from django_visits.models import Assignment, TriageRecord, Visit, VisitTransition
from django_visits.visits import (
    TriageVitals,
    cancel_visit,
    create_visit,
    get_allowed_transitions,
    record_triage,
    transition_visit,
)


@pytest.mark.django_db
class TestCreateVisit:
    """Tests for create_visit service."""

    def test_visit_waits_for_triage(self, nurse):
        registration = create_visit("PAT-1", actor=nurse, notes="walk-in")
        visit = registration.visit

        assert visit.status == VisitStatus.WAITING_FOR_TRIAGE
        assert visit.queue_type == QueueType.TRIAGE
        assert visit.patient_id == "PAT-1"
        assert visit.created_by == nurse.user
        assert visit.notes == "walk-in"
        assert visit.visit_number.startswith("VISIT-")
        assert registration.billing_id == registration.billing.pk

    def test_creation_is_audited(self, nurse):
        registration = create_visit("PAT-1", actor=nurse)

        audit = VisitTransition.objects.get(visit=registration.visit)
        assert audit.from_status == VisitStatus.REGISTERED
        assert audit.to_status == VisitStatus.WAITING_FOR_TRIAGE
        assert audit.transitioned_by == nurse.user
        assert audit.actor_role == Role.NURSE

    def test_empty_patient_rejected(self, db):
        with pytest.raises(ValidationError) as exc_info:
            create_visit("   ")
        assert "patient_id" in exc_info.value.errors
        assert Visit.objects.count() == 0

    def test_custom_entry_fee(self, nurse):
        registration = create_visit("PAT-1", actor=nurse, entry_fee=Decimal("75.50"))
        assert registration.billing.total_amount == Decimal("75.50")

    @freeze_time("2025-06-15 12:00:00")
    def test_visit_number_carries_date(self, nurse):
        registration = create_visit("PAT-1", actor=nurse)
        assert registration.visit.visit_number.startswith("VISIT-20250615-")

    def test_visit_numbers_unique(self, flow):
        first = flow.register().visit
        second = flow.register().visit
        assert first.visit_number != second.visit_number


@pytest.mark.django_db
class TestRecordTriage:
    """Tests for record_triage service."""

    def test_triage_requires_entry_fee(self, flow, nurse):
        registration = flow.register()

        with pytest.raises(GuardNotSatisfied) as exc_info:
            record_triage(registration.visit_id, TriageVitals(), nurse)

        assert "Entry fee has not been paid" in exc_info.value.reasons
        assert Visit.objects.get(pk=registration.visit_id).status == VisitStatus.WAITING_FOR_TRIAGE
        assert TriageRecord.objects.count() == 0

    def test_triage_records_vitals(self, flow, nurse):
        registration = flow.register()
        flow.pay(registration.billing)

        record = record_triage(
            registration.visit_id,
            TriageVitals(
                blood_pressure="120/80",
                temperature=Decimal("36.8"),
                heart_rate=72,
                oxygen_saturation=98,
                chief_complaint="Headache",
            ),
            nurse,
        )

        assert record.blood_pressure == "120/80"
        assert record.temperature == Decimal("36.8")
        assert record.heart_rate == 72
        assert record.recorded_by == nurse.user
        visit = Visit.objects.get(pk=registration.visit_id)
        assert visit.status == VisitStatus.TRIAGED
        assert visit.queue_type == QueueType.DOCTOR_ASSIGNMENT

    def test_negative_vital_rejected(self, flow, nurse):
        registration = flow.register()
        flow.pay(registration.billing)

        with pytest.raises(ValidationError) as exc_info:
            record_triage(registration.visit_id, TriageVitals(heart_rate=-5), nurse)

        assert "heart_rate" in exc_info.value.errors

    def test_fractional_count_vital_rejected(self, flow, nurse):
        registration = flow.register()
        flow.pay(registration.billing)

        with pytest.raises(ValidationError) as exc_info:
            record_triage(
                registration.visit_id,
                TriageVitals(heart_rate=Decimal("72.9"), oxygen_saturation="97.5"),
                nurse,
            )

        assert set(exc_info.value.errors) == {"heart_rate", "oxygen_saturation"}
        assert Visit.objects.get(pk=registration.visit_id).status == VisitStatus.WAITING_FOR_TRIAGE

    def test_whole_decimal_count_vital_accepted(self):
        assert TriageVitals(respiratory_rate=Decimal("16.0")).cleaned()["respiratory_rate"] == 16

    def test_triage_twice_rejected(self, flow, nurse):
        visit = flow.triaged()

        with pytest.raises(InvalidTransition):
            record_triage(visit.pk, TriageVitals(), nurse)


@pytest.mark.django_db
class TestTransitionVisit:
    """Tests for transition_visit service."""

    def test_consultation_requires_payment(self, flow, doctor):
        visit = flow.with_doctor()

        with pytest.raises(GuardNotSatisfied) as exc_info:
            transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor)

        assert "Consultation fee has not been paid" in exc_info.value.reasons

    def test_consultation_after_payment(self, flow, doctor):
        visit = flow.with_doctor()
        flow.pay(flow.billing_for(visit, BillingPurpose.CONSULTATION))

        result = transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor)

        assert result.status == VisitStatus.UNDER_DOCTOR_REVIEW
        assert result.queue_type == QueueType.CONSULTATION

    def test_only_assigned_doctor_opens_consultation(self, flow, other_doctor):
        visit = flow.with_doctor()
        flow.pay(flow.billing_for(visit, BillingPurpose.CONSULTATION))

        with pytest.raises(GuardNotSatisfied) as exc_info:
            transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, other_doctor)

        assert "Only the assigned doctor can perform this transition" in exc_info.value.reasons

    def test_invalid_edge(self, flow, doctor):
        visit = flow.triaged()

        with pytest.raises(InvalidTransition) as exc_info:
            transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

        assert exc_info.value.from_status == VisitStatus.TRIAGED
        assert exc_info.value.to_status == VisitStatus.COMPLETED

    def test_unknown_status(self, flow, doctor):
        visit = flow.triaged()

        with pytest.raises(ValidationError):
            transition_visit(visit.pk, "TELEPORTED", doctor)

    def test_unknown_visit(self, db, doctor):
        with pytest.raises(NotFound):
            transition_visit("00000000-0000-0000-0000-000000000000", VisitStatus.TRIAGED, doctor)

    def test_transition_increments_version(self, flow, doctor):
        visit = flow.with_doctor()
        flow.pay(flow.billing_for(visit, BillingPurpose.CONSULTATION))

        result = transition_visit(
            visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor, expected_version=visit.version,
        )

        assert result.version == visit.version + 1

    def test_stale_version_conflicts(self, flow, doctor):
        visit = flow.with_doctor()
        flow.pay(flow.billing_for(visit, BillingPurpose.CONSULTATION))

        with pytest.raises(ConcurrencyConflict):
            transition_visit(
                visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor, expected_version=visit.version - 1,
            )

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.WAITING_FOR_DOCTOR

    def test_complete_consultation(self, flow, doctor):
        visit = flow.in_consultation()

        result = transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

        assert result.status == VisitStatus.COMPLETED
        assert result.queue_type == QueueType.CLOSED
        assert result.completed_at is not None
        assert get_allowed_transitions(result) == []
        assert not Assignment.objects.filter(visit=visit, status=AssignmentStatus.ACTIVE).exists()

    def test_cannot_complete_with_open_results(self, flow, doctor):
        visit = flow.in_consultation()
        flow.paid_order(visit, ServiceKind.LAB)

        with pytest.raises(InvalidTransition):
            transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

    def test_terminal_visit_cannot_move(self, flow, doctor):
        visit = flow.in_consultation()
        transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

        with pytest.raises(InvalidTransition) as exc_info:
            transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor)

        assert "terminal" in str(exc_info.value)

    def test_every_transition_audited(self, flow, doctor):
        visit = flow.in_consultation()

        to_states = list(
            VisitTransition.objects.filter(visit=visit).values_list("to_status", flat=True)
        )

        assert to_states == [
            VisitStatus.WAITING_FOR_TRIAGE,
            VisitStatus.TRIAGED,
            VisitStatus.WAITING_FOR_DOCTOR,
            VisitStatus.UNDER_DOCTOR_REVIEW,
        ]

    def test_transition_to_cancelled_cascades(self, flow, doctor):
        visit = flow.in_consultation()
        order = flow.order(visit, ServiceKind.LAB)

        transition_visit(visit.pk, VisitStatus.CANCELLED, doctor, metadata={"reason": "left"})

        order.refresh_from_db()
        assert order.status == BatchOrderStatus.CANCELLED
        assert Visit.objects.get(pk=visit.pk).cancellation_reason == "left"


@pytest.mark.django_db
class TestCancelVisit:
    """Tests for cancel_visit service."""

    def test_cancel_waiting_visit(self, flow, nurse):
        visit = flow.register().visit

        result = cancel_visit(visit.pk, nurse, reason="Patient left")

        assert result.status == VisitStatus.CANCELLED
        assert result.queue_type == QueueType.CLOSED
        assert result.cancelled_at is not None
        assert result.cancellation_reason == "Patient left"
        audit = VisitTransition.objects.filter(visit=visit).last()
        assert audit.metadata == {"reason": "Patient left"}

    def test_cancel_cascades_to_orders_and_assignments(self, flow, doctor, nurse):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.LAB, ServiceKind.NURSE)

        cancel_visit(visit.pk, doctor, reason="Transferred")

        order.refresh_from_db()
        assert order.status == BatchOrderStatus.CANCELLED
        assert set(order.items.values_list("status", flat=True)) == {ItemStatus.CANCELLED}
        assert not Assignment.objects.filter(visit=visit, status=AssignmentStatus.ACTIVE).exists()

    def test_cancel_twice_rejected(self, flow, nurse):
        visit = flow.register().visit
        cancel_visit(visit.pk, nurse)

        with pytest.raises(InvalidTransition):
            cancel_visit(visit.pk, nurse)

    def test_cancel_completed_visit_rejected(self, flow, doctor):
        visit = flow.in_consultation()
        transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

        with pytest.raises(InvalidTransition):
            cancel_visit(visit.pk, doctor)
