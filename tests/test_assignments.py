"""Tests for doctor and nurse assignments."""

from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from django_visits.assignments import (
    assign_doctor,
    assign_item,
    get_active_assignment,
    get_item_assignee,
)
from django_visits.enums import (
    AssignmentRole,
    AssignmentStatus,
    BillingPurpose,
    BillingStatus,
    ServiceKind,
    VisitStatus,
)
from django_visits.exceptions import GuardNotSatisfied, InvalidTransition, ValidationError
from django_visits.models import Assignment, Billing, Visit
from django_visits.orders import complete_item


@pytest.mark.django_db
class TestAssignDoctor:
    """Tests for assign_doctor service."""

    def test_assign_moves_visit_to_waiting_for_doctor(self, flow, nurse, doctor):
        visit = flow.triaged()

        assignment = assign_doctor(visit.pk, doctor.user, nurse)

        visit.refresh_from_db()
        assert visit.status == VisitStatus.WAITING_FOR_DOCTOR
        assert visit.assignment == assignment
        assert assignment.role == AssignmentRole.DOCTOR
        assert assignment.status == AssignmentStatus.ACTIVE
        assert assignment.assigned_by == nurse.user
        assert get_active_assignment(visit) == assignment

    def test_assign_opens_consultation_billing(self, flow, nurse, doctor):
        visit = flow.triaged()

        assign_doctor(visit.pk, doctor.user, nurse, consultation_fee=Decimal("80.00"))

        billing = Billing.objects.get(visit=visit, purpose=BillingPurpose.CONSULTATION)
        assert billing.total_amount == Decimal("80.00")
        assert billing.status == BillingStatus.PENDING

    def test_reassign_replaces_doctor(self, flow, nurse, doctor, other_doctor):
        visit = flow.with_doctor()
        first = get_active_assignment(visit)

        second = assign_doctor(visit.pk, other_doctor.user, nurse)

        first.refresh_from_db()
        assert first.status == AssignmentStatus.COMPLETED
        assert get_active_assignment(visit) == second
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.WAITING_FOR_DOCTOR

    def test_reassign_does_not_duplicate_consultation_billing(self, flow, nurse, other_doctor):
        visit = flow.with_doctor()

        assign_doctor(visit.pk, other_doctor.user, nurse)

        assert Billing.objects.filter(visit=visit, purpose=BillingPurpose.CONSULTATION).count() == 1

    def test_cannot_assign_before_triage(self, flow, nurse, doctor):
        visit = flow.register().visit

        with pytest.raises(InvalidTransition):
            assign_doctor(visit.pk, doctor.user, nurse)

        assert not Assignment.objects.exists()

    def test_cannot_assign_during_consultation(self, flow, nurse, other_doctor):
        visit = flow.in_consultation()

        with pytest.raises(InvalidTransition):
            assign_doctor(visit.pk, other_doctor.user, nurse)

    def test_doctor_required(self, flow, nurse):
        visit = flow.triaged()

        with pytest.raises(ValidationError):
            assign_doctor(visit.pk, None, nurse)

    def test_one_active_doctor_enforced_by_database(self, flow, other_doctor):
        visit = flow.with_doctor()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Assignment.objects.create(
                    visit=visit,
                    patient_id=visit.patient_id,
                    provider=other_doctor.user,
                    role=AssignmentRole.DOCTOR,
                )


@pytest.mark.django_db
class TestAssignItem:
    """Tests for assign_item service."""

    def test_assign_nurse_to_item(self, flow, nurse):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.NURSE)
        item = order.items.get()

        assignment = assign_item(item.pk, nurse.user, nurse)

        assert assignment.item == item
        assert assignment.role == AssignmentRole.NURSE
        assert get_item_assignee(item) == nurse.user

    def test_reassign_item(self, flow, nurse, make_user):
        visit = flow.in_consultation()
        item = flow.paid_order(visit, ServiceKind.NURSE).items.get()
        other = make_user("nurse2")
        first = assign_item(item.pk, nurse.user, nurse)

        assign_item(item.pk, other, nurse)

        first.refresh_from_db()
        assert first.status == AssignmentStatus.COMPLETED
        assert get_item_assignee(item) == other

    def test_item_assignment_does_not_replace_doctor(self, flow, nurse):
        visit = flow.in_consultation()
        doctor_assignment = get_active_assignment(visit)
        item = flow.paid_order(visit, ServiceKind.NURSE).items.get()

        assign_item(item.pk, nurse.user, nurse)

        assert get_active_assignment(visit) == doctor_assignment

    def test_only_nurse_items(self, flow, nurse):
        visit = flow.in_consultation()
        item = flow.paid_order(visit, ServiceKind.LAB).items.get()

        with pytest.raises(ValidationError):
            assign_item(item.pk, nurse.user, nurse)

    def test_finished_item_rejected(self, flow, nurse):
        visit = flow.in_consultation()
        item = flow.paid_order(visit, ServiceKind.NURSE).items.get()
        complete_item(item.pk, "", nurse)

        with pytest.raises(GuardNotSatisfied):
            assign_item(item.pk, nurse.user, nurse)

    def test_completing_item_closes_its_assignment(self, flow, nurse):
        visit = flow.in_consultation()
        item = flow.paid_order(visit, ServiceKind.NURSE).items.get()
        assignment = assign_item(item.pk, nurse.user, nurse)

        complete_item(item.pk, "NOTE-1", nurse)

        assignment.refresh_from_db()
        assert assignment.status == AssignmentStatus.COMPLETED
        assert get_item_assignee(item) is None
