"""Shared fixtures: users, actors, and a helper that walks visits through the workflow."""

from decimal import Decimal

import pytest

from django_visits.actors import Actor
from django_visits.assignments import assign_doctor
from django_visits.billing import record_payment
from django_visits.enums import BillingPurpose, PaymentMethod, Role, ServiceKind, VisitStatus
from django_visits.models import Billing, Visit
from django_visits.orders import ServiceRequest, create_batch_order
from django_visits.visits import TriageVitals, create_visit, record_triage, transition_visit


@pytest.fixture
def make_user(db, django_user_model):
    def make(username):
        return django_user_model.objects.create_user(username=username, password="test")
    return make


@pytest.fixture
def billing_officer(make_user):
    return Actor(user=make_user("cashier"), role=Role.BILLING_OFFICER)


@pytest.fixture
def nurse(make_user):
    return Actor(user=make_user("nurse"), role=Role.NURSE)


@pytest.fixture
def doctor(make_user):
    return Actor(user=make_user("doctor"), role=Role.DOCTOR)


@pytest.fixture
def other_doctor(make_user):
    return Actor(user=make_user("doctor2"), role=Role.DOCTOR)


@pytest.fixture
def lab_tech(make_user):
    return Actor(user=make_user("labtech"), role=Role.LAB_TECHNICIAN)


@pytest.fixture
def radiology_tech(make_user):
    return Actor(user=make_user("radtech"), role=Role.RADIOLOGY_TECHNICIAN)


@pytest.fixture
def pharmacist(make_user):
    return Actor(user=make_user("pharmacist"), role=Role.PHARMACIST)


class VisitFlow:
    """Drives visits to a given point of the workflow through the public services."""

    def __init__(self, billing_officer, nurse, doctor):
        self.billing_officer = billing_officer
        self.nurse = nurse
        self.doctor = doctor
        self._patients = 0

    def register(self, patient_id=None):
        """Visit in WAITING_FOR_TRIAGE with its entry fee unpaid."""
        if patient_id is None:
            self._patients += 1
            patient_id = f"PAT-{self._patients:04d}"
        return create_visit(patient_id, actor=self.nurse)

    def pay(self, billing, amount=None):
        billing = Billing.objects.get(pk=billing.pk)
        return record_payment(
            billing.pk,
            billing.total_amount if amount is None else amount,
            PaymentMethod.CASH,
            actor=self.billing_officer,
        )

    def billing_for(self, visit, purpose):
        return Billing.objects.get(visit=visit, purpose=purpose)

    def triaged(self):
        registration = self.register()
        self.pay(registration.billing)
        record_triage(registration.visit_id, TriageVitals(heart_rate=72), self.nurse)
        return Visit.objects.get(pk=registration.visit_id)

    def with_doctor(self, doctor=None):
        """Visit in WAITING_FOR_DOCTOR, consultation fee unpaid."""
        visit = self.triaged()
        assign_doctor(visit.pk, (doctor or self.doctor).user, self.nurse)
        return Visit.objects.get(pk=visit.pk)

    def in_consultation(self, doctor=None):
        """Visit in UNDER_DOCTOR_REVIEW with every fee paid."""
        doctor = doctor or self.doctor
        visit = self.with_doctor(doctor)
        self.pay(self.billing_for(visit, BillingPurpose.CONSULTATION))
        return transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor)

    def order(self, visit, *kinds, price="100.00", doctor=None):
        """Place one batch order with one item per kind."""
        doctor = doctor or self.doctor
        requests = [
            ServiceRequest(
                service_reference_id=f"SVC-{kind}-{index}",
                kind=kind,
                unit_price=Decimal(price),
                display_name=f"{kind.title()} service {index}",
            )
            for index, kind in enumerate(kinds or (ServiceKind.LAB,))
        ]
        return create_batch_order(visit.pk, doctor.user, requests, actor=doctor)

    def paid_order(self, visit, *kinds, price="100.00"):
        order = self.order(visit, *kinds, price=price)
        self.pay(order.billing)
        order.refresh_from_db()
        return order


@pytest.fixture
def flow(billing_officer, nurse, doctor):
    return VisitFlow(billing_officer, nurse, doctor)
