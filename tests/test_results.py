"""Tests for routing visits back to the doctor when orders close."""

import pytest

from django_visits.enums import AssignmentStatus, ItemStatus, ServiceKind, VisitStatus
from django_visits.exceptions import GuardNotSatisfied
from django_visits.models import Assignment, Visit
from django_visits.orders import cancel_batch_order, complete_item
from django_visits.results import on_batch_order_closed
from django_visits.visits import transition_visit


def complete_all(order, actor):
    for item in order.items.all():
        complete_item(item.pk, f"RES-{item.position}", actor)
    order.refresh_from_db()
    return order


@pytest.mark.django_db
class TestResultsRouting:
    """Visits return to their doctor once result-bearing work is done."""

    def test_lab_results_return_to_doctor(self, flow, lab_tech):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.LAB)

        complete_all(order, lab_tech)

        visit.refresh_from_db()
        assert visit.status == VisitStatus.AWAITING_RESULTS_REVIEW
        assert Assignment.objects.get(visit=visit, item__isnull=True).status == AssignmentStatus.ACTIVE

    def test_nurse_service_completion(self, flow, nurse):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.NURSE)

        complete_all(order, nurse)

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.NURSE_SERVICES_COMPLETED

    def test_waits_for_every_result_order(self, flow, lab_tech, radiology_tech):
        visit = flow.in_consultation()
        lab = flow.paid_order(visit, ServiceKind.LAB)
        radiology = flow.paid_order(visit, ServiceKind.RADIOLOGY)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_BOTH

        complete_all(lab, lab_tech)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_BOTH

        complete_all(radiology, radiology_tech)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.AWAITING_RESULTS_REVIEW

    def test_pharmacy_order_does_not_block_results(self, flow, lab_tech):
        visit = flow.in_consultation()
        flow.paid_order(visit, ServiceKind.PHARMACY)
        lab = flow.paid_order(visit, ServiceKind.LAB)

        complete_all(lab, lab_tech)

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.AWAITING_RESULTS_REVIEW

    def test_nurse_work_then_lab(self, flow, nurse, lab_tech):
        visit = flow.in_consultation()
        nursing = flow.paid_order(visit, ServiceKind.NURSE)
        lab = flow.paid_order(visit, ServiceKind.LAB)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_LAB

        complete_all(nursing, nurse)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_LAB

        complete_all(lab, lab_tech)
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.AWAITING_RESULTS_REVIEW

    def test_cancelled_order_returns_visit(self, flow, doctor):
        visit = flow.in_consultation()
        order = flow.order(visit, ServiceKind.RADIOLOGY)

        cancel_batch_order(order.pk, doctor, reason="Machine down")

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.AWAITING_RESULTS_REVIEW

    def test_all_items_cancelled_returns_visit(self, flow, lab_tech):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.LAB)

        complete_item(order.items.get().pk, "", lab_tech, outcome=ItemStatus.CANCELLED)

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.AWAITING_RESULTS_REVIEW

    def test_open_order_is_ignored(self, flow):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.LAB)

        assert on_batch_order_closed(order) is None
        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_LAB

    def test_doctor_reviews_and_completes(self, flow, doctor, lab_tech):
        visit = flow.in_consultation()
        complete_all(flow.paid_order(visit, ServiceKind.LAB), lab_tech)

        transition_visit(visit.pk, VisitStatus.UNDER_DOCTOR_REVIEW, doctor)
        result = transition_visit(visit.pk, VisitStatus.COMPLETED, doctor)

        assert result.status == VisitStatus.COMPLETED

    def test_follow_up_order_after_review(self, flow, lab_tech):
        visit = flow.in_consultation()
        complete_all(flow.paid_order(visit, ServiceKind.LAB), lab_tech)

        flow.order(visit, ServiceKind.RADIOLOGY)

        assert Visit.objects.get(pk=visit.pk).status == VisitStatus.SENT_TO_RADIOLOGY

    def test_no_active_doctor_blocks_routing(self, flow, lab_tech):
        visit = flow.in_consultation()
        order = flow.paid_order(visit, ServiceKind.LAB)
        Assignment.objects.filter(visit=visit).update(status=AssignmentStatus.COMPLETED)

        with pytest.raises(GuardNotSatisfied):
            complete_item(order.items.get().pk, "RES-0", lab_tech)

        assert order.items.get().status == ItemStatus.PENDING
