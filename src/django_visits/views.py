"""JSON API views for django-visits.

Every view authenticates through request.user, reads the actor's role from
the VISITS_ACTOR_ROLE_HEADER header, validates its payload with a form and
calls exactly one engine operation. Engine errors become JSON error
responses via ERROR_STATUS.
"""

import functools
import json
import logging
from dataclasses import asdict

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from . import assignments, billing, orders, queues, visits
from .actors import Actor
from .conf import get_setting
from .enums import Role
from .exceptions import (
    ConcurrencyConflict,
    GuardLoadError,
    GuardNotSatisfied,
    ImmutableRecordError,
    InvalidTransition,
    NotFound,
    StorageError,
    ValidationError,
    VisitsError,
)
from .forms import (
    AssignDoctorForm,
    AssignItemForm,
    BatchOrderForm,
    CancelForm,
    CompleteItemForm,
    CreateVisitForm,
    PaymentForm,
    TransitionForm,
    TriageForm,
)
from .models import BatchOrder, Billing, ServiceOrderItem, Visit
from .selectors import get_active_doctor_assignment
from .transactions import get_row


logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (ValidationError, 400),
    (NotFound, 404),
    (GuardNotSatisfied, 409),
    (InvalidTransition, 409),
    (ConcurrencyConflict, 409),
    (ImmutableRecordError, 409),
    (StorageError, 503),
    (GuardLoadError, 500),
]


class NotAuthenticated(Exception):
    pass


# =============================================================================
# Helpers
# =============================================================================

def error_response(exc: VisitsError) -> JsonResponse:
    payload = {"error": exc.code, "detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.errors:
        payload["errors"] = exc.errors
    if isinstance(exc, GuardNotSatisfied):
        payload["reasons"] = exc.reasons
    if isinstance(exc, InvalidTransition):
        payload["from_status"] = exc.from_status
        payload["to_status"] = exc.to_status
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    return JsonResponse(payload, status=status)


def api_view(view):
    """Parse errors and engine errors into JSON responses."""

    @csrf_exempt
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except NotAuthenticated:
            return JsonResponse(
                {"error": "not_authenticated", "detail": "Authentication required"}, status=401
            )
        except VisitsError as e:
            logger.info(f"{view.__name__}: {e.code}: {e}")
            return error_response(e)

    return wrapper


def require_user(request):
    if not request.user.is_authenticated:
        raise NotAuthenticated()
    return request.user


def get_actor(request) -> Actor:
    """Build the actor from the authenticated user and the role header."""
    user = require_user(request)
    header = get_setting("ACTOR_ROLE_HEADER")
    role = request.headers.get(header, "")
    if role not in Role.values:
        raise ValidationError(
            f"Header {header} must name a role, got '{role}'",
            errors={"role": ["Invalid choice"]},
        )
    return Actor(user=user, role=role)


def parse_body(request) -> dict:
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def validate_form(form):
    if not form.is_valid():
        raise ValidationError(
            "Invalid request payload",
            errors={field: list(messages) for field, messages in form.errors.items()},
        )
    return form.cleaned_data


def serialize_visit(visit: Visit) -> dict:
    assignment = get_active_doctor_assignment(visit)
    return {
        "id": visit.pk,
        "visit_number": visit.visit_number,
        "patient_id": visit.patient_id,
        "status": visit.status,
        "queue_type": visit.queue_type,
        "version": visit.version,
        "assignment_id": assignment.pk if assignment else None,
        "doctor_id": assignment.provider_id if assignment else None,
        "created_at": visit.created_at,
        "completed_at": visit.completed_at,
        "cancelled_at": visit.cancelled_at,
        "cancellation_reason": visit.cancellation_reason,
        "allowed_transitions": list(visits.get_allowed_transitions(visit)),
    }


def serialize_billing(bill: Billing) -> dict:
    return {
        "id": bill.pk,
        "visit_id": bill.visit_id,
        "purpose": bill.purpose,
        "status": bill.status,
        "total_amount": bill.total_amount,
        "paid_amount": billing.ledger_total(bill),
        "currency": bill.currency,
        "paid_at": bill.paid_at,
    }


def serialize_item(item: ServiceOrderItem) -> dict:
    return {
        "id": item.pk,
        "position": item.position,
        "service_reference_id": item.service_reference_id,
        "display_name": item.display_name,
        "kind": item.kind,
        "unit_price": item.unit_price,
        "quantity": item.quantity,
        "status": item.status,
        "result_reference": item.result_reference,
        "completed_at": item.completed_at,
    }


def serialize_order(order: BatchOrder) -> dict:
    return {
        "id": order.pk,
        "visit_id": order.visit_id,
        "kind": order.kind,
        "status": order.status,
        "version": order.version,
        "billing_id": order.billing_id,
        "items": [serialize_item(item) for item in order.items.all()],
    }


# =============================================================================
# Visits
# =============================================================================

@api_view
@require_POST
def visit_create(request):
    actor = get_actor(request)
    data = validate_form(CreateVisitForm(parse_body(request)))
    registration = visits.create_visit(
        data["patient_id"],
        actor=actor,
        entry_fee=data["entry_fee"],
        notes=data["notes"],
    )
    return JsonResponse({
        "visit": serialize_visit(registration.visit),
        "billing": serialize_billing(registration.billing),
    }, status=201)


@api_view
@require_GET
def visit_detail(request, visit_id):
    require_user(request)
    visit = visits.get_visit(visit_id)
    return JsonResponse({
        "visit": serialize_visit(visit),
        "billings": [serialize_billing(b) for b in visit.billings.all()],
        "batch_orders": [serialize_order(o) for o in visit.batch_orders.all()],
    })


@api_view
@require_POST
def visit_transition(request, visit_id):
    actor = get_actor(request)
    data = validate_form(TransitionForm(parse_body(request)))
    metadata = {"reason": data["reason"]} if data["reason"] else None
    visit = visits.transition_visit(
        visit_id,
        data["to_status"],
        actor,
        expected_version=data["expected_version"],
        metadata=metadata,
    )
    return JsonResponse({"visit": serialize_visit(visit)})


@api_view
@require_POST
def visit_cancel(request, visit_id):
    actor = get_actor(request)
    data = validate_form(CancelForm(parse_body(request)))
    visit = visits.cancel_visit(
        visit_id, actor, reason=data["reason"], expected_version=data["expected_version"],
    )
    return JsonResponse({"visit": serialize_visit(visit)})


@api_view
@require_POST
def visit_triage(request, visit_id):
    actor = get_actor(request)
    data = validate_form(TriageForm(parse_body(request)))
    record = visits.record_triage(visit_id, visits.TriageVitals(**data), actor)
    return JsonResponse({
        "triage_id": record.pk,
        "visit": serialize_visit(visits.get_visit(visit_id)),
    }, status=201)


@api_view
@require_POST
def visit_assign_doctor(request, visit_id):
    actor = get_actor(request)
    data = validate_form(AssignDoctorForm(parse_body(request)))
    assignment = assignments.assign_doctor(
        visit_id, data["doctor"], actor, consultation_fee=data["consultation_fee"],
    )
    return JsonResponse({
        "assignment_id": assignment.pk,
        "visit": serialize_visit(visits.get_visit(visit_id)),
    }, status=201)


# =============================================================================
# Batch orders
# =============================================================================

def _item_in_order(batch_order_id, item_id) -> ServiceOrderItem:
    item = get_row(ServiceOrderItem.objects, item_id, "ServiceOrderItem")
    if str(item.batch_order_id) != str(batch_order_id):
        raise NotFound("ServiceOrderItem", item_id)
    return item


@api_view
@require_POST
def batch_order_create(request):
    actor = get_actor(request)
    form = BatchOrderForm(parse_body(request))
    data = validate_form(form)
    order = orders.create_batch_order(
        data["visit_id"],
        actor.user,
        [orders.ServiceRequest(**item) for item in form.cleaned_items],
        actor=actor,
        instructions=data["instructions"],
    )
    return JsonResponse({"batch_order": serialize_order(order)}, status=201)


@api_view
@require_POST
def batch_order_cancel(request, batch_order_id):
    actor = get_actor(request)
    data = validate_form(CancelForm(parse_body(request)))
    order = orders.cancel_batch_order(batch_order_id, actor, reason=data["reason"])
    return JsonResponse({"batch_order": serialize_order(order)})


@api_view
@require_POST
def item_start(request, batch_order_id, item_id):
    actor = get_actor(request)
    item = _item_in_order(batch_order_id, item_id)
    orders.start_item(item.pk, actor)
    return JsonResponse({"batch_order": serialize_order(BatchOrder.objects.get(pk=item.batch_order_id))})


@api_view
@require_POST
def item_complete(request, batch_order_id, item_id):
    actor = get_actor(request)
    data = validate_form(CompleteItemForm(parse_body(request)))
    item = _item_in_order(batch_order_id, item_id)
    orders.complete_item(
        item.pk,
        data["result_reference"],
        actor,
        outcome=data["outcome"],
        expected_version=data["expected_version"],
    )
    return JsonResponse({"batch_order": serialize_order(BatchOrder.objects.get(pk=item.batch_order_id))})


@api_view
@require_POST
def item_assign(request, batch_order_id, item_id):
    actor = get_actor(request)
    data = validate_form(AssignItemForm(parse_body(request)))
    item = _item_in_order(batch_order_id, item_id)
    assignment = assignments.assign_item(item.pk, data["nurse"], actor)
    return JsonResponse({"assignment_id": assignment.pk, "item_id": item.pk}, status=201)


# =============================================================================
# Billing
# =============================================================================

@api_view
@require_POST
def billing_payment(request, billing_id):
    actor = get_actor(request)
    data = validate_form(PaymentForm(parse_body(request)))
    bill = billing.record_payment(
        billing_id,
        data["amount"],
        data["method"],
        data["insurance_reference"],
        actor=actor,
        reference=data["reference"],
        idempotency_key=data["idempotency_key"],
    )
    return JsonResponse({"billing": serialize_billing(bill)}, status=201)


@api_view
@require_GET
def billing_detail(request, billing_id):
    require_user(request)
    bill = get_row(Billing.objects, billing_id, "Billing")
    return JsonResponse({"billing": serialize_billing(bill)})


# =============================================================================
# Queues
# =============================================================================

@api_view
@require_GET
def queue_list(request, role):
    actor = get_actor(request)
    summaries = queues.list_for(role, actor)
    return JsonResponse({"role": role, "visits": [asdict(s) for s in summaries]})
