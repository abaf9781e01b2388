"""URL patterns for django-visits."""

from django.urls import path

from . import views

app_name = "django_visits"

urlpatterns = [
    # Visits
    path("visits/", views.visit_create, name="visit_create"),
    path("visits/<uuid:visit_id>/", views.visit_detail, name="visit_detail"),
    path("visits/<uuid:visit_id>/transition/", views.visit_transition, name="visit_transition"),
    path("visits/<uuid:visit_id>/cancel/", views.visit_cancel, name="visit_cancel"),
    path("visits/<uuid:visit_id>/triage/", views.visit_triage, name="visit_triage"),
    path("visits/<uuid:visit_id>/assign-doctor/", views.visit_assign_doctor, name="visit_assign_doctor"),

    # Batch orders
    path("batch-orders/", views.batch_order_create, name="batch_order_create"),
    path("batch-orders/<uuid:batch_order_id>/cancel/", views.batch_order_cancel, name="batch_order_cancel"),
    path(
        "batch-orders/<uuid:batch_order_id>/items/<uuid:item_id>/start/",
        views.item_start,
        name="item_start",
    ),
    path(
        "batch-orders/<uuid:batch_order_id>/items/<uuid:item_id>/complete/",
        views.item_complete,
        name="item_complete",
    ),
    path(
        "batch-orders/<uuid:batch_order_id>/items/<uuid:item_id>/assign/",
        views.item_assign,
        name="item_assign",
    ),

    # Billing
    path("billing/<uuid:billing_id>/", views.billing_detail, name="billing_detail"),
    path("billing/<uuid:billing_id>/payments/", views.billing_payment, name="billing_payment"),

    # Queues
    path("queues/<str:role>/", views.queue_list, name="queue_list"),
]
