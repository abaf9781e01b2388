"""Status vocabularies for django-visits.

Each layer has its own enumeration. They are related only through the
explicit mapping functions in graph.py and aggregation.py, never by
comparing raw strings across layers.
"""

from django.db import models


class VisitStatus(models.TextChoices):
    REGISTERED = "REGISTERED", "Registered"
    WAITING_FOR_TRIAGE = "WAITING_FOR_TRIAGE", "Waiting for triage"
    TRIAGED = "TRIAGED", "Triaged"
    WAITING_FOR_DOCTOR = "WAITING_FOR_DOCTOR", "Waiting for doctor"
    UNDER_DOCTOR_REVIEW = "UNDER_DOCTOR_REVIEW", "Under doctor review"
    SENT_TO_LAB = "SENT_TO_LAB", "Sent to lab"
    SENT_TO_RADIOLOGY = "SENT_TO_RADIOLOGY", "Sent to radiology"
    SENT_TO_BOTH = "SENT_TO_BOTH", "Sent to lab and radiology"
    WAITING_FOR_NURSE_SERVICE = "WAITING_FOR_NURSE_SERVICE", "Waiting for nurse service"
    AWAITING_RESULTS_REVIEW = "AWAITING_RESULTS_REVIEW", "Awaiting results review"
    NURSE_SERVICES_COMPLETED = "NURSE_SERVICES_COMPLETED", "Nurse services completed"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class QueueType(models.TextChoices):
    """Routing classification derived from VisitStatus."""

    REGISTRATION = "REGISTRATION", "Registration"
    TRIAGE = "TRIAGE", "Triage"
    DOCTOR_ASSIGNMENT = "DOCTOR_ASSIGNMENT", "Doctor assignment"
    CONSULTATION = "CONSULTATION", "Consultation"
    LAB = "LAB", "Lab"
    RADIOLOGY = "RADIOLOGY", "Radiology"
    DIAGNOSTICS = "DIAGNOSTICS", "Lab and radiology"
    NURSE_SERVICE = "NURSE_SERVICE", "Nurse service"
    RESULTS_REVIEW = "RESULTS_REVIEW", "Results review"
    CLOSED = "CLOSED", "Closed"


class ServiceKind(models.TextChoices):
    """Kind of a single service request."""

    LAB = "LAB", "Lab"
    RADIOLOGY = "RADIOLOGY", "Radiology"
    NURSE = "NURSE", "Nurse"
    PHARMACY = "PHARMACY", "Pharmacy"


class OrderKind(models.TextChoices):
    """Kind of a batch order: the common item kind, or MIXED."""

    LAB = "LAB", "Lab"
    RADIOLOGY = "RADIOLOGY", "Radiology"
    NURSE = "NURSE", "Nurse"
    PHARMACY = "PHARMACY", "Pharmacy"
    MIXED = "MIXED", "Mixed"


class BatchOrderStatus(models.TextChoices):
    UNPAID = "UNPAID", "Unpaid"
    PAID = "PAID", "Paid"
    QUEUED = "QUEUED", "Queued"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class ItemStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class BillingStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PARTIAL = "PARTIAL", "Partially paid"
    PAID = "PAID", "Paid"


class BillingPurpose(models.TextChoices):
    ENTRY_FEE = "ENTRY_FEE", "Entry fee"
    CONSULTATION = "CONSULTATION", "Consultation"
    ORDER = "ORDER", "Batch order"


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    BANK = "BANK", "Bank transfer"
    INSURANCE = "INSURANCE", "Insurance"
    CREDIT = "CREDIT", "Credit account"
    CHARITY = "CHARITY", "Charity"


class AssignmentRole(models.TextChoices):
    DOCTOR = "DOCTOR", "Doctor"
    NURSE = "NURSE", "Nurse"


class AssignmentStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    COMPLETED = "COMPLETED", "Completed"


class Role(models.TextChoices):
    """Actor roles supplied by the authentication layer."""

    BILLING_OFFICER = "BILLING_OFFICER", "Billing officer"
    NURSE = "NURSE", "Nurse"
    DOCTOR = "DOCTOR", "Doctor"
    LAB_TECHNICIAN = "LAB_TECHNICIAN", "Lab technician"
    RADIOLOGY_TECHNICIAN = "RADIOLOGY_TECHNICIAN", "Radiology technician"
    PHARMACIST = "PHARMACIST", "Pharmacist"


TERMINAL_VISIT_STATUSES = frozenset({VisitStatus.COMPLETED, VisitStatus.CANCELLED})

TERMINAL_ORDER_STATUSES = frozenset({BatchOrderStatus.COMPLETED, BatchOrderStatus.CANCELLED})

TERMINAL_ITEM_STATUSES = frozenset({ItemStatus.COMPLETED, ItemStatus.CANCELLED})

# Kinds whose completion produces something the doctor must review
RESULT_BEARING_KINDS = frozenset({ServiceKind.LAB, ServiceKind.RADIOLOGY, ServiceKind.NURSE})
