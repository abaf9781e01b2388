"""
django-visits: Visit and order orchestration for clinical episodes.

Provides:
- Visit: One clinical episode with a fixed state machine and derived queue type
- BatchOrder / ServiceOrderItem: Billable units of lab, radiology, nurse and pharmacy work
- Billing / BillPayment: Append-only payment ledger that gates every chargeable step
- Assignment: Responsible doctor per visit, responsible nurse per service item
- Queue views per role, recomputed from authoritative rows on every read

Usage:
    INSTALLED_APPS = [
        ...
        'django_visits',
    ]

    # urls.py
    path('api/', include('django_visits.urls'))

See conf.py for all configuration options.
"""

__version__ = "0.1.0"
