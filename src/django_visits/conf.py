"""Configuration helpers for django-visits.

Settings (all optional):

    VISITS_CURRENCY = "ETB"
    VISITS_ENTRY_FEE = Decimal("200.00")
    VISITS_CONSULTATION_FEE = Decimal("150.00")
    VISITS_ALLOW_OVERPAYMENT = False
    VISITS_TRANSITION_GUARDS = ["myapp.guards.LabConsentGuard"]
    VISITS_ACTOR_ROLE_HEADER = "X-Clinical-Role"
"""

from decimal import Decimal
from functools import lru_cache
from importlib import import_module

from django.conf import settings

from .exceptions import GuardLoadError


DEFAULTS = {
    "CURRENCY": "ETB",
    "ENTRY_FEE": Decimal("200.00"),
    "CONSULTATION_FEE": Decimal("150.00"),
    "ALLOW_OVERPAYMENT": False,
    "TRANSITION_GUARDS": [],
    "ACTOR_ROLE_HEADER": "X-Clinical-Role",
}


def get_setting(name: str, default=None):
    """Get a setting with VISITS_ prefix, falling back to DEFAULTS."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"VISITS_{name}", default)


def get_currency() -> str:
    return get_setting("CURRENCY")


def get_entry_fee() -> Decimal:
    return Decimal(str(get_setting("ENTRY_FEE")))


def get_consultation_fee() -> Decimal:
    return Decimal(str(get_setting("CONSULTATION_FEE")))


@lru_cache(maxsize=128)
def load_guard(dotted_path: str):
    """
    Import and instantiate a transition guard from dotted path.

    Raises GuardLoadError for bad imports or non-subclass guards.
    """
    from .guards import BaseTransitionGuard

    try:
        module_path, class_name = dotted_path.rsplit(".", 1)
    except ValueError:
        raise GuardLoadError(dotted_path, "Invalid dotted path format")

    try:
        module = import_module(module_path)
    except ImportError as e:
        raise GuardLoadError(dotted_path, f"Cannot import module: {e}")

    try:
        guard_class = getattr(module, class_name)
    except AttributeError:
        raise GuardLoadError(dotted_path, f"Class '{class_name}' not found in module")

    if not isinstance(guard_class, type) or not issubclass(guard_class, BaseTransitionGuard):
        raise GuardLoadError(
            dotted_path,
            f"'{class_name}' must be a subclass of BaseTransitionGuard"
        )

    return guard_class()


def get_configured_guards() -> list:
    """Load guard instances listed in VISITS_TRANSITION_GUARDS."""
    return [load_guard(path) for path in get_setting("TRANSITION_GUARDS")]


def clear_guard_cache():
    """Clear the guard loading cache. Useful for testing."""
    load_guard.cache_clear()
