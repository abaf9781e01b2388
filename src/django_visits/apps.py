"""Django Visits app configuration."""

from django.apps import AppConfig


class DjangoVisitsConfig(AppConfig):
    """Configuration for django-visits app."""

    name = "django_visits"
    verbose_name = "Clinical Visits"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        """Fail fast if the visit transition graph is malformed."""
        from .graph import validate_transition_graph

        errors = validate_transition_graph()
        if errors:
            from django.core.exceptions import ImproperlyConfigured

            raise ImproperlyConfigured(
                "Invalid visit transition graph: " + "; ".join(errors)
            )
