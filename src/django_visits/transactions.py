"""Transaction boundary shared by all engine operations."""

import functools
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction

from .exceptions import ConcurrencyConflict, NotFound, StorageError


logger = logging.getLogger(__name__)


def engine_operation(func):
    """
    Run the decorated function inside one transaction.atomic() block.

    Domain errors propagate unchanged after the rollback. Database errors
    are translated once the atomic block has exited:
    - IntegrityError (unique or check constraint) -> ConcurrencyConflict
    - any other DatabaseError -> StorageError

    Nested calls join the outer transaction, so a service calling another
    service commits or rolls back as one unit.

    Usage:
        @engine_operation
        def cancel_visit(visit_id, actor=None, *, reason=""):
            ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except IntegrityError as e:
            logger.warning(f"{func.__name__}: integrity error, reporting conflict: {e}")
            raise ConcurrencyConflict(
                f"{func.__name__} conflicted with a concurrent change; re-read and retry"
            ) from e
        except DatabaseError as e:
            logger.error(f"{func.__name__}: database error: {e}")
            raise StorageError(f"{func.__name__} failed: storage unavailable") from e

    return wrapper


def lock_row(queryset, pk, entity: str):
    """
    Fetch one row with SELECT ... FOR UPDATE.

    Must run inside an atomic block. Unknown or malformed ids raise NotFound.
    """
    try:
        return queryset.select_for_update().get(pk=pk)
    except (queryset.model.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound(entity, pk)


def get_row(queryset, pk, entity: str):
    """Plain read of one row; unknown or malformed ids raise NotFound."""
    try:
        return queryset.get(pk=pk)
    except (queryset.model.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound(entity, pk)
