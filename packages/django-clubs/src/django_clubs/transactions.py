"""Transaction boundary for multi-step club mutations.

Every mutation that touches more than one row (grant reconciliation, tier
replacement, club bootstrap) runs inside atomic_with_timeouts() so a slow
or blocked transaction fails instead of waiting indefinitely.
"""

import logging
from contextlib import contextmanager

from django.db import DatabaseError as DjangoDatabaseError
from django.db import transaction

from .conf import get_setting
from .exceptions import DatabaseError

logger = logging.getLogger(__name__)


def _apply_timeouts(connection, lock_timeout_ms: int, statement_timeout_ms: int) -> None:
    """Bound lock waits and statement time for the current transaction.

    Only PostgreSQL supports transaction-local timeouts; other backends
    keep their connection defaults.
    """
    if connection.vendor != 'postgresql':
        return
    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT set_config('lock_timeout', %s, true), set_config('statement_timeout', %s, true)",
            [f"{int(lock_timeout_ms)}ms", f"{int(statement_timeout_ms)}ms"],
        )


@contextmanager
def atomic_with_timeouts(using=None, lock_timeout_ms=None, statement_timeout_ms=None):
    """
    Run a block atomically with bounded lock wait and statement time.

    Store failures roll the whole block back and surface as
    django_clubs.exceptions.DatabaseError. Domain errors raised inside
    the block pass through unchanged. Nothing is retried.

    Usage:
        with atomic_with_timeouts():
            Club.objects.select_for_update().get(pk=club_id)
            ...
    """
    if lock_timeout_ms is None:
        lock_timeout_ms = get_setting('LOCK_TIMEOUT_MS')
    if statement_timeout_ms is None:
        statement_timeout_ms = get_setting('STATEMENT_TIMEOUT_MS')

    try:
        with transaction.atomic(using=using):
            _apply_timeouts(transaction.get_connection(using), lock_timeout_ms, statement_timeout_ms)
            yield
    except DjangoDatabaseError as e:
        logger.error(f"Club transaction rolled back: {e}")
        raise DatabaseError(str(e)) from e
