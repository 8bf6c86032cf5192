"""Configuration helpers for django-clubs.

All settings use the CLUBS_ prefix and can be overridden in settings.py.

Example:
    # settings.py
    CLUBS_LEDGER_BACKEND = 'payments.ledger.BuzzLedgerBackend'
    CLUBS_IMAGE_BACKEND = 'media.images.ClubImageBackend'
    CLUBS_LOCK_TIMEOUT_MS = 5000
"""

from functools import lru_cache
from importlib import import_module

from django.conf import settings

from .exceptions import ClubsConfigError


DEFAULTS = {
    'LOCK_TIMEOUT_MS': 10000,
    'STATEMENT_TIMEOUT_MS': 30000,
    'LEDGER_BACKEND': 'django_clubs.backends.NullLedgerBackend',
    'IMAGE_BACKEND': 'django_clubs.backends.NullImageBackend',
    'DEFAULT_CURRENCY': 'BUZZ',
}


def get_setting(name: str, default=None):
    """Get a setting with CLUBS_ prefix, falling back to the package default."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"CLUBS_{name}", default)


@lru_cache(maxsize=32)
def load_backend(dotted_path: str):
    """
    Import and instantiate a backend class from a dotted path.

    Raises ClubsConfigError for bad paths or missing classes.
    """
    try:
        module_path, class_name = dotted_path.rsplit('.', 1)
    except ValueError:
        raise ClubsConfigError(dotted_path, "Invalid dotted path format")

    try:
        module = import_module(module_path)
    except ImportError as e:
        raise ClubsConfigError(dotted_path, f"Cannot import module: {e}")

    try:
        backend_class = getattr(module, class_name)
    except AttributeError:
        raise ClubsConfigError(dotted_path, f"Class '{class_name}' not found in module")

    if not isinstance(backend_class, type):
        raise ClubsConfigError(dotted_path, f"'{class_name}' is not a class")

    return backend_class()


def get_ledger_backend():
    """Return the configured ledger backend instance."""
    return load_backend(get_setting('LEDGER_BACKEND'))


def get_image_backend():
    """Return the configured image backend instance."""
    return load_backend(get_setting('IMAGE_BACKEND'))


def clear_backend_cache():
    """Clear the backend loading cache. Useful for testing."""
    load_backend.cache_clear()


# =============================================================================
# DEFAULT SETTINGS REFERENCE
# =============================================================================

# CLUBS_LOCK_TIMEOUT_MS = 10000  # Max wait for row locks (PostgreSQL only)
# CLUBS_STATEMENT_TIMEOUT_MS = 30000  # Max statement time inside a mutation (PostgreSQL only)
# CLUBS_LEDGER_BACKEND = 'django_clubs.backends.NullLedgerBackend'
# CLUBS_IMAGE_BACKEND = 'django_clubs.backends.NullImageBackend'
# CLUBS_DEFAULT_CURRENCY = 'BUZZ'
