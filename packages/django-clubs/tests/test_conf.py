"""Tests for configuration and the transaction boundary."""

import pytest
from django.db import IntegrityError

from django_clubs.backends import NullImageBackend, NullLedgerBackend
from django_clubs.conf import (
    clear_backend_cache,
    get_image_backend,
    get_ledger_backend,
    get_setting,
    load_backend,
)
from django_clubs.exceptions import (
    BadRequestError,
    ClubsConfigError,
    DatabaseError,
    NotFoundError,
)
from django_clubs.models import Club
from django_clubs.transactions import _apply_timeouts, atomic_with_timeouts


class RecordingCursor:

    def __init__(self, executed):
        self.executed = executed

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))


class RecordingConnection:
    """Stands in for a database connection of a given vendor."""

    def __init__(self, vendor):
        self.vendor = vendor
        self.executed = []

    def cursor(self):
        return RecordingCursor(self.executed)


class TestGetSetting:

    def test_defaults(self):
        assert get_setting('LOCK_TIMEOUT_MS') == 10000
        assert get_setting('STATEMENT_TIMEOUT_MS') == 30000
        assert get_setting('DEFAULT_CURRENCY') == 'BUZZ'

    def test_override(self, settings):
        settings.CLUBS_LOCK_TIMEOUT_MS = 500

        assert get_setting('LOCK_TIMEOUT_MS') == 500


class TestLoadBackend:
    """Test suite for backend loading."""

    def setup_method(self):
        clear_backend_cache()

    def teardown_method(self):
        clear_backend_cache()

    def test_default_backends(self):
        assert isinstance(get_ledger_backend(), NullLedgerBackend)
        assert isinstance(get_image_backend(), NullImageBackend)

    def test_backend_is_cached(self):
        assert get_ledger_backend() is get_ledger_backend()

    def test_configured_backend(self, settings):
        from tests.backends import RecordingLedgerBackend

        settings.CLUBS_LEDGER_BACKEND = 'tests.backends.RecordingLedgerBackend'

        assert isinstance(get_ledger_backend(), RecordingLedgerBackend)

    @pytest.mark.parametrize('path', [
        'nodots',
        'tests.no_such_module.Backend',
        'tests.backends.MissingBackend',
        'django_clubs.conf.DEFAULTS',
    ])
    def test_bad_paths_raise_config_error(self, path):
        with pytest.raises(ClubsConfigError):
            load_backend(path)

    def test_null_ledger_has_zero_balance_and_refuses_transfers(self):
        ledger = NullLedgerBackend()

        assert ledger.get_balance(1, 'Club') == 0
        with pytest.raises(BadRequestError):
            ledger.create_transaction(1, 'Club', 2, 'User', 10, 'Tip')

    def test_null_image_backend(self):
        assert NullImageBackend().create_images([], 1) == []
        with pytest.raises(BadRequestError):
            NullImageBackend().create_images([{'url': 'https://img/a.png'}], 1)


@pytest.mark.django_db
class TestAtomicWithTimeouts:
    """Test suite for atomic_with_timeouts."""

    def test_commits_block(self, owner):
        with atomic_with_timeouts():
            Club.objects.create(user=owner, name='Committed')

        assert Club.objects.filter(name='Committed').exists()

    def test_store_errors_roll_back_and_are_wrapped(self, owner, club):
        with pytest.raises(DatabaseError) as exc_info:
            with atomic_with_timeouts():
                Club.objects.create(user=owner, name='Rolled back')
                raise IntegrityError('boom')

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert not Club.objects.filter(name='Rolled back').exists()

    def test_domain_errors_pass_through(self, owner):
        with pytest.raises(NotFoundError):
            with atomic_with_timeouts():
                Club.objects.create(user=owner, name='Rolled back')
                raise NotFoundError('Club', 1)

        assert not Club.objects.filter(name='Rolled back').exists()


class TestApplyTimeouts:
    """Test suite for transaction-local timeouts."""

    def test_postgresql_sets_transaction_local_timeouts(self):
        connection = RecordingConnection('postgresql')

        _apply_timeouts(connection, 10000, 30000)

        [(sql, params)] = connection.executed
        assert "set_config('lock_timeout', %s, true)" in sql
        assert "set_config('statement_timeout', %s, true)" in sql
        assert params == ['10000ms', '30000ms']

    def test_other_backends_are_left_alone(self):
        connection = RecordingConnection('sqlite')

        _apply_timeouts(connection, 10000, 30000)

        assert connection.executed == []

    @pytest.mark.django_db
    def test_block_uses_configured_timeouts(self, monkeypatch, settings):
        from django_clubs import transactions

        calls = []
        settings.CLUBS_LOCK_TIMEOUT_MS = 2500
        monkeypatch.setattr(
            transactions,
            '_apply_timeouts',
            lambda connection, lock_ms, statement_ms: calls.append((lock_ms, statement_ms)),
        )

        with atomic_with_timeouts():
            pass

        assert calls == [(2500, 30000)]
