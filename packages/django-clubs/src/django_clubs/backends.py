"""External collaborator interfaces: ledger and image storage.

django-clubs never moves currency or stores images itself. Projects point
CLUBS_LEDGER_BACKEND and CLUBS_IMAGE_BACKEND at their own implementations.
"""

from abc import ABC, abstractmethod

from .exceptions import BadRequestError


class BaseLedgerBackend(ABC):
    """Abstract ledger (Buzz/currency) service."""

    @abstractmethod
    def get_balance(self, account_id, account_type: str) -> int:
        """Return the current balance of an account."""
        raise NotImplementedError

    @abstractmethod
    def create_transaction(
        self,
        from_account_id,
        from_account_type: str,
        to_account_id,
        to_account_type: str,
        amount: int,
        transaction_type: str,
        description: str = '',
    ):
        """Move ``amount`` from one account to another as one ledger transaction."""
        raise NotImplementedError


class NullLedgerBackend(BaseLedgerBackend):
    """Ledger for projects without club balances. Every balance is zero."""

    def get_balance(self, account_id, account_type: str) -> int:
        return 0

    def create_transaction(
        self,
        from_account_id,
        from_account_type: str,
        to_account_id,
        to_account_type: str,
        amount: int,
        transaction_type: str,
        description: str = '',
    ):
        raise BadRequestError("No ledger backend is configured")


class BaseImageBackend(ABC):
    """Abstract image store used when clubs and tiers are created with images."""

    @abstractmethod
    def create_images(self, images: list[dict], user_id) -> list[dict]:
        """Persist images and return dicts with at least ``id`` and ``url``."""
        raise NotImplementedError


class NullImageBackend(BaseImageBackend):
    """Image store for projects that only pass existing image ids."""

    def create_images(self, images: list[dict], user_id) -> list[dict]:
        if images:
            raise BadRequestError("No image backend is configured to store new images")
        return []
