"""In-memory ledger and image backends that record their calls."""

from django_clubs.backends import BaseImageBackend, BaseLedgerBackend


class RecordingLedgerBackend(BaseLedgerBackend):

    def __init__(self):
        self.balances = {}
        self.transactions = []

    def get_balance(self, account_id, account_type):
        return self.balances.get((account_type, account_id), 0)

    def create_transaction(
        self,
        from_account_id,
        from_account_type,
        to_account_id,
        to_account_type,
        amount,
        transaction_type,
        description='',
    ):
        self.transactions.append({
            'from': (from_account_type, from_account_id),
            'to': (to_account_type, to_account_id),
            'amount': amount,
            'type': transaction_type,
        })
        self.balances[(from_account_type, from_account_id)] = (
            self.get_balance(from_account_id, from_account_type) - amount
        )
        self.balances[(to_account_type, to_account_id)] = (
            self.get_balance(to_account_id, to_account_type) + amount
        )


class RecordingImageBackend(BaseImageBackend):

    def __init__(self):
        self.created = []

    def create_images(self, images, user_id):
        result = []
        for image in images:
            self.created.append(image)
            result.append({'id': 9000 + len(self.created), 'url': image['url']})
        return result
