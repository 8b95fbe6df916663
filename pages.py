from client import FetchError


class TransactionsPage:
    """
    State behind the transaction history table.

    The table is disabled while a fetch or a mutation is outstanding. Rows
    are never edited locally: after a delete the page asks the server again.
    """

    def __init__(self, client, from_=None, to=None, account_id=None):
        self.client = client
        self.filters = {'from_': from_, 'to': to, 'account_id': account_id}
        self.transactions = []
        self.selection = set()
        self.error = None
        self.is_loading = False
        self.is_fetching = False
        self.is_mutating = False
        self._loaded = False

    @property
    def is_disabled(self):
        return self.is_loading or self.is_fetching or self.is_mutating

    def load(self):
        self.is_loading = not self._loaded
        self.is_fetching = True
        try:
            self.transactions = self.client.get_transactions(**self.filters)
            self._loaded = True
            self.error = None
        except FetchError as exc:
            self.error = str(exc)
        finally:
            self.is_loading = self.is_fetching = False
        self.selection &= {t['id'] for t in self.transactions}
        return self.transactions

    def select(self, *ids):
        self.selection.update(ids)

    def deselect(self, *ids):
        self.selection.difference_update(ids)

    def select_all(self):
        self.selection = {t['id'] for t in self.transactions}

    def delete_selected(self):
        """Bulk-delete the selected rows; nothing is sent when nothing is selected."""
        ids = [t['id'] for t in self.transactions if t['id'] in self.selection]
        if not ids or self.is_disabled:
            return []
        self.is_mutating = True
        try:
            deleted = self.client.bulk_delete_transactions(ids)
        except FetchError as exc:
            self.error = str(exc)
            return []
        finally:
            self.is_mutating = False
        self.selection.clear()
        self.load()
        return deleted
