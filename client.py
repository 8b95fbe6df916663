"""
HTTP client for the finance JSON API.

Reads are cached per (resource, params). The client never guesses what a
mutation changed: every successful write calls QueryCache.invalidate() for
the resources it affects, so the next read goes back to the server.
"""

import logging
from datetime import date, datetime

import requests

from money import from_milliunits

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A request to the API did not succeed."""


class QueryCache:
    def __init__(self):
        self._entries = {}

    def __contains__(self, key):
        return key in self._entries

    def get_or_fetch(self, key, fetch):
        if key not in self._entries:
            self._entries[key] = fetch()
        return self._entries[key]

    def invalidate(self, *resources):
        stale = [key for key in self._entries if key[0] in resources]
        for key in stale:
            del self._entries[key]
        logger.debug('Invalidated %d cached queries for %s', len(stale), resources)


_SUMMARY_MONEY_KEYS = {'incomeAmount', 'expensesAmount', 'remainingAmount', 'remaingAmount', 'categories', 'days'}


def convert_summary(data):
    """
    Convert a raw summary payload from milli-units to decimal amounts.

    Non-monetary fields pass through unchanged. Older servers spell the
    remaining total 'remaingAmount'; both spellings are accepted.
    """
    result = {k: v for k, v in data.items() if k not in _SUMMARY_MONEY_KEYS}
    remaining = data['remainingAmount'] if 'remainingAmount' in data else data['remaingAmount']
    result['incomeAmount'] = from_milliunits(data['incomeAmount'])
    result['expenseAmount'] = from_milliunits(data['expensesAmount'])
    result['remainingAmount'] = from_milliunits(remaining)
    result['categories'] = [
        {**category, 'value': from_milliunits(category['value'])}
        for category in data.get('categories', [])
    ]
    result['days'] = [
        {**day, 'income': from_milliunits(day['income']), 'expenses': from_milliunits(day['expenses'])}
        for day in data.get('days', [])
    ]
    return result


def _serialize(values):
    return {k: v.isoformat() if isinstance(v, (date, datetime)) else v for k, v in values.items()}


def _query_params(from_=None, to=None, account_id=None):
    params = {'from': from_, 'to': to, 'accountId': account_id}
    return {k: v.isoformat() if isinstance(v, date) else v for k, v in params.items() if v}


class FinanceClient:
    def __init__(self, base_url, session=None, timeout=None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.cache = QueryCache()

    def _request(self, method, path, error, **kwargs):
        try:
            response = self.session.request(method, f'{self.base_url}{path}', timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise FetchError(error) from exc
        if not response.ok:
            logger.warning('%s %s returned %s', method, path, response.status_code)
            raise FetchError(error)
        try:
            return response.json()['data']
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning('%s %s returned an unreadable body', method, path)
            raise FetchError(error) from exc

    def _query(self, resource, path, error, params=None, convert=None):
        key = (resource, path, tuple(sorted((params or {}).items())))

        def fetch():
            data = self._request('GET', path, error, params=params)
            if convert is None:
                return data
            try:
                return convert(data)
            except (ArithmeticError, KeyError, TypeError) as exc:
                logger.warning('GET %s returned a malformed payload', path)
                raise FetchError(error) from exc

        return self.cache.get_or_fetch(key, fetch)

    # ---------------------- Accounts / Categories ----------------------
    def get_accounts(self):
        return self._query('accounts', '/api/accounts', 'Failed to fetch accounts.')

    def create_account(self, name):
        data = self._request('POST', '/api/accounts', 'Failed to create account.', json={'name': name})
        self.cache.invalidate('accounts')
        return data

    def bulk_delete_accounts(self, ids):
        if not ids:
            return []
        data = self._request('POST', '/api/accounts/bulk-delete', 'Failed to delete accounts.', json={'ids': list(ids)})
        self.cache.invalidate('accounts', 'transactions', 'transaction', 'summary')
        return data

    def get_categories(self):
        return self._query('categories', '/api/categories', 'Failed to fetch categories.')

    def create_category(self, name):
        data = self._request('POST', '/api/categories', 'Failed to create category.', json={'name': name})
        self.cache.invalidate('categories')
        return data

    def bulk_delete_categories(self, ids):
        if not ids:
            return []
        data = self._request('POST', '/api/categories/bulk-delete', 'Failed to delete categories.', json={'ids': list(ids)})
        self.cache.invalidate('categories', 'transactions', 'transaction', 'summary')
        return data

    # ---------------------- Transactions ----------------------
    def get_transactions(self, from_=None, to=None, account_id=None):
        params = _query_params(from_, to, account_id)
        return self._query('transactions', '/api/transactions', 'Failed to fetch transactions.', params)

    def get_transaction(self, transaction_id):
        path = f'/api/transactions/{transaction_id}'
        return self._query('transaction', path, 'Failed to fetch transaction.')

    def create_transaction(self, values):
        data = self._request('POST', '/api/transactions', 'Failed to create transaction.', json=_serialize(values))
        self.cache.invalidate('transactions', 'summary')
        return data

    def bulk_create_transactions(self, items):
        data = self._request(
            'POST', '/api/transactions/bulk-create', 'Failed to create transactions.',
            json=[_serialize(v) for v in items],
        )
        self.cache.invalidate('transactions', 'summary')
        return data

    def edit_transaction(self, transaction_id, values):
        data = self._request(
            'PATCH', f'/api/transactions/{transaction_id}', 'Failed to edit transaction.', json=_serialize(values)
        )
        self.cache.invalidate('transactions', 'transaction', 'summary')
        return data

    def delete_transaction(self, transaction_id):
        data = self._request('DELETE', f'/api/transactions/{transaction_id}', 'Failed to delete transaction.')
        self.cache.invalidate('transactions', 'transaction', 'summary')
        return data

    def bulk_delete_transactions(self, ids):
        """Delete transactions by id; an empty id list never reaches the network."""
        if not ids:
            return []
        data = self._request(
            'POST', '/api/transactions/bulk-delete', 'Failed to delete transactions.', json={'ids': list(ids)}
        )
        self.cache.invalidate('transactions', 'transaction', 'summary')
        return data

    # ---------------------- Summary ----------------------
    def get_summary(self, from_=None, to=None, account_id=None):
        params = _query_params(from_, to, account_id)
        return self._query('summary', '/api/summary', 'Failed to fetch summary.', params, convert=convert_summary)
