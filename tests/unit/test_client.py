"""Tests for the API client, its query cache and summary conversion."""

from datetime import datetime
from unittest.mock import Mock

import pytest
import requests

from client import FetchError, FinanceClient, QueryCache, convert_summary


def _response(data=None, ok=True, status=200):
    response = Mock()
    response.ok = ok
    response.status_code = status
    response.json.return_value = {'data': data}
    return response


@pytest.fixture
def session():
    s = Mock()
    s.request.return_value = _response([])
    return s


@pytest.fixture
def api(session):
    return FinanceClient('http://finance.test/', session=session)


class TestConvertSummary:
    """Test milli-unit -> decimal conversion of summary payloads."""

    @pytest.mark.currency
    def test_converts_every_monetary_field(self):
        raw = {
            'incomeAmount': 500000,
            'expensesAmount': 200000,
            'remaingAmount': 300000,
            'categories': [{'value': 100000}],
            'days': [{'income': 1000, 'expenses': 500}],
        }
        assert convert_summary(raw) == {
            'incomeAmount': 500,
            'expenseAmount': 200,
            'remainingAmount': 300,
            'categories': [{'value': 100}],
            'days': [{'income': 1, 'expenses': 0.5}],
        }

    @pytest.mark.currency
    def test_non_monetary_fields_pass_through(self):
        raw = {
            'incomeAmount': 1000,
            'expensesAmount': 0,
            'remainingAmount': 1000,
            'incomeChange': 12.5,
            'categories': [{'name': 'Food', 'value': 2500}],
            'days': [{'date': '2024-08-15', 'income': 0, 'expenses': 2500}],
        }
        result = convert_summary(raw)
        assert result['incomeChange'] == 12.5
        assert result['remainingAmount'] == 1
        assert result['categories'] == [{'name': 'Food', 'value': 2.5}]
        assert result['days'] == [{'date': '2024-08-15', 'income': 0, 'expenses': 2.5}]


class TestQueryCache:
    """Test the explicit invalidation contract."""

    def test_fetches_once_until_invalidated(self):
        cache = QueryCache()
        fetch = Mock(return_value=['row'])
        key = ('transactions', '/api/transactions', ())

        assert cache.get_or_fetch(key, fetch) == ['row']
        assert cache.get_or_fetch(key, fetch) == ['row']
        assert fetch.call_count == 1

        cache.invalidate('transactions')
        assert key not in cache
        cache.get_or_fetch(key, fetch)
        assert fetch.call_count == 2

    def test_invalidate_leaves_other_resources(self):
        cache = QueryCache()
        cache.get_or_fetch(('accounts', '/api/accounts', ()), lambda: [])
        cache.invalidate('transactions', 'summary')
        assert ('accounts', '/api/accounts', ()) in cache


class TestFinanceClient:
    """Test FinanceClient requests and error handling."""

    def test_get_transactions_sends_filters(self, api, session):
        api.get_transactions(from_='2024-08-01', to='2024-08-31', account_id='acc-1')
        session.request.assert_called_once_with(
            'GET', 'http://finance.test/api/transactions', timeout=None,
            params={'from': '2024-08-01', 'to': '2024-08-31', 'accountId': 'acc-1'},
        )

    def test_reads_are_cached(self, api, session):
        api.get_transactions()
        api.get_transactions()
        assert session.request.call_count == 1

    def test_mutation_invalidates_transactions_and_summary(self, api, session):
        session.request.return_value = _response({
            'incomeAmount': 0, 'expensesAmount': 0, 'remainingAmount': 0, 'categories': [], 'days': [],
        })
        api.get_summary()
        session.request.return_value = _response([])
        api.get_transactions()
        assert session.request.call_count == 2

        session.request.return_value = _response({'id': 'tx-1'})
        api.create_transaction({'payee': 'Grocer', 'amount': -45990, 'date': datetime(2024, 8, 15)})
        assert session.request.call_count == 3

        session.request.return_value = _response([])
        api.get_transactions()
        session.request.return_value = _response({
            'incomeAmount': 0, 'expensesAmount': 0, 'remainingAmount': 0, 'categories': [], 'days': [],
        })
        api.get_summary()
        assert session.request.call_count == 5

    def test_dates_serialized_as_iso(self, api, session):
        session.request.return_value = _response({'id': 'tx-1'})
        api.create_transaction({'payee': 'Grocer', 'amount': -45990, 'date': datetime(2024, 8, 15)})
        _, kwargs = session.request.call_args
        assert kwargs['json']['date'] == '2024-08-15T00:00:00'

    def test_bulk_delete_with_no_ids_skips_network(self, api, session):
        assert api.bulk_delete_transactions([]) == []
        session.request.assert_not_called()

    def test_bulk_delete_posts_ids(self, api, session):
        session.request.return_value = _response([{'id': 'a'}, {'id': 'b'}])
        assert api.bulk_delete_transactions(['a', 'b']) == [{'id': 'a'}, {'id': 'b'}]
        session.request.assert_called_once_with(
            'POST', 'http://finance.test/api/transactions/bulk-delete', timeout=None, json={'ids': ['a', 'b']},
        )

    def test_summary_is_converted(self, api, session):
        session.request.return_value = _response({
            'incomeAmount': 500000,
            'expensesAmount': 200000,
            'remainingAmount': 300000,
            'incomeChange': 100.0,
            'categories': [{'name': 'Food', 'value': 100000}],
            'days': [{'date': '2024-08-15', 'income': 1000, 'expenses': 500}],
        })
        summary = api.get_summary(from_='2024-08-01', to='2024-08-31')
        assert summary['incomeAmount'] == 500
        assert summary['expenseAmount'] == 200
        assert summary['remainingAmount'] == 300
        assert summary['incomeChange'] == 100.0
        assert summary['days'][0]['expenses'] == 0.5

    def test_non_success_raises_fetch_error(self, api, session):
        session.request.return_value = _response(ok=False, status=500)
        with pytest.raises(FetchError, match='Failed to fetch summary.'):
            api.get_summary()

    def test_failed_read_is_not_cached(self, api, session):
        session.request.return_value = _response(ok=False, status=503)
        with pytest.raises(FetchError):
            api.get_transactions()
        session.request.return_value = _response([{'id': 'a'}])
        assert api.get_transactions() == [{'id': 'a'}]

    def test_connection_error_raises_fetch_error(self, api, session):
        session.request.side_effect = requests.ConnectionError('refused')
        with pytest.raises(FetchError, match='Failed to fetch transactions.'):
            api.get_transactions()

    def test_failed_mutation_keeps_cache(self, api, session):
        api.get_transactions()
        session.request.return_value = _response(ok=False, status=400)
        with pytest.raises(FetchError, match='Failed to delete transactions.'):
            api.bulk_delete_transactions(['a'])
        assert ('transactions', '/api/transactions', ()) in api.cache

    def test_non_json_body_raises_fetch_error(self, api, session):
        response = _response()
        response.json.side_effect = requests.JSONDecodeError('Expecting value', '<html>', 0)
        session.request.return_value = response
        with pytest.raises(FetchError, match='Failed to fetch transactions.'):
            api.get_transactions()

    def test_body_without_data_raises_fetch_error(self, api, session):
        response = _response()
        response.json.return_value = {'error': 'oops'}
        session.request.return_value = response
        with pytest.raises(FetchError, match='Failed to create account.'):
            api.create_account('Wallet')

    def test_malformed_summary_raises_fetch_error(self, api, session):
        session.request.return_value = _response({'incomeAmount': 0})
        with pytest.raises(FetchError, match='Failed to fetch summary.'):
            api.get_summary()


class TestRelatedInvalidation:
    """Deleting accounts or categories changes transactions and summaries too."""

    SUMMARY = {'incomeAmount': 0, 'expensesAmount': 0, 'remainingAmount': 0, 'categories': [], 'days': []}

    def _prime(self, api, session):
        session.request.return_value = _response(self.SUMMARY)
        api.get_summary()
        session.request.return_value = _response([])
        api.get_transactions()
        api.get_accounts()
        api.get_categories()
        assert session.request.call_count == 4

    @pytest.mark.parametrize('delete', ['bulk_delete_accounts', 'bulk_delete_categories'])
    def test_bulk_delete_refetches_transactions_and_summary(self, api, session, delete):
        self._prime(api, session)

        session.request.return_value = _response([{'id': 'x'}])
        getattr(api, delete)(['x'])
        assert session.request.call_count == 5

        session.request.return_value = _response([])
        api.get_transactions()
        session.request.return_value = _response(self.SUMMARY)
        api.get_summary()
        assert session.request.call_count == 7

    def test_account_delete_keeps_categories_cached(self, api, session):
        self._prime(api, session)
        session.request.return_value = _response([{'id': 'x'}])
        api.bulk_delete_accounts(['x'])
        assert ('categories', '/api/categories', ()) in api.cache
        assert ('accounts', '/api/accounts', ()) not in api.cache
