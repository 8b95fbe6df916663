"""
Spending summary for a date range.

All monetary values are milli-units. Expenses are reported as positive
magnitudes, so remainingAmount == incomeAmount - expensesAmount.
"""

from datetime import timedelta

import pandas as pd
from sqlalchemy import case, func

from models import Account, Category, Transaction, db
from money import calculate_percentage_change

TOP_CATEGORIES = 3

_income = case((Transaction.amount >= 0, Transaction.amount), else_=0)
_expenses = case((Transaction.amount < 0, -Transaction.amount), else_=0)


def _scoped(query, user_id, start, end, account_id):
    query = query.join(Account, Transaction.account_id == Account.id).filter(
        Account.user_id == user_id,
        Transaction.date >= start,
        Transaction.date <= end,
    )
    if account_id:
        query = query.filter(Transaction.account_id == account_id)
    return query


def fetch_totals(user_id, start, end, account_id=None):
    q = db.session.query(
        func.coalesce(func.sum(_income), 0).label('income'),
        func.coalesce(func.sum(_expenses), 0).label('expenses'),
    ).select_from(Transaction)
    totals = _scoped(q, user_id, start, end, account_id).first()
    income, expenses = int(totals.income or 0), int(totals.expenses or 0)
    return {'income': income, 'expenses': expenses, 'remaining': income - expenses}


def category_breakdown(user_id, start, end, account_id=None):
    """Expense magnitude per category, largest first; the tail is folded into 'Other'."""
    q = db.session.query(
        Category.name,
        func.sum(-Transaction.amount).label('value'),
    ).select_from(Transaction).outerjoin(Category, Transaction.category_id == Category.id)
    q = _scoped(q, user_id, start, end, account_id).filter(Transaction.amount < 0)
    rows = q.group_by(Category.name).all()

    items = sorted(
        ({'name': name or 'Uncategorized', 'value': int(value or 0)} for name, value in rows),
        key=lambda c: c['value'],
        reverse=True,
    )
    top, rest = items[:TOP_CATEGORIES], items[TOP_CATEGORIES:]
    if rest:
        top.append({'name': 'Other', 'value': sum(c['value'] for c in rest)})
    return top


def daily_series(user_id, start, end, account_id=None):
    """Income and expenses per day for every day of the range, zero-filled."""
    day = func.date(Transaction.date)
    q = db.session.query(
        day.label('date'),
        func.sum(_income).label('income'),
        func.sum(_expenses).label('expenses'),
    ).select_from(Transaction)
    rows = _scoped(q, user_id, start, end, account_id).group_by(day).all()

    frame = pd.DataFrame([tuple(r) for r in rows], columns=['date', 'income', 'expenses'])
    frame['date'] = pd.to_datetime(frame['date'])
    index = pd.date_range(start.date(), end.date(), freq='D')
    frame = frame.groupby('date')[['income', 'expenses']].sum().reindex(index, fill_value=0)
    return [
        {'date': ts.date().isoformat(), 'income': int(r['income']), 'expenses': int(r['expenses'])}
        for ts, r in frame.iterrows()
    ]


def build_summary(user_id, start, end, account_id=None):
    period = (end.date() - start.date()).days + 1
    current = fetch_totals(user_id, start, end, account_id)
    previous = fetch_totals(
        user_id, start - timedelta(days=period), end - timedelta(days=period), account_id
    )
    return {
        'incomeAmount': current['income'],
        'expensesAmount': current['expenses'],
        'remainingAmount': current['remaining'],
        'incomeChange': calculate_percentage_change(current['income'], previous['income']),
        'expensesChange': calculate_percentage_change(current['expenses'], previous['expenses']),
        'remainingChange': calculate_percentage_change(current['remaining'], previous['remaining']),
        'categories': category_breakdown(user_id, start, end, account_id),
        'days': daily_series(user_id, start, end, account_id),
    }
