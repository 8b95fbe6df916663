"""
Pytest Configuration and Shared Fixtures

Every test gets a fresh app on an in-memory SQLite database, one user with
two accounts, two categories and a handful of recent transactions.
"""

from datetime import date, datetime, time, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from config import TestConfig
from models import Account, Category, Transaction, User, db


def days_ago(n):
    return datetime.combine(date.today() - timedelta(days=n), time(12, 0))


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app):
    u = User(name='Test User', email='test@example.com', password_hash=generate_password_hash('secret123'))
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def other_user(app):
    u = User(name='Someone Else', email='other@example.com', password_hash=generate_password_hash('secret123'))
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def accounts(user):
    checking = Account(name='Checking', user_id=user.id)
    savings = Account(name='Savings', user_id=user.id, plaid_id='plaid-123')
    db.session.add_all([checking, savings])
    db.session.commit()
    return {'checking': checking, 'savings': savings}


@pytest.fixture
def categories(user):
    food = Category(name='Food', user_id=user.id)
    utilities = Category(name='Utilities', user_id=user.id)
    db.session.add_all([food, utilities])
    db.session.commit()
    return {'food': food, 'utilities': utilities}


@pytest.fixture
def transactions(accounts, categories):
    """
    Income 500.00; expenses 45.99 + 120.00 + 20.00 = 185.99 (milli-units below).
    """
    rows = {
        'salary': Transaction(amount=500000, payee='Employer', date=days_ago(2),
                              account_id=accounts['checking'].id),
        'groceries': Transaction(amount=-45990, payee='Grocer', date=days_ago(1), notes='weekly shop',
                                 account_id=accounts['checking'].id, category_id=categories['food'].id),
        'power': Transaction(amount=-120000, payee='Power Co', date=days_ago(3),
                             account_id=accounts['checking'].id, category_id=categories['utilities'].id),
        'coffee': Transaction(amount=-20000, payee='Cafe', date=days_ago(1),
                              account_id=accounts['savings'].id, category_id=categories['food'].id),
    }
    db.session.add_all(rows.values())
    db.session.commit()
    return rows


@pytest.fixture
def auth_client(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
    return client
