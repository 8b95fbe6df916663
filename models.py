import sqlite3
import uuid

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE clauses unless this is switched on per connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def new_id():
    return uuid.uuid4().hex


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    accounts = db.relationship('Account', backref='user', lazy=True, cascade="all, delete-orphan")
    categories = db.relationship('Category', backref='user', lazy=True, cascade="all, delete-orphan")


class Account(db.Model):
    __tablename__ = 'accounts'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    plaid_id = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    # deleting an account deletes its transactions
    transactions = db.relationship('Transaction', backref='account', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {'id': self.id, 'plaidId': self.plaid_id, 'name': self.name, 'userId': self.user_id}


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    plaid_id = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    # no delete cascade: the ORM nulls category_id on the children instead
    transactions = db.relationship('Transaction', backref='category', lazy=True)

    def to_dict(self):
        return {'id': self.id, 'plaidId': self.plaid_id, 'name': self.name, 'userId': self.user_id}


class Transaction(db.Model):
    __tablename__ = 'transactions'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    amount = db.Column(db.BigInteger, nullable=False)  # milli-units, negative = expense
    payee = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    date = db.Column(db.DateTime, nullable=False, index=True)
    account_id = db.Column(db.String(32), db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    category_id = db.Column(db.String(32), db.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True)

    def to_dict(self, with_names=False):
        data = {
            'id': self.id,
            'amount': self.amount,
            'payee': self.payee,
            'notes': self.notes,
            'date': self.date.isoformat(),
            'accountId': self.account_id,
            'categoryId': self.category_id,
        }
        if with_names:
            data['account'] = self.account.name if self.account else None
            data['category'] = self.category.name if self.category else None
        return data
