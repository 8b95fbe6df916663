"""
Record validation and persistence, scoped to the owning user.

Every write to accounts, categories and transactions goes through here so the
required/optional field rules and the ownership checks live in one place.
Routes catch ValidationError and NotFound and turn them into responses.
"""

import csv
import io
from datetime import date, datetime, time, timedelta

from flask import current_app

from models import Account, Category, Transaction, db
from money import amount_in_range, parse_amount, to_milliunits


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""


class ValidationError(ServiceError):
    def __init__(self, errors):
        super().__init__('Invalid input')
        self.errors = errors


class NotFound(ServiceError):
    pass


def _pick(data, *keys):
    for key in keys:
        if key in data:
            return data[key]
    return None


def parse_date(value, field='date'):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not value:
        raise ValidationError({field: 'This field is required.'})
    try:
        return datetime.fromisoformat(str(value).strip().replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise ValidationError({field: 'Invalid date format.'}) from None


def resolve_date_range(from_value, to_value, default_days=30):
    """
    Turn optional from/to query values into an inclusive datetime range.

    Missing bounds default to the last `default_days` days ending today.
    The end bound covers the whole of its day.
    """
    today = datetime.combine(date.today(), time.min)
    end = parse_date(to_value, 'to') if to_value else today
    start = parse_date(from_value, 'from') if from_value else end - timedelta(days=default_days)
    if start > end:
        raise ValidationError({'from': 'Start date must not be after end date.'})
    end = datetime.combine(end.date(), time.max)
    return start, end


# ---------------------- Accounts / Categories ----------------------
def list_records(model, user_id):
    return model.query.filter_by(user_id=user_id).order_by(model.name).all()


def get_record(model, user_id, record_id):
    record = model.query.filter_by(id=record_id, user_id=user_id).first()
    if record is None:
        raise NotFound(f'{model.__name__} not found.')
    return record


def _validate_name(data):
    name = _pick(data, 'name')
    if not isinstance(name, str) or not name.strip():
        raise ValidationError({'name': 'This field is required.'})
    return name.strip()


def create_record(model, user_id, data, commit=True):
    record = model(name=_validate_name(data), plaid_id=_pick(data, 'plaidId', 'plaid_id'), user_id=user_id)
    db.session.add(record)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    current_app.logger.info('Created %s %s for user %s', model.__name__, record.id, user_id)
    return record


def update_record(model, user_id, record_id, data):
    record = get_record(model, user_id, record_id)
    record.name = _validate_name(data)
    db.session.commit()
    return record


def delete_records(model, user_id, ids):
    """
    Delete the user's records with the given ids and return the deleted ids.

    Deleting one by one lets the ORM apply the relationship rules:
    account transactions go with the account, category links are nulled.
    """
    if not ids:
        return []
    records = model.query.filter(model.user_id == user_id, model.id.in_(ids)).all()
    deleted = [r.id for r in records]
    for r in records:
        db.session.delete(r)
    db.session.commit()
    current_app.logger.info('Deleted %d %s rows for user %s', len(deleted), model.__name__, user_id)
    return deleted


# ---------------------- Transactions ----------------------
def _transactions_query(user_id):
    return Transaction.query.join(Account, Transaction.account_id == Account.id).filter(Account.user_id == user_id)


def validate_transaction(user_id, data, partial=False):
    """
    Check a transaction payload and return column values ready to assign.

    `amount` must already be in milli-units (an integer). With partial=True
    only the keys present are checked, for edits.
    """
    errors = {}
    values = {}

    def present(*keys):
        return not partial or any(k in data for k in keys)

    if present('date'):
        try:
            values['date'] = parse_date(_pick(data, 'date'))
        except ValidationError as exc:
            errors.update(exc.errors)

    if present('accountId', 'account_id'):
        account_id = _pick(data, 'accountId', 'account_id')
        if not account_id:
            errors['accountId'] = 'This field is required.'
        elif not Account.query.filter_by(id=account_id, user_id=user_id).first():
            errors['accountId'] = 'Unknown account.'
        else:
            values['account_id'] = account_id

    if present('categoryId', 'category_id'):
        category_id = _pick(data, 'categoryId', 'category_id') or None
        if category_id and not Category.query.filter_by(id=category_id, user_id=user_id).first():
            errors['categoryId'] = 'Unknown category.'
        else:
            values['category_id'] = category_id

    if present('payee'):
        payee = _pick(data, 'payee')
        if not isinstance(payee, str) or not payee.strip():
            errors['payee'] = 'This field is required.'
        else:
            values['payee'] = payee.strip()

    if present('amount'):
        amount = _pick(data, 'amount')
        # bool is an int subclass
        if isinstance(amount, bool) or not isinstance(amount, int):
            errors['amount'] = 'Amount must be an integer number of milli-units.'
        elif not amount_in_range(amount):
            errors['amount'] = 'Amount is too large.'
        else:
            values['amount'] = amount

    if 'notes' in data:
        notes = data['notes']
        if isinstance(notes, str):
            notes = notes.strip()
        values['notes'] = notes or None

    if errors:
        current_app.logger.warning('Rejected transaction input: %s', errors)
        raise ValidationError(errors)
    return values


def list_transactions(user_id, start, end, account_id=None):
    q = _transactions_query(user_id).filter(Transaction.date >= start, Transaction.date <= end)
    if account_id:
        q = q.filter(Transaction.account_id == account_id)
    return q.order_by(Transaction.date.desc()).all()


def get_transaction(user_id, transaction_id):
    tx = _transactions_query(user_id).filter(Transaction.id == transaction_id).first()
    if tx is None:
        raise NotFound('Transaction not found.')
    return tx


def create_transaction(user_id, data):
    tx = Transaction(**validate_transaction(user_id, data))
    db.session.add(tx)
    db.session.commit()
    current_app.logger.info('Created transaction %s for user %s', tx.id, user_id)
    return tx


def bulk_create_transactions(user_id, items):
    if not isinstance(items, list):
        raise ValidationError({'_': 'Expected a list of transactions.'})
    rows, errors = [], {}
    for i, item in enumerate(items):
        try:
            rows.append(Transaction(**validate_transaction(user_id, item)))
        except ValidationError as exc:
            errors[str(i)] = exc.errors
    if errors:
        raise ValidationError(errors)
    db.session.add_all(rows)
    db.session.commit()
    current_app.logger.info('Created %d transactions for user %s', len(rows), user_id)
    return rows


def update_transaction(user_id, transaction_id, data):
    tx = get_transaction(user_id, transaction_id)
    for key, value in validate_transaction(user_id, data, partial=True).items():
        setattr(tx, key, value)
    db.session.commit()
    return tx


def delete_transactions(user_id, ids):
    if not ids:
        return []
    txs = _transactions_query(user_id).filter(Transaction.id.in_(ids)).all()
    deleted = [t.id for t in txs]
    for t in txs:
        db.session.delete(t)
    db.session.commit()
    current_app.logger.info('Deleted %d transactions for user %s', len(deleted), user_id)
    return deleted


# ---------------------- CSV ----------------------
CSV_REQUIRED = {'date', 'payee', 'amount', 'account'}
CSV_HEADERS = ['date', 'payee', 'amount', 'account', 'category', 'notes']


def _find_or_create(model, user_id, name, cache):
    key = name.strip().lower()
    if key not in cache:
        record = model.query.filter(model.user_id == user_id, db.func.lower(model.name) == key).first()
        if record is None:
            record = model(name=name.strip(), user_id=user_id)
            db.session.add(record)
            db.session.flush()
        cache[key] = record
    return cache[key]


def _csv_amount(text):
    amount = to_milliunits(parse_amount(text))
    if not amount_in_range(amount):
        raise ValueError(f'Amount out of range: {text!r}')
    return amount


def import_transactions_csv(user_id, text):
    """
    Import transactions from CSV text with decimal amounts.

    Accounts and categories are matched by name and created when missing.
    Returns (imported, skipped); rows that fail to parse are skipped.
    """
    reader = csv.DictReader(io.StringIO(text))
    headers = {(h or '').strip().lower() for h in (reader.fieldnames or [])}
    if not CSV_REQUIRED.issubset(headers):
        raise ValidationError({'file': 'CSV must have headers: date, payee, amount, account (category, notes optional)'})

    accounts, categories = {}, {}
    imported = skipped = 0
    for raw in reader:
        # fields beyond the header row land under the None key
        if None in raw:
            skipped += 1
            continue
        row = {(k or '').strip().lower(): (v or '').strip() for k, v in raw.items()}
        try:
            if not row['payee'] or not row['account']:
                raise ValueError('missing payee or account')
            tx = Transaction(
                date=parse_date(row['date']),
                payee=row['payee'],
                amount=_csv_amount(row['amount']),
                notes=row.get('notes') or None,
                account=_find_or_create(Account, user_id, row['account'], accounts),
                category=_find_or_create(Category, user_id, row['category'], categories) if row.get('category') else None,
            )
        except (ArithmeticError, ValueError, ValidationError):
            skipped += 1
            continue
        db.session.add(tx)
        imported += 1
    db.session.commit()
    current_app.logger.info('CSV import for user %s: %d imported, %d skipped', user_id, imported, skipped)
    return imported, skipped
