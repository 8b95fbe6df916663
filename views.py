import csv
import io

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

import services
from auth import current_user, login_required
from forms import TransactionForm, UploadForm
from models import Account, Category, db
from money import from_milliunits
from summary import build_summary

views_bp = Blueprint('views', __name__)


def _date_range():
    try:
        return services.resolve_date_range(
            request.args.get('from'),
            request.args.get('to'),
            current_app.config['SUMMARY_DEFAULT_DAYS'],
        )
    except services.ValidationError:
        flash('Invalid date range, showing the default period.', 'error')
        return services.resolve_date_range(None, None, current_app.config['SUMMARY_DEFAULT_DAYS'])


def _filters():
    return {k: request.args[k] for k in ('from', 'to', 'accountId') if request.args.get(k)}


def _options(model, user_id):
    return [(r.id, r.name) for r in services.list_records(model, user_id)]


# ---------------------- Routes: Pages ----------------------
@views_bp.route('/')
@login_required
def dashboard():
    user = current_user()
    start, end = _date_range()
    account_id = request.args.get('accountId') or None
    return render_template(
        'dashboard.html',
        user=user,
        summary=build_summary(user.id, start, end, account_id),
        accounts=services.list_records(Account, user.id),
        start=start,
        end=end,
        account_id=account_id,
    )


@views_bp.route('/transactions')
@login_required
def transactions():
    user = current_user()
    start, end = _date_range()
    account_id = request.args.get('accountId') or None
    return render_template(
        'transactions.html',
        transactions=services.list_transactions(user.id, start, end, account_id),
        accounts=services.list_records(Account, user.id),
        start=start,
        end=end,
        account_id=account_id,
        filters=_filters(),
    )


@views_bp.route('/transactions/bulk-delete', methods=['POST'])
@login_required
def bulk_delete_transactions():
    ids = request.form.getlist('ids')
    if not ids:
        flash('No transactions selected.', 'error')
    else:
        deleted = services.delete_transactions(current_user().id, ids)
        flash(f'Deleted {len(deleted)} transactions.', 'success')
    return redirect(url_for('views.transactions', **_filters()))


def _render_form(form, transaction=None):
    status = 400 if form.errors else 200
    return render_template('transaction_form.html', form=form, transaction=transaction), status


def _create_callbacks(user_id):
    # new records are flushed only; they commit with the transaction or roll back
    return {
        'on_create_account': lambda name: services.create_record(Account, user_id, {'name': name}, commit=False).id,
        'on_create_category': lambda name: services.create_record(Category, user_id, {'name': name}, commit=False).id,
    }


@views_bp.route('/transactions/new', methods=['GET', 'POST'])
@login_required
def new_transaction():
    user = current_user()
    form = TransactionForm(accounts=_options(Account, user.id), categories=_options(Category, user.id))
    try:
        if form.handle(lambda values: services.create_transaction(user.id, values), **_create_callbacks(user.id)):
            flash('Transaction created.', 'success')
            return redirect(url_for('views.transactions'))
    except services.ValidationError as exc:
        db.session.rollback()
        flash(f'Could not save transaction: {exc.errors}', 'error')
    return _render_form(form)


@views_bp.route('/transactions/<transaction_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_transaction(transaction_id):
    user = current_user()
    try:
        tx = services.get_transaction(user.id, transaction_id)
    except services.NotFound:
        abort(404)
    form = TransactionForm(
        transaction=tx,
        accounts=_options(Account, user.id),
        categories=_options(Category, user.id),
    )
    outcome = {}

    def on_delete():
        services.delete_transactions(user.id, [tx.id])
        outcome['message'] = 'Transaction deleted.'

    def on_submit(values):
        services.update_transaction(user.id, tx.id, values)
        outcome['message'] = 'Transaction updated.'

    try:
        if form.handle(on_submit, on_delete=on_delete, **_create_callbacks(user.id)):
            flash(outcome['message'], 'success')
            return redirect(url_for('views.transactions'))
    except services.ValidationError as exc:
        db.session.rollback()
        flash(f'Could not save transaction: {exc.errors}', 'error')
    return _render_form(form, tx)


@views_bp.route('/transactions/upload', methods=['GET', 'POST'])
@login_required
def upload_transactions():
    form = UploadForm()
    if form.validate_on_submit():
        text = form.file.data.stream.read().decode('utf-8-sig', errors='replace')
        try:
            imported, skipped = services.import_transactions_csv(current_user().id, text)
        except services.ValidationError as exc:
            flash(exc.errors['file'], 'error')
            return render_template('upload.html', form=form), 400
        flash(f'Imported {imported} transactions ({skipped} skipped).', 'success')
        return redirect(url_for('views.transactions'))
    return render_template('upload.html', form=form), 400 if form.errors else 200


# ---------------------- Export CSV ----------------------
@views_bp.route('/export.csv')
@login_required
def export_csv():
    user = current_user()
    start, end = _date_range()
    txs = services.list_transactions(user.id, start, end, request.args.get('accountId') or None)
    si = io.StringIO()
    writer = csv.writer(si)
    writer.writerow(services.CSV_HEADERS)
    for t in txs:
        writer.writerow([
            t.date.date().isoformat(),
            t.payee,
            f'{from_milliunits(t.amount):.3f}'.rstrip('0').rstrip('.'),
            t.account.name,
            t.category.name if t.category else '',
            t.notes or '',
        ])
    output = si.getvalue().encode('utf-8')
    return (output, 200, {'Content-Type': 'text/csv; charset=utf-8', 'Content-Disposition': 'attachment; filename=transactions.csv'})
