from datetime import datetime, time

from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import DateField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional, ValidationError

from money import amount_in_range, from_milliunits, parse_amount, to_milliunits


def is_number(form, field):
    try:
        amount = to_milliunits(parse_amount(field.data or ''))
    except ValueError:
        raise ValidationError('Amount must be a number.') from None
    if not amount_in_range(amount):
        raise ValidationError('Amount is too large.')


class TransactionForm(FlaskForm):
    """
    Create/edit form for a single transaction.

    The user types a decimal amount; handle() converts it to milli-units
    before calling the submit callback, so callers only ever see integers.
    """

    date = DateField('Date', validators=[DataRequired(message='Date is required.')])
    account_id = SelectField('Account', choices=[])
    new_account = StringField('New account', validators=[Optional(), Length(max=120)])
    category_id = SelectField('Category', choices=[], validators=[Optional()])
    new_category = StringField('New category', validators=[Optional(), Length(max=120)])
    payee = StringField('Payee', validators=[DataRequired(message='Payee is required.'), Length(max=255)])
    amount = StringField('Amount', validators=[DataRequired(message='Amount is required.'), is_number])
    notes = TextAreaField('Notes', validators=[Optional()])
    submit = SubmitField('Create Transaction')
    delete = SubmitField('Delete transaction')

    def __init__(self, *args, transaction=None, accounts=(), categories=(), disabled=False, **kwargs):
        if transaction is not None and 'data' not in kwargs:
            kwargs['data'] = {
                'date': transaction.date.date(),
                'account_id': transaction.account_id,
                'category_id': transaction.category_id or '',
                'payee': transaction.payee,
                'amount': str(from_milliunits(transaction.amount)),
                'notes': transaction.notes or '',
            }
        super().__init__(*args, **kwargs)
        self.transaction = transaction
        self.disabled = disabled
        self.account_id.choices = [('', 'Select an account')] + list(accounts)
        self.category_id.choices = [('', 'Select a category')] + list(categories)
        if transaction is not None:
            self.submit.label.text = 'Save Changes'
        if disabled:
            for field in self:
                field.render_kw = dict(field.render_kw or {}, disabled=True)

    @property
    def is_edit(self):
        return self.transaction is not None

    def validate(self, extra_validators=None):
        ok = super().validate(extra_validators)
        if not self.account_id.data and not (self.new_account.data or '').strip():
            self.account_id.errors.append('Account is required.')
            ok = False
        return ok

    def api_values(self, account_id=None, category_id=None):
        """Validated values with the amount converted to milli-units."""
        return {
            'date': datetime.combine(self.date.data, time.min),
            'account_id': account_id or self.account_id.data,
            'category_id': category_id or self.category_id.data or None,
            'payee': self.payee.data.strip(),
            'amount': to_milliunits(parse_amount(self.amount.data)),
            'notes': (self.notes.data or '').strip() or None,
        }

    def handle(self, on_submit, on_delete=None, on_create_account=None, on_create_category=None):
        """
        Process a POSTed form.

        Returns True when a callback ran. Invalid input leaves field errors on
        the form and returns False without calling anything. The delete
        callback only runs in edit mode and gets no arguments.
        """
        if self.disabled or not self.is_submitted():
            return False

        if self.delete.data:
            if self.is_edit and on_delete is not None:
                on_delete()
                return True
            return False

        if not self.validate():
            return False

        account_id = category_id = None
        new_account = (self.new_account.data or '').strip()
        if new_account:
            if on_create_account is None:
                self.new_account.errors.append('Accounts cannot be created here.')
                return False
            account_id = on_create_account(new_account)
        new_category = (self.new_category.data or '').strip()
        if new_category:
            if on_create_category is None:
                self.new_category.errors.append('Categories cannot be created here.')
                return False
            category_id = on_create_category(new_category)

        on_submit(self.api_values(account_id, category_id))
        return True


class UploadForm(FlaskForm):
    file = FileField('CSV file', validators=[FileRequired(message='No file uploaded.'), FileAllowed(['csv'], 'CSV files only.')])
    submit = SubmitField('Import')
