from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    DateField,
    DecimalField,
    IntegerField,
    PasswordField,
    SelectField,
    StringField,
    TextAreaField,
)
from wtforms.validators import DataRequired, InputRequired, NumberRange, Optional

from .constants import ALL_SIZES, SHIPPING_TYPES


class LoginForm(FlaskForm):
    username = StringField('username', validators=[DataRequired()])
    password = PasswordField('password', validators=[DataRequired()])


class UserForm(FlaskForm):
    username = StringField('username', validators=[DataRequired()])
    password = PasswordField('password', validators=[DataRequired()])
    is_admin = BooleanField('is_admin')


class CategoryForm(FlaskForm):
    name = StringField('name', validators=[DataRequired()])
    description = TextAreaField('description')
    is_active = BooleanField('is_active', default=True)


class ProductForm(FlaskForm):
    name = StringField('name', validators=[DataRequired()])
    category_id = SelectField('category_id', coerce=int, validators=[DataRequired()])
    color = StringField('color')
    size = SelectField(
        'size',
        choices=[('', '-')] + [(size, size) for size in ALL_SIZES],
        validators=[Optional()],
    )
    quantity = IntegerField('quantity', default=0, validators=[NumberRange(min=0)])
    price = DecimalField('price', places=2, validators=[InputRequired(), NumberRange(min=0)])
    carton_price = DecimalField('carton_price', places=2, validators=[Optional(), NumberRange(min=0)])
    qr_code = StringField('qr_code')
    notes = TextAreaField('notes')


class CustomerForm(FlaskForm):
    name = StringField('name', validators=[DataRequired()])
    phone_number = StringField('phone_number', validators=[DataRequired()])
    additional_phone = StringField('additional_phone')
    governorate = StringField('governorate')
    district = StringField('district')
    detailed_address = StringField('detailed_address')
    email = StringField('email')
    address = StringField('address')


class TransactionForm(FlaskForm):
    """Manual purchase (positive quantity) or return (negative quantity)."""

    product_id = SelectField('product_id', coerce=int, validators=[DataRequired()])
    quantity = IntegerField('quantity', validators=[DataRequired()])
    total_price = DecimalField('total_price', places=2, validators=[DataRequired()])
    amount_paid = DecimalField('amount_paid', places=2, default=0, validators=[Optional()])
    date = DateField('date', validators=[Optional()])
    shipping_type = SelectField(
        'shipping_type',
        choices=[('', '-')] + list(SHIPPING_TYPES.items()),
        validators=[Optional()],
    )


class PaymentForm(FlaskForm):
    additional_amount = DecimalField(
        'additional_amount', places=2, validators=[DataRequired(), NumberRange(min=0.01)]
    )
    shipping_type = SelectField(
        'shipping_type',
        choices=[('', '-')] + list(SHIPPING_TYPES.items()),
        validators=[Optional()],
    )


class ReturnForm(FlaskForm):
    original_invoice_number = StringField('original_invoice_number', validators=[DataRequired()])
    product_id = IntegerField('product_id', validators=[DataRequired()])
    quantity = IntegerField('quantity', validators=[DataRequired(), NumberRange(min=1)])
    reason = StringField('reason')
    notes = TextAreaField('notes')


class ExchangeForm(FlaskForm):
    original_invoice_number = StringField('original_invoice_number', validators=[DataRequired()])
    old_product_id = IntegerField('old_product_id', validators=[DataRequired()])
    new_product_id = IntegerField('new_product_id', validators=[DataRequired()])
    quantity = IntegerField('quantity', validators=[DataRequired(), NumberRange(min=1)])
    reason = StringField('reason')
    notes = TextAreaField('notes')
