from datetime import datetime

from flask import (
    Blueprint,
    abort,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from .auth import current_user, login_required
from .domain import catalog, customers, invoices
from .domain.customers import CUSTOMER_FIELDS, SEARCH_TYPES
from .errors import NotFoundError, ShopError
from .forms import CustomerForm, TransactionForm
from .utils import parse_date

bp = Blueprint('customers', __name__)


def _form_fields(form: CustomerForm) -> dict:
    return {name: getattr(form, name).data for name in CUSTOMER_FIELDS}


def _product_choices():
    return [(p.id, f'{p.name} ({p.quantity})') for p in catalog.list_products()]


def _when(value):
    day = parse_date(value)
    if day is None:
        return None
    if day == datetime.now().date():
        return datetime.now()
    return datetime.combine(day, datetime.min.time().replace(hour=12))


@bp.route('/customers')
@login_required
def list_customers():
    term = request.args.get('q', '')
    search_type = request.args.get('search_type', 'all')
    rows = customers.list_customers(term, search_type)
    return render_template(
        'customers/list.html',
        rows=rows,
        term=term,
        search_type=search_type,
        search_types=SEARCH_TYPES,
    )


@bp.route('/customers/add', methods=['GET', 'POST'])
@login_required
def add_customer():
    form = CustomerForm()
    if form.validate_on_submit():
        try:
            customer = customers.create_customer(user=current_user(), **_form_fields(form))
        except ShopError as e:
            flash(str(e))
            return render_template('customers/form.html', form=form, customer=None)
        flash(f'Customer {customer.name} added')
        return redirect(url_for('customers.customer_details', customer_id=customer.id))
    return render_template('customers/form.html', form=form, customer=None)


@bp.route('/customers/<int:customer_id>')
@login_required
def customer_details(customer_id):
    try:
        details = customers.customer_details(customer_id)
    except NotFoundError:
        abort(404)
    form = TransactionForm()
    form.product_id.choices = _product_choices()
    return render_template(
        'customers/details.html',
        form=form,
        orders=invoices.customer_orders(customer_id),
        **details,
    )


@bp.route('/customers/<int:customer_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_customer(customer_id):
    customer = customers.get_customer(customer_id)
    if customer is None:
        abort(404)
    form = CustomerForm(obj=customer)
    if form.validate_on_submit():
        try:
            customers.update_customer(customer_id, user=current_user(), **_form_fields(form))
        except ShopError as e:
            flash(str(e))
            return render_template('customers/form.html', form=form, customer=customer)
        flash('Customer updated')
        return redirect(url_for('customers.customer_details', customer_id=customer_id))
    return render_template('customers/form.html', form=form, customer=customer)


@bp.route('/customers/<int:customer_id>/delete', methods=['POST'])
@login_required
def delete_customer(customer_id):
    try:
        name = customers.delete_customer(customer_id, current_user())
    except ShopError as e:
        flash(str(e))
        return redirect(url_for('customers.list_customers'))
    flash(f'Customer {name} deleted')
    return redirect(url_for('customers.list_customers'))


@bp.route('/customers/<int:customer_id>/transactions', methods=['POST'])
@login_required
def add_transaction(customer_id):
    form = TransactionForm()
    form.product_id.choices = _product_choices()
    if not form.validate_on_submit():
        flash('Check the transaction fields')
        return redirect(url_for('customers.customer_details', customer_id=customer_id))
    try:
        customers.add_transaction(
            customer_id,
            form.product_id.data,
            form.quantity.data,
            form.total_price.data,
            form.amount_paid.data or 0,
            when=_when(form.date.data),
            shipping_type=form.shipping_type.data or None,
            user=current_user(),
        )
    except ShopError as e:
        flash(str(e))
    else:
        catalog.refresh_low_stock_gauge()
        flash('Transaction added')
    return redirect(url_for('customers.customer_details', customer_id=customer_id))


@bp.route('/transactions/<int:transaction_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_transaction(transaction_id):
    txn = customers.get_transaction(transaction_id)
    if txn is None:
        abort(404)
    if request.method == 'POST':
        try:
            customers.edit_transaction(
                transaction_id,
                int(request.form.get('quantity', txn.quantity)),
                request.form.get('total_price', abs(txn.total_price)),
                request.form.get('amount_paid', abs(txn.amount_paid)),
                when=_when(request.form.get('date')),
                shipping_type=request.form.get('shipping_type'),
                user=current_user(),
            )
        except ValueError:
            flash('Quantity must be a whole number')
            return redirect(url_for('customers.edit_transaction', transaction_id=transaction_id))
        except ShopError as e:
            flash(str(e))
            return redirect(url_for('customers.edit_transaction', transaction_id=transaction_id))
        catalog.refresh_low_stock_gauge()
        flash('Transaction updated')
        return redirect(url_for('customers.customer_details', customer_id=txn.customer_id))
    return render_template('customers/transaction_form.html', txn=txn)


@bp.route('/transactions/<int:transaction_id>/delete', methods=['POST'])
@login_required
def delete_transaction(transaction_id):
    try:
        customer_id = customers.delete_transaction(transaction_id, current_user())
    except ShopError as e:
        flash(str(e))
        return redirect(url_for('customers.list_customers'))
    catalog.refresh_low_stock_gauge()
    flash('Transaction deleted')
    return redirect(url_for('customers.customer_details', customer_id=customer_id))


@bp.route('/customers/<int:customer_id>/transactions/delete_all', methods=['POST'])
@login_required
def delete_all_transactions(customer_id):
    try:
        count = customers.delete_all_transactions(customer_id, current_user())
    except ShopError as e:
        flash(str(e))
        return redirect(url_for('customers.list_customers'))
    flash(f'{count} transactions deleted')
    return redirect(url_for('customers.customer_details', customer_id=customer_id))


@bp.route('/api/customers')
@login_required
def customers_json():
    return jsonify(customers.customers_json(request.args.get('q', '')))


@bp.route('/api/customers/by_phone')
@login_required
def customer_by_phone():
    phone = request.args.get('phone', '')
    customer = customers.find_by_phone(phone)
    if customer is None:
        return jsonify({'success': False, 'message': 'Customer not found'}), 404
    return jsonify({'success': True, 'customer': customers.customer_dict(customer)})
