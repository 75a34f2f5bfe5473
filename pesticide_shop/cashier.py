"""Point-of-sale screen and the JSON endpoints it talks to."""

from flask import Blueprint, current_app, jsonify, render_template, request

from .auth import current_user, login_required
from .constants import ORDER_ORIGINS, SHIPPING_TYPES
from .csrf_extension import csrf
from .domain import catalog, cashier, customers
from .domain.cashier import TransactionRequest
from .errors import ShopError
from .utils import to_int

bp = Blueprint('cashier', __name__, url_prefix='/cashier')


def _flag(name: str, default: bool = False) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


@bp.route('/')
@login_required
def cashier_page():
    return render_template(
        'cashier.html',
        categories=catalog.list_categories(active_only=True),
        popular=catalog.popular_products(),
        numbers=cashier.generate_numbers(),
        order_origins=ORDER_ORIGINS,
        shipping_types=SHIPPING_TYPES,
    )


@bp.route('/process_transaction', methods=['POST'])
@csrf.exempt
@login_required
def process_transaction():
    data = request.get_json(silent=True) or {}
    try:
        req = TransactionRequest.from_dict(data)
        if not req.cashier_name:
            req.cashier_name = current_user()
        result = cashier.process_transaction(req)
    except ShopError as e:
        current_app.logger.info('Cashier transaction refused: %s', e)
        return jsonify(e.to_json()), e.status_code
    return jsonify(result)


@bp.route('/product_by_qr')
@login_required
def product_by_qr():
    product = catalog.find_by_qr(request.args.get('code', ''))
    if product is None:
        return jsonify({'success': False, 'message': 'Product not found'}), 404
    return jsonify({'success': True, 'product': product})


@bp.route('/customer_by_phone')
@login_required
def customer_by_phone():
    customer = customers.find_by_phone(request.args.get('phone', ''))
    if customer is None:
        return jsonify({'success': False, 'message': 'Customer not found'}), 404
    return jsonify({'success': True, 'customer': customers.customer_dict(customer)})


@bp.route('/categories')
@login_required
def categories():
    return jsonify(
        [{'id': c.id, 'name': c.name} for c in catalog.list_categories(active_only=True)]
    )


@bp.route('/products_by_category')
@login_required
def products_grouped():
    return jsonify(catalog.products_grouped_by_category())


@bp.route('/popular_products')
@login_required
def popular_products():
    return jsonify(catalog.popular_products(to_int(request.args.get('limit'), 6)))


@bp.route('/search_by_category')
@login_required
def search_by_category():
    return jsonify(
        catalog.products_by_category(
            request.args.get('category', ''),
            include_out_of_stock=_flag('include_out_of_stock', True),
            limit=to_int(request.args.get('limit'), 20),
        )
    )


@bp.route('/advanced_search')
@login_required
def advanced_search():
    return jsonify(
        catalog.advanced_search(
            term=request.args.get('q', '').strip(),
            category=request.args.get('category', '').strip(),
            color=request.args.get('color', '').strip(),
            size=request.args.get('size', '').strip(),
            limit=to_int(request.args.get('limit'), 50),
        )
    )


@bp.route('/search_products')
@login_required
def search_products():
    return jsonify(
        catalog.search_products(
            request.args.get('q', ''),
            include_out_of_stock=_flag('include_out_of_stock'),
            limit=to_int(request.args.get('limit'), 20),
        )
    )


@bp.route('/generate_numbers')
@login_required
def generate_numbers():
    return jsonify(cashier.generate_numbers())


@bp.route('/check_invoice_number')
@login_required
def check_invoice_number():
    number = request.args.get('number', '').strip()
    return jsonify({'number': number, 'exists': bool(number) and cashier.invoice_number_exists(number)})


@bp.route('/check_order_number')
@login_required
def check_order_number():
    number = request.args.get('number', '').strip()
    return jsonify({'number': number, 'exists': bool(number) and cashier.order_number_exists(number)})


@bp.route('/customers')
@login_required
def customer_list():
    return jsonify(customers.customers_json(request.args.get('q', '')))


@bp.route('/search_invoices_for_return')
@login_required
def search_invoices_for_return():
    try:
        found = cashier.search_invoices_for_return(
            request.args.get('q', ''), to_int(request.args.get('limit'), 10)
        )
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code
    return jsonify({'success': True, 'invoices': found})


@bp.route('/return_trackings')
@login_required
def return_trackings():
    return jsonify(cashier.return_trackings(request.args.get('invoice_number') or None))
