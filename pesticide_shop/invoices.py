from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from . import notifications
from .auth import admin_required, current_user, login_required
from .constants import INVOICE_STATUSES, INVOICE_TYPES, ORDER_ORIGINS
from .domain import invoices
from .errors import ShopError
from .forms import PaymentForm
from .utils import parse_date, to_int

bp = Blueprint('invoices', __name__)


def _filters() -> dict:
    return {
        'search': request.args.get('q', ''),
        'status': request.args.get('status', ''),
        'type_': request.args.get('type', ''),
        'origin': request.args.get('origin', ''),
        'payment_method': request.args.get('payment_method', ''),
        'date_from': parse_date(request.args.get('date_from')),
        'date_to': parse_date(request.args.get('date_to')),
    }


@bp.route('/invoices')
@login_required
def list_invoices():
    filters = _filters()
    page = invoices.list_invoices(page=to_int(request.args.get('page'), 1), **filters)
    return render_template(
        'invoices/list.html',
        page=page,
        filters=request.args,
        statuses=INVOICE_STATUSES,
        types=INVOICE_TYPES,
        origins=ORDER_ORIGINS,
        payment_methods=invoices.payment_methods(),
    )


@bp.route('/orders')
@login_required
def orders():
    rows = invoices.orders(**_filters())
    return render_template(
        'invoices/orders.html',
        rows=rows,
        filters=request.args,
        statuses=INVOICE_STATUSES,
        types=INVOICE_TYPES,
        origins=ORDER_ORIGINS,
    )


@bp.route('/invoices/<int:invoice_id>')
@login_required
def invoice_details(invoice_id):
    invoice = invoices.get_invoice(invoice_id)
    if invoice is None:
        abort(404)
    return render_template(
        'invoices/details.html',
        invoice=invoice,
        form=PaymentForm(),
        statuses=INVOICE_STATUSES,
    )


@bp.route('/invoices/<int:invoice_id>/print')
@login_required
def print_invoice(invoice_id):
    invoice = invoices.get_invoice(invoice_id)
    if invoice is None:
        abort(404)
    return render_template('invoices/print.html', invoice=invoice, show_menu=False)


@bp.route('/invoices/<int:invoice_id>/status', methods=['POST'])
@login_required
def update_status(invoice_id):
    try:
        invoices.update_status(invoice_id, request.form.get('status', ''), current_user())
    except ShopError as e:
        flash(str(e))
    else:
        flash('Invoice status updated')
    return redirect(url_for('invoices.invoice_details', invoice_id=invoice_id))


@bp.route('/invoices/<int:invoice_id>/payment', methods=['POST'])
@login_required
def update_payment(invoice_id):
    form = PaymentForm()
    if not form.validate_on_submit():
        flash('Additional amount must be greater than zero')
        return redirect(url_for('invoices.invoice_details', invoice_id=invoice_id))
    try:
        invoice = invoices.update_payment(
            invoice_id,
            form.additional_amount.data,
            form.shipping_type.data or None,
            current_user(),
        )
    except ShopError as e:
        flash(str(e))
    else:
        flash(f'Payment recorded, remaining {invoice.remaining_amount}')
    return redirect(url_for('invoices.invoice_details', invoice_id=invoice_id))


@bp.route('/invoices/<int:invoice_id>/delete', methods=['POST'])
@login_required
def delete_invoice(invoice_id):
    try:
        number = invoices.delete_invoice(invoice_id, current_user())
    except ShopError as e:
        flash(str(e))
    else:
        flash(f'Invoice {number} deleted')
    return redirect(url_for('invoices.list_invoices'))


@bp.route('/invoices/delete_all', methods=['POST'])
@admin_required
def delete_all_invoices():
    count = invoices.delete_all_invoices(current_user())
    flash(f'{count} invoices deleted')
    return redirect(url_for('invoices.list_invoices'))


@bp.route('/invoices/<int:invoice_id>/whatsapp')
@login_required
def whatsapp(invoice_id):
    invoice = invoices.get_invoice(invoice_id)
    if invoice is None:
        abort(404)
    message = notifications.whatsapp_message(invoice)
    return redirect(notifications.whatsapp_url(invoice.customer.phone_number, message))


@bp.route('/invoices/<int:invoice_id>/send_whatsapp', methods=['POST'])
@login_required
def send_whatsapp(invoice_id):
    invoice = invoices.get_invoice(invoice_id)
    if invoice is None:
        abort(404)
    if notifications.send_whatsapp(invoice):
        flash('Invoice sent over WhatsApp')
    else:
        current_app.logger.warning('WhatsApp relay did not accept invoice %s', invoice.invoice_number)
        flash('WhatsApp relay is not configured or refused the message')
    return redirect(url_for('invoices.invoice_details', invoice_id=invoice_id))


@bp.route('/api/invoices/<key>')
@login_required
def invoice_json(key):
    invoice = invoices.get_invoice(key)
    if invoice is None and key.isdigit():
        invoice = invoices.get_invoice(int(key))
    if invoice is None:
        return jsonify({'success': False, 'message': 'Invoice not found'}), 404
    return jsonify(invoices.invoice_json(invoice))
