"""
Product exchanges against original invoices.
"""
import logging

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

from ..auth import admin_required, current_user, login_required
from ..csrf_extension import csrf
from ..domain import catalog, exchanges
from ..errors import ShopError
from ..forms import ExchangeForm

logger = logging.getLogger(__name__)

bp = Blueprint("exchanges", __name__, url_prefix="/exchanges")


@bp.route("/")
@login_required
def list_exchanges():
    return render_template(
        "exchanges/list.html",
        exchanges=exchanges.list_exchanges(),
        products=catalog.list_products(),
        form=ExchangeForm(),
    )


@bp.route("/<int:tracking_id>")
@login_required
def exchange_details(tracking_id):
    tracking = exchanges.get_exchange(tracking_id)
    if tracking is None:
        abort(404)
    return render_template("exchanges/details.html", tracking=tracking)


@bp.route("/invoice_items")
@login_required
def invoice_items():
    try:
        data = exchanges.invoice_items_for_exchange(request.args.get("invoice_number", ""))
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code
    return jsonify(dict(data, success=True))


@bp.route("/create", methods=["POST"])
@login_required
def create_exchange():
    form = ExchangeForm()
    if not form.validate_on_submit():
        flash("Invoice number, both products and a quantity of at least 1 are required")
        return redirect(url_for("exchanges.list_exchanges"))
    try:
        invoice = exchanges.create_exchange(
            form.original_invoice_number.data,
            form.old_product_id.data,
            form.new_product_id.data,
            form.quantity.data,
            reason=form.reason.data or None,
            notes=form.notes.data or None,
            user=current_user(),
        )
    except ShopError as e:
        flash(str(e))
        return redirect(url_for("exchanges.list_exchanges"))
    flash(f"Exchange {invoice.invoice_number} recorded")
    return redirect(url_for("exchanges.list_exchanges"))


@bp.route("/multi", methods=["POST"])
@csrf.exempt
@login_required
def multi_exchange():
    data = request.get_json(silent=True) or {}
    try:
        invoice = exchanges.multi_exchange(
            data.get("original_invoice_number", ""),
            data.get("items") or [],
            reason=data.get("reason"),
            notes=data.get("notes"),
            user=current_user(),
        )
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Malformed multi exchange payload: %s", e)
        return jsonify({"success": False, "message": "Malformed exchange items"}), 400
    return jsonify(
        {
            "success": True,
            "message": f"Exchange {invoice.invoice_number} recorded",
            "invoice_number": invoice.invoice_number,
            "invoice_id": invoice.id,
            "total_amount": float(invoice.total_amount),
            "remaining_amount": float(invoice.remaining_amount),
        }
    )


@bp.route("/<int:tracking_id>/delete", methods=["POST"])
@login_required
def delete_exchange(tracking_id):
    try:
        exchanges.delete_exchange(tracking_id, current_user())
    except ShopError as e:
        flash(str(e))
    else:
        flash("Exchange record deleted")
    return redirect(url_for("exchanges.list_exchanges"))


@bp.route("/delete_all", methods=["POST"])
@admin_required
def delete_all():
    count = exchanges.delete_all(current_user())
    flash(f"{count} exchange records deleted")
    return redirect(url_for("exchanges.list_exchanges"))
