"""
Returns against original invoices.

- single product return from an invoice
- several products under one return invoice
- deletion with stock reversal
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
from ..domain import returns
from ..errors import ShopError
from ..forms import ReturnForm

logger = logging.getLogger(__name__)

bp = Blueprint("returns", __name__, url_prefix="/returns")


@bp.route("/")
@login_required
def list_returns():
    return render_template(
        "returns/list.html",
        returns=returns.list_returns(),
        summary=returns.returns_summary(),
        form=ReturnForm(),
    )


@bp.route("/<int:tracking_id>")
@login_required
def return_details(tracking_id):
    tracking = returns.get_return(tracking_id)
    if tracking is None:
        abort(404)
    return render_template("returns/details.html", tracking=tracking)


@bp.route("/invoice_items")
@login_required
def invoice_items():
    try:
        data = returns.invoice_items_for_return(request.args.get("invoice_number", ""))
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code
    return jsonify(dict(data, success=True))


@bp.route("/create", methods=["POST"])
@login_required
def create_return():
    form = ReturnForm()
    if not form.validate_on_submit():
        flash("Invoice number, product and a quantity of at least 1 are required")
        return redirect(url_for("returns.list_returns"))
    try:
        invoice = returns.create_return(
            form.original_invoice_number.data,
            form.product_id.data,
            form.quantity.data,
            reason=form.reason.data or None,
            notes=form.notes.data or None,
            user=current_user(),
        )
    except ShopError as e:
        flash(str(e))
        return redirect(url_for("returns.list_returns"))
    flash(f"Return {invoice.invoice_number} recorded")
    return redirect(url_for("returns.list_returns"))


@bp.route("/multi", methods=["POST"])
@csrf.exempt
@login_required
def multi_return():
    data = request.get_json(silent=True) or {}
    try:
        invoice = returns.multi_return(
            data.get("original_invoice_number", ""),
            data.get("items") or [],
            reason=data.get("reason"),
            notes=data.get("notes"),
            user=current_user(),
        )
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Malformed multi return payload: %s", e)
        return jsonify({"success": False, "message": "Malformed return items"}), 400
    return jsonify(
        {
            "success": True,
            "message": f"Return {invoice.invoice_number} recorded",
            "invoice_number": invoice.invoice_number,
            "invoice_id": invoice.id,
        }
    )


@bp.route("/<int:tracking_id>/delete", methods=["POST"])
@login_required
def delete_return(tracking_id):
    try:
        returns.delete_return(tracking_id, current_user())
    except ShopError as e:
        flash(str(e))
    else:
        flash("Return deleted and stock reversed")
    return redirect(url_for("returns.list_returns"))


@bp.route("/delete_selected", methods=["POST"])
@login_required
def delete_selected():
    ids = request.form.getlist("ids")
    try:
        count = returns.multi_delete(ids, current_user())
    except ShopError as e:
        flash(str(e))
    except ValueError:
        flash("Invalid selection")
    else:
        flash(f"{count} returns deleted")
    return redirect(url_for("returns.list_returns"))


@bp.route("/delete_all", methods=["POST"])
@admin_required
def delete_all():
    count = returns.delete_all(current_user())
    flash(f"{count} returns deleted")
    return redirect(url_for("returns.list_returns"))
