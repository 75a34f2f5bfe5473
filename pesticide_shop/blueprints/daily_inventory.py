"""
Daily inventory: today's live figures, closing, reconciliation and exports.
"""
import logging
from datetime import date, timedelta

from flask import (
    Blueprint,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)

from ..auth import current_user, login_required
from ..domain import daily_inventory, exports, financial
from ..domain.activity import log_activity
from ..utils import parse_date, to_int

logger = logging.getLogger(__name__)

bp = Blueprint("daily_inventory", __name__, url_prefix="/daily_inventory")


def _day(value) -> date:
    return parse_date(value, date.today())


@bp.route("/")
@login_required
def index():
    today = date.today()
    return render_template(
        "daily_inventory/index.html",
        day=today,
        inventory=daily_inventory.get_by_date(today),
        snapshot=daily_inventory.live_snapshot(today),
        previous=daily_inventory.previous_day(today),
        recent=daily_inventory.get_range(today - timedelta(days=6), today),
    )


@bp.route("/<day>")
@login_required
def view_day(day):
    selected = _day(day)
    return render_template(
        "daily_inventory/day.html",
        day=selected,
        inventory=daily_inventory.get_by_date(selected),
        snapshot=daily_inventory.live_snapshot(selected),
        transactions=daily_inventory.transactions_for_day(selected),
        top_products=daily_inventory.top_products(selected, 10),
        top_customers=daily_inventory.top_customers(selected, 10),
    )


@bp.route("/<day>/close", methods=["POST"])
@login_required
def close(day):
    selected = _day(day)
    inventory = daily_inventory.close_day(selected, current_user())
    flash(
        f"Day {selected.isoformat()} closed: sales {inventory.total_sales}, "
        f"profit {inventory.net_profit}"
    )
    return redirect(url_for("daily_inventory.view_day", day=selected.isoformat()))


@bp.route("/<day>/reopen", methods=["POST"])
@login_required
def reopen(day):
    selected = _day(day)
    if daily_inventory.reopen_day(selected, current_user()) is None:
        flash("There is no inventory for that day")
    else:
        flash(f"Day {selected.isoformat()} reopened")
    return redirect(url_for("daily_inventory.view_day", day=selected.isoformat()))


@bp.route("/<day>/recalculate", methods=["POST"])
@login_required
def recalculate(day):
    selected = _day(day)
    inventory = daily_inventory.recalculate(selected)
    log_activity(
        "recalculate",
        "daily_inventory",
        selected.isoformat(),
        f"{inventory.transactions_count} transactions",
        current_user(),
    )
    flash(f"Day {selected.isoformat()} recalculated")
    return redirect(url_for("daily_inventory.view_day", day=selected.isoformat()))


@bp.route("/recalculate_all", methods=["POST"])
@login_required
def recalculate_all():
    count = daily_inventory.recalculate_all()
    log_activity("recalculate", "daily_inventory", "all", f"{count} days", current_user())
    flash(f"{count} days recalculated")
    return redirect(url_for("daily_inventory.index"))


@bp.route("/recalculate_profits", methods=["POST"])
@login_required
def recalculate_profits():
    start = parse_date(request.form.get("start"), date.today() - timedelta(days=30))
    end = parse_date(request.form.get("end"), date.today())
    count = financial.recalculate_profits(start, end)
    flash(f"Profit recalculated for {count} days")
    return redirect(url_for("daily_inventory.index"))


@bp.route("/calendar")
@login_required
def calendar():
    today = date.today()
    year = to_int(request.args.get("year"), today.year)
    month = to_int(request.args.get("month"), today.month)
    if not 1 <= month <= 12:
        month = today.month
    return render_template(
        "daily_inventory/calendar.html",
        year=year,
        month=month,
        days=daily_inventory.calendar(year, month),
    )


@bp.route("/compare")
@login_required
def compare():
    end = parse_date(request.args.get("end"), date.today())
    start = parse_date(request.args.get("start"), end - timedelta(days=6))
    if start > end:
        start, end = end, start
    return render_template(
        "daily_inventory/compare.html",
        start=start,
        end=end,
        result=daily_inventory.compare(start, end),
    )


@bp.route("/api/summary")
@login_required
def summary_data():
    end = parse_date(request.args.get("end"), date.today())
    start = parse_date(request.args.get("start"), end - timedelta(days=29))
    return jsonify(daily_inventory.summary_data(start, end))


@bp.route("/api/<day>/transactions")
@login_required
def transactions_json(day):
    selected = _day(day)
    return jsonify(
        [
            {
                "id": txn.id,
                "time": txn.date.strftime("%H:%M:%S"),
                "customer": txn.customer.name if txn.customer else "",
                "product": txn.product.name if txn.product else "",
                "quantity": txn.quantity,
                "price": float(txn.price),
                "discount": float(txn.discount),
                "total_price": float(txn.total_price),
                "amount_paid": float(txn.amount_paid),
                "notes": txn.notes or "",
            }
            for txn in daily_inventory.transactions_for_day(selected)
        ]
    )


@bp.route("/api/<day>/snapshot")
@login_required
def snapshot_json(day):
    return jsonify(daily_inventory.live_snapshot(_day(day)).to_dict())


@bp.route("/<day>/export")
@login_required
def export_excel(day):
    selected = _day(day)
    return send_file(
        exports.daily_workbook(selected),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"daily_inventory_{selected.isoformat()}.xlsx",
    )


@bp.route("/<day>/export_detailed")
@login_required
def export_detailed_excel(day):
    selected = _day(day)
    return send_file(
        exports.detailed_daily_workbook(selected),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"daily_inventory_detailed_{selected.isoformat()}.xlsx",
    )


@bp.route("/<day>/export_invoices")
@login_required
def export_invoices_excel(day):
    selected = _day(day)
    return send_file(
        exports.invoices_workbook(selected),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"invoices_{selected.isoformat()}.xlsx",
    )
