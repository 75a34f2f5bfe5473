"""
Annual inventory and dashboard pages.
"""
from flask import Blueprint, jsonify, render_template, request, send_file

from ..auth import login_required
from ..config import settings
from ..domain import exports, reports
from ..utils import to_int

bp = Blueprint("reports", __name__)


@bp.route("/annual_inventory")
@login_required
def annual_inventory():
    summary = reports.annual_summary(
        page=to_int(request.args.get("page"), 1),
        page_size=settings.ANNUAL_PAGE_SIZE or 10,
    )
    return render_template("reports/annual.html", summary=summary)


@bp.route("/annual_inventory/export")
@login_required
def annual_export_excel():
    return send_file(
        exports.annual_workbook(),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name="annual_inventory.xlsx",
    )


@bp.route("/annual_inventory/export_detailed")
@login_required
def annual_detailed_export_excel():
    return send_file(
        exports.annual_detailed_workbook(),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name="annual_inventory_detailed.xlsx",
    )


@bp.route("/dashboard")
@login_required
def dashboard():
    return render_template("reports/dashboard.html", stats=reports.dashboard_stats())


@bp.route("/api/dashboard")
@login_required
def dashboard_json():
    stats = reports.dashboard_stats()
    data = stats.figures.to_dict()
    data.update(
        {
            "inventory_value": float(stats.inventory_value),
            "products_count": stats.products_count,
            "out_of_stock_count": stats.out_of_stock_count,
            "customers_count": stats.customers_count,
            "invoices_count": stats.invoices_count,
            "activities": [
                {
                    "action": a.action,
                    "entity_type": a.entity_type,
                    "entity_name": a.entity_name,
                    "details": a.details,
                    "user": a.user,
                    "timestamp": a.timestamp.isoformat(),
                }
                for a in stats.activities
            ],
        }
    )
    return jsonify(data)
