from flask import (
    Blueprint,
    current_app,
    flash,
    has_app_context,
    has_request_context,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
import os

from werkzeug.security import check_password_hash

from .auth import login_required
from .config import settings
from .constants import (
    INVENTORY_STATUSES,
    INVOICE_STATUSES,
    INVOICE_TYPES,
    ORDER_ORIGINS,
    SHIPPING_TYPES,
    STOCK_LABELS,
)
from .csrf_extension import csrf
from .db import get_session
from .domain import reports
from .env_info import ENV_INFO
from .forms import LoginForm
from .logging_setup import configure_logging, read_log_tail
from .models import User
from .settings_io import HIDDEN_KEYS
from .settings_store import SettingsPersistenceError, settings_store

# Settings with boolean values represented as "1" or "0"
BOOLEAN_KEYS = {"FLASK_DEBUG"}


bp = Blueprint("main", __name__)


@bp.app_template_filter("format_dt")
def format_dt(value, fmt="%d/%m/%Y %H:%M"):
    """Return datetime formatted with day/month/year."""
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value[:16]
    return value.strftime(fmt)


@bp.app_template_filter("money")
def money(value):
    return f"{Decimal(value or 0):,.2f} {settings.CURRENCY}"


@bp.app_context_processor
def inject_globals():
    return {
        "current_year": datetime.now().year,
        "INVOICE_STATUSES": INVOICE_STATUSES,
        "INVOICE_TYPES": INVOICE_TYPES,
        "ORDER_ORIGINS": ORDER_ORIGINS,
        "SHIPPING_TYPES": SHIPPING_TYPES,
        "STOCK_LABELS": STOCK_LABELS,
        "INVENTORY_STATUSES": INVENTORY_STATUSES,
        "shop_phones": settings.SHOP_PHONES,
        "shop_website": settings.SHOP_WEBSITE,
    }


def _make_logger():
    if has_app_context():
        return lambda message, error: current_app.logger.exception(
            message, exc_info=error
        )
    return None


def _make_error_notifier():
    if has_request_context():
        def notifier(message):
            if "Settings template missing" in message:
                flash("The .env.example file is missing, there are no settings to show.")
            else:
                flash(message)

        return notifier
    return None


def ensure_db_initialized(app_obj=None):
    """Refuse to start when the database path cannot hold a SQLite file."""
    db_path = settings.DB_PATH
    logger = (app_obj or current_app).logger
    if os.path.isdir(db_path):
        logger.error(f"Database path {db_path} is a directory. Please fix the mount.")
        raise SystemExit(1)
    if os.path.exists(db_path) and not os.path.isfile(db_path):
        logger.error(f"Database path {db_path} is not a file.")
        raise SystemExit(1)
    directory = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(directory, exist_ok=True)


@bp.route("/")
@login_required
def home():
    stats = reports.home_stats()
    return render_template("home.html", username=session["username"], stats=stats)


@bp.route("/login", methods=["GET", "POST"])
def login():
    form = LoginForm()
    if form.validate_on_submit():
        username = form.username.data
        password = form.password.data

        user_info = None
        with get_session() as db:
            user = db.query(User).filter_by(username=username).first()
            if user and check_password_hash(user.password, password):
                user_info = {"username": user.username, "is_admin": bool(user.is_admin)}

        if user_info:
            session["username"] = user_info["username"]
            session["is_admin"] = user_info["is_admin"]
            current_app.logger.info("User %s logged in", username)
            next_url = request.args.get("next") or ""
            if next_url.startswith("/") and not next_url.startswith("//"):
                return redirect(next_url)
            return redirect(url_for("home"))
        current_app.logger.warning("Failed login for %s", username)
        flash("Invalid username or password")
        return redirect(url_for("login"))

    return render_template("login.html", form=form, show_menu=False)


@bp.route("/logout")
@login_required
def logout():
    session.pop("username", None)
    session.pop("is_admin", None)
    return redirect(url_for("login"))


@bp.route("/settings", methods=["GET", "POST"])
@login_required
def settings_page():
    all_values = settings_store.as_ordered_dict(
        include_hidden=True,
        logger=_make_logger(),
        on_error=_make_error_notifier(),
    )
    values = OrderedDict(
        (key, val) for key, val in all_values.items() if key not in HIDDEN_KEYS
    )
    db_path_notice = bool(all_values.get("DB_PATH"))
    if request.method == "POST":
        updates = {key: request.form.get(key, values.get(key, "")) for key in values}
        for key in ("LOW_STOCK_THRESHOLD", "INVOICES_PAGE_SIZE", "ANNUAL_PAGE_SIZE"):
            raw = updates.get(key, "")
            if raw and not str(raw).isdigit():
                flash(f"{ENV_INFO.get(key, (key,))[0]} must be a whole number")
                return redirect(url_for("settings_page"))
        try:
            settings_store.update(updates)
        except SettingsPersistenceError as exc:
            current_app.logger.error(
                "Failed to persist settings submitted via the admin panel", exc_info=exc
            )
            flash("Settings could not be saved because the configuration database is read-only.")
            return redirect(url_for("settings_page"))
        configure_logging()
        flash("Settings saved.")
        return redirect(url_for("settings_page"))
    settings_list = []
    for key, val in values.items():
        label, desc = ENV_INFO.get(key, (key, None))
        settings_list.append({"key": key, "label": label, "desc": desc, "value": val})
    return render_template(
        "settings.html",
        settings=settings_list,
        db_path_notice=db_path_notice,
        boolean_keys=BOOLEAN_KEYS,
    )


@bp.route("/logs")
@login_required
def logs():
    try:
        lines = read_log_tail(200)
    except OSError as e:
        lines = [f"Error reading logs: {e}"]
    return render_template("logs.html", lines=lines)


@bp.route("/api/heartbeat", methods=["POST"])
@csrf.exempt
def heartbeat():
    return jsonify({"status": "alive", "timestamp": datetime.now().isoformat()})


@bp.app_errorhandler(404)
def handle_404(error):
    """Render custom page for 404 errors."""
    return render_template("error.html", code=404, message="Page not found"), 404


@bp.app_errorhandler(500)
def handle_500(error):
    """Render custom page for internal server errors."""
    return render_template("error.html", code=500, message="Internal server error"), 500
