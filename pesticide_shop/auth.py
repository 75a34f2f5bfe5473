from functools import wraps

from flask import flash, redirect, request, session, url_for


def login_required(view):
    """Redirect anonymous users to the login page."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if "username" not in session:
            if request.accept_mimetypes.best == "application/json" or request.is_json:
                return {"success": False, "message": "Login required"}, 401
            return redirect(url_for("login", next=request.path))
        return view(*args, **kwargs)

    return wrapped


def admin_required(view):
    """Allow only users flagged as administrators."""

    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not session.get("is_admin"):
            flash("Administrator rights are required")
            return redirect(url_for("home"))
        return view(*args, **kwargs)

    return wrapped


def current_user():
    """Username recorded on activity rows and invoices."""
    return session.get("username")
