from flask import Blueprint, flash, redirect, render_template, url_for
from werkzeug.security import generate_password_hash

from .auth import admin_required, current_user
from .db import get_session
from .domain import daily_inventory
from .domain.activity import add_activity
from .forms import UserForm
from .models import CustomerTransaction, User

bp = Blueprint('admin', __name__, url_prefix='/admin')


@bp.route('/users')
@admin_required
def users():
    with get_session() as db:
        all_users = db.query(User).order_by(User.username.asc()).all()
    return render_template('admin/users.html', users=all_users, form=UserForm())


@bp.route('/users/add', methods=['POST'])
@admin_required
def add_user():
    form = UserForm()
    if not form.validate_on_submit():
        flash('Username and password are required')
        return redirect(url_for('admin.users'))
    username = form.username.data.strip()
    with get_session() as db:
        if db.query(User).filter_by(username=username).first():
            flash(f'User {username} already exists')
            return redirect(url_for('admin.users'))
        db.add(
            User(
                username=username,
                password=generate_password_hash(
                    form.password.data, method='pbkdf2:sha256', salt_length=16
                ),
                is_admin=bool(form.is_admin.data),
            )
        )
        add_activity(db, 'create', 'user', username, None, current_user())
    flash(f'User {username} added')
    return redirect(url_for('admin.users'))


@bp.route('/users/<int:user_id>/delete', methods=['POST'])
@admin_required
def delete_user(user_id):
    with get_session() as db:
        if db.query(User).count() <= 1:
            flash('The last user cannot be deleted')
            return redirect(url_for('admin.users'))
        user = db.get(User, user_id)
        if user is None:
            flash('User not found')
            return redirect(url_for('admin.users'))
        username = user.username
        db.delete(user)
        add_activity(db, 'delete', 'user', username, None, current_user())
    flash(f'User {username} deleted')
    return redirect(url_for('admin.users'))


def reset_statistics(user=None) -> int:
    """Delete every customer transaction and rebuild the stored days."""
    with get_session() as db:
        days = {d.date() for (d,) in db.query(CustomerTransaction.date).all()}
        count = db.query(CustomerTransaction).delete()
        add_activity(
            db, 'critical_delete', 'statistics', 'all', f'Deleted {count} transactions', user
        )
    daily_inventory.recalculate_days_safely(days)
    return count


@bp.route('/reset_statistics', methods=['POST'])
@admin_required
def reset_statistics_view():
    count = reset_statistics(current_user())
    flash(f'Statistics reset, {count} transactions deleted')
    return redirect(url_for('home'))
