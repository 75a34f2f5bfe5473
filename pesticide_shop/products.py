from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)
import pandas as pd

from .auth import current_user, login_required
from .domain import catalog, exports
from .domain.activity import log_activity
from .errors import ShopError
from .forms import CategoryForm, ProductForm

bp = Blueprint('products', __name__)


def _category_choices():
    return [(c.id, c.name) for c in catalog.list_categories()]


@bp.route('/products')
@login_required
def items():
    products = catalog.list_products()
    category_id = request.args.get('category', type=int)
    if category_id:
        products = [p for p in products if p.category_id == category_id]
    return render_template(
        'products/list.html',
        products=products,
        categories=catalog.list_categories(),
        selected_category=category_id,
    )


@bp.route('/products/<int:product_id>')
@login_required
def product_details(product_id):
    product = catalog.get_product(product_id)
    if product is None:
        abort(404)
    return render_template('products/details.html', product=product)


@bp.route('/products/add', methods=['GET', 'POST'])
@login_required
def add_item():
    form = ProductForm()
    form.category_id.choices = _category_choices()
    if form.validate_on_submit():
        try:
            product = catalog.create_product(
                name=form.name.data,
                category_id=form.category_id.data,
                price=form.price.data,
                quantity=form.quantity.data or 0,
                carton_price=form.carton_price.data,
                color=form.color.data or '',
                size=form.size.data or None,
                qr_code=form.qr_code.data or '',
                notes=form.notes.data or None,
            )
        except ShopError as e:
            flash(f'Error while adding the product: {e}')
            return render_template('products/form.html', form=form, product=None)
        log_activity('create', 'product', product.name, f'Stock {product.quantity}', current_user())
        catalog.refresh_low_stock_gauge()
        flash('Product added')
        return redirect(url_for('products.items'))
    return render_template('products/form.html', form=form, product=None)


@bp.route('/products/<int:product_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_item(product_id):
    product = catalog.get_product(product_id)
    if product is None:
        flash('Product not found')
        abort(404)
    form = ProductForm(obj=product)
    form.category_id.choices = _category_choices()
    if form.validate_on_submit():
        try:
            catalog.update_product(
                product_id,
                name=form.name.data,
                category_id=form.category_id.data,
                price=form.price.data,
                quantity=form.quantity.data or 0,
                carton_price=form.carton_price.data,
                color=form.color.data or '',
                size=form.size.data or '',
                qr_code=form.qr_code.data or '',
                notes=form.notes.data or '',
            )
        except ShopError as e:
            flash(f'Error while updating the product: {e}')
            return render_template('products/form.html', form=form, product=product)
        log_activity('update', 'product', form.name.data, None, current_user())
        catalog.refresh_low_stock_gauge()
        flash('Product updated')
        return redirect(url_for('products.items'))
    return render_template('products/form.html', form=form, product=product)


@bp.route('/products/<int:product_id>/delete', methods=['POST'])
@login_required
def delete_item(product_id):
    try:
        result = catalog.delete_product(product_id)
    except ShopError as e:
        flash(f'Error while deleting the product: {e}')
        return redirect(url_for('products.items'))
    log_activity(
        'delete',
        'product',
        result['name'],
        f"Removed with {result['transactions']} transactions",
        current_user(),
    )
    catalog.refresh_low_stock_gauge()
    flash(f"Product {result['name']} deleted")
    return redirect(url_for('products.items'))


@bp.route('/products/<int:product_id>/quantity')
@login_required
def product_quantity(product_id):
    try:
        return jsonify(catalog.get_quantity(product_id))
    except ShopError as e:
        return jsonify(e.to_json()), e.status_code


@bp.route('/products/recalculate_costs', methods=['POST'])
@login_required
def recalculate_costs():
    count = catalog.recalculate_cost_prices()
    log_activity('recalculate', 'product', None, f'Cost prices of {count} products', current_user())
    flash(f'Cost prices recalculated for {count} products')
    return redirect(url_for('products.items'))


@bp.route('/products/export')
@login_required
def export_products():
    return send_file(
        exports.products_workbook(),
        mimetype=exports.XLSX_MIMETYPE,
        as_attachment=True,
        download_name='products_export.xlsx',
    )


@bp.route('/products/import', methods=['GET', 'POST'])
@login_required
def import_products():
    if request.method == 'POST':
        file = request.files.get('file')
        if not file or not file.filename:
            flash('Choose an Excel file to import')
            return redirect(url_for('products.import_products'))
        try:
            df = pd.read_excel(file)
            result = catalog.import_from_dataframe(df)
        except (ShopError, ValueError, KeyError) as e:
            current_app.logger.warning('Product import failed: %s', e)
            flash(f'Error while importing products: {e}')
            return redirect(url_for('products.import_products'))
        log_activity(
            'import',
            'product',
            file.filename,
            f"{result['created']} created, {result['updated']} updated",
            current_user(),
        )
        catalog.refresh_low_stock_gauge()
        flash(f"Imported: {result['created']} new, {result['updated']} updated")
        return redirect(url_for('products.items'))
    return render_template('products/import.html')


@bp.route('/categories')
@login_required
def categories():
    return render_template(
        'categories/list.html',
        categories=catalog.list_categories(),
        counts=catalog.category_counts(),
        form=CategoryForm(),
    )


@bp.route('/categories/add', methods=['POST'])
@login_required
def add_category():
    form = CategoryForm()
    if not form.validate_on_submit():
        flash('Category name is required')
        return redirect(url_for('products.categories'))
    try:
        category = catalog.create_category(
            form.name.data, form.description.data or '', bool(form.is_active.data)
        )
    except ShopError as e:
        flash(str(e))
        return redirect(url_for('products.categories'))
    log_activity('create', 'category', category.name, None, current_user())
    flash('Category added')
    return redirect(url_for('products.categories'))


@bp.route('/categories/<int:category_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_category(category_id):
    category = catalog.get_category(category_id)
    if category is None:
        abort(404)
    form = CategoryForm(obj=category)
    if form.validate_on_submit():
        try:
            catalog.update_category(
                category_id, form.name.data, form.description.data or '', bool(form.is_active.data)
            )
        except ShopError as e:
            flash(str(e))
            return redirect(url_for('products.categories'))
        log_activity('update', 'category', form.name.data, None, current_user())
        flash('Category updated')
        return redirect(url_for('products.categories'))
    return render_template('categories/form.html', form=form, category=category)


@bp.route('/categories/<int:category_id>/delete', methods=['POST'])
@login_required
def delete_category(category_id):
    try:
        name = catalog.delete_category(category_id)
    except ShopError as e:
        flash(str(e))
        return redirect(url_for('products.categories'))
    log_activity('delete', 'category', name, None, current_user())
    flash(f'Category {name} deleted')
    return redirect(url_for('products.categories'))


@bp.route('/api/categories')
@login_required
def categories_json():
    return jsonify(
        [
            {'id': c.id, 'name': c.name, 'description': c.description}
            for c in catalog.list_categories(active_only=True)
        ]
    )
