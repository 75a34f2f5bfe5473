import pytest
from pesticide_shop.factory import create_app
from pesticide_shop.db import reset_db
from pesticide_shop.settings_store import settings_store
from collections import OrderedDict

@pytest.fixture
def app(tmp_path, monkeypatch):
    """Create and configure a new app instance for each test."""
    # Use an isolated temporary database per test to avoid leaking state
    db_path = tmp_path / "test.db"
    log_path = tmp_path / "test.log"

    # Settings should be strings, just like when loaded from a .env file
    test_settings = OrderedDict([
        ("DB_PATH", str(db_path)),
        ("LOG_FILE", str(log_path)),
        ("LOG_LEVEL", "DEBUG"),
        ("SECRET_KEY", "test-secret-key"),
        ("FLASK_DEBUG", "0"),
        ("LOW_STOCK_THRESHOLD", "5"),
        ("INVOICES_PAGE_SIZE", "10"),
        ("ANNUAL_PAGE_SIZE", "10"),
        ("CURRENCY", "EGP"),
        ("SHOP_PHONES", "01000000000"),
        ("SHOP_WEBSITE", "https://shop.example.com"),
        ("WHATSAPP_API_URL", ""),
        ("WHATSAPP_API_TOKEN", ""),
        ("DEFAULT_ADMIN_PASSWORD", "admin-test"),
    ])

    # 1. Prevent reading from .env files by patching the loader
    from pesticide_shop import settings_io

    def _fake_load_settings(*, include_hidden=False, example_path=settings_io.EXAMPLE_PATH, env_path=settings_io.ENV_PATH, logger=None, on_error=None):
        values = OrderedDict(test_settings)
        if not example_path.exists():
            if on_error:
                on_error(f"Settings template missing: {example_path}")

        if not include_hidden:
            for hidden in settings_io.HIDDEN_KEYS:
                values.pop(hidden, None)
        return values

    monkeypatch.setattr('pesticide_shop.settings_io.load_settings', _fake_load_settings)
    # Skip creating a default user during app factory
    monkeypatch.setattr('pesticide_shop.factory.create_default_user_if_needed', lambda *args, **kwargs: None)

    # 2. Reset the internal state of the global settings_store singleton for test isolation
    monkeypatch.setattr(settings_store, '_loaded', False)
    monkeypatch.setattr(settings_store, '_values', OrderedDict())
    monkeypatch.setattr(settings_store, '_namespace', None)

    # 3. Create the app. This will trigger the settings to be loaded via our patch.
    app = create_app({
        'TESTING': True,
        'WTF_CSRF_ENABLED': False,
        'SERVER_NAME': 'localhost',
    })

    # 4. Ensure the test database schema is freshly created for each test
    with app.app_context():
        reset_db()
        yield app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()

@pytest.fixture
def login(client, app):
    """Log in a test user."""
    with app.app_context():
        with client.session_transaction() as sess:
            sess["username"] = "tester"
    yield

@pytest.fixture
def admin_login(client, app):
    """Log in a test user with administrator rights."""
    with app.app_context():
        with client.session_transaction() as sess:
            sess["username"] = "tester"
            sess["is_admin"] = True
    yield


@pytest.fixture
def category(app):
    from pesticide_shop.domain import catalog

    return catalog.create_category("Insecticides", "Sprays and powders")


@pytest.fixture
def product(app, category):
    """A product with 20 units at 100, carton price 60."""
    from pesticide_shop.domain import catalog

    return catalog.create_product(
        "Bug Spray", category.id, "100", quantity=20, carton_price="60"
    )


@pytest.fixture
def other_product(app, category):
    from pesticide_shop.domain import catalog

    return catalog.create_product(
        "Ant Powder", category.id, "150", quantity=10, carton_price="90"
    )


@pytest.fixture
def customer(app):
    from pesticide_shop.domain import customers

    return customers.create_customer(name="Ahmed Ali", phone_number="01012345678")


@pytest.fixture
def sale(app, customer, product):
    """A cashier sale of 3 units of ``product`` paid 200 of 300."""
    from pesticide_shop.domain import cashier

    request = cashier.TransactionRequest.from_dict(
        {
            "customer_id": customer.id,
            "amount_paid": "200",
            "cashier_name": "tester",
            "items": [{"product_id": product.id, "quantity": 3, "price": "100"}],
        }
    )
    return cashier.process_transaction(request)
