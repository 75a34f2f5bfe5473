import logging

from pesticide_shop.logging_setup import configure_logging, read_log_tail
from pesticide_shop.settings_store import settings_store


def test_configure_logging_applies_level(app):
    assert logging.getLogger().level == logging.DEBUG

    settings_store.update({"LOG_LEVEL": "WARNING"})
    configure_logging()

    assert logging.getLogger().level == logging.WARNING


def test_log_file_receives_records(app):
    logging.getLogger("pesticide_shop.tests").warning("stock check done")
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = read_log_tail(50)
    assert any("stock check done" in line for line in lines)


def test_file_handler_is_not_duplicated(app):
    configure_logging()
    configure_logging()

    file_handlers = [
        h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
    ]
    assert len(file_handlers) == 1


def test_logs_page(client, login):
    logging.getLogger("pesticide_shop.tests").info("visible in the logs page")

    resp = client.get("/logs")

    assert resp.status_code == 200
