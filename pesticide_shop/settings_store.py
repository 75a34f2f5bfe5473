"""Settings kept in ``.env`` with overrides persisted in SQLite."""

from __future__ import annotations

import logging
import os
import sqlite3
from collections import OrderedDict
from pathlib import Path
from threading import RLock
from types import SimpleNamespace
from typing import Mapping, Optional

from . import settings_io

LOGGER = logging.getLogger(__name__)


class SettingsPersistenceError(RuntimeError):
    """Raised when settings cannot be written to the database."""


SCHEMA = """
CREATE TABLE IF NOT EXISTS app_settings (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT
)
"""

# Fallbacks for keys missing from both .env files.
DEFAULTS = {
    "SECRET_KEY": "change-me",
    "LOG_LEVEL": "INFO",
    "LOG_FILE": "",
    "FLASK_DEBUG": "0",
    "LOW_STOCK_THRESHOLD": "10",
    "INVOICES_PAGE_SIZE": "10",
    "ANNUAL_PAGE_SIZE": "10",
    "CURRENCY": "EGP",
    "SHOP_PHONES": "",
    "SHOP_WEBSITE": "",
    "WHATSAPP_API_URL": "",
    "WHATSAPP_API_TOKEN": "",
    "DEFAULT_ADMIN_PASSWORD": "admin123",
}


def _default_db_path() -> Path:
    return Path(os.path.join(os.path.dirname(__file__), "database.db"))


class SettingsStore:
    """Merge ``.env`` values with database overrides."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._values: "OrderedDict[str, str]" = OrderedDict()
        self._namespace: Optional[SimpleNamespace] = None
        self._db_path: Path = _default_db_path()
        self._loaded = False

    def _resolve_db_path(self, source: Mapping[str, str]) -> Path:
        db_path = source.get("DB_PATH") or os.environ.get("DB_PATH")
        if not db_path:
            return _default_db_path()
        return Path(db_path)

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return

            env_values = settings_io.load_settings(
                include_hidden=True,
                example_path=settings_io.EXAMPLE_PATH,
                env_path=settings_io.ENV_PATH,
            )
            db_path = self._resolve_db_path(env_values)
            values = OrderedDict(env_values)
            values.update(self._load_from_db(db_path))

            self._db_path = db_path
            self._values = OrderedDict(
                (key, "" if value is None else str(value))
                for key, value in values.items()
            )
            self._values.setdefault("DB_PATH", str(db_path))
            self._namespace = self._build_namespace(self._values)
            self._loaded = True

    def _load_from_db(self, db_path: Path) -> "OrderedDict[str, str]":
        data: "OrderedDict[str, str]" = OrderedDict()
        if not db_path.exists():
            return data
        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.Error as exc:
            LOGGER.warning("Failed to read settings from %s: %s", db_path, exc)
            return data
        try:
            rows = conn.execute(
                "SELECT key, value FROM app_settings ORDER BY key"
            ).fetchall()
        except sqlite3.OperationalError as exc:
            if "no such table" not in str(exc).lower():
                LOGGER.warning("Failed to query app_settings: %s", exc)
            return data
        finally:
            conn.close()
        for key, value in rows:
            data[key] = value if value is not None else ""
        return data

    def _persist_many(self, values: Mapping[str, str]) -> None:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path)
        except (OSError, sqlite3.Error) as exc:
            raise SettingsPersistenceError(
                "Failed to persist settings: the database is unavailable"
            ) from exc
        try:
            conn.execute(SCHEMA)
            conn.executemany(
                """
                INSERT INTO app_settings(key, value, updated_at)
                VALUES (?, ?, STRFTIME('%Y-%m-%d %H:%M:%f', 'now'))
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                [(key, "" if val is None else str(val)) for key, val in values.items()],
            )
            conn.commit()
        except sqlite3.Error as exc:
            LOGGER.exception("Failed to persist settings to database: %s", exc)
            raise SettingsPersistenceError(
                "Failed to persist settings to the database"
            ) from exc
        finally:
            conn.close()

    def _build_namespace(self, values: Mapping[str, str]) -> SimpleNamespace:
        processed = {}
        merged = dict(DEFAULTS)
        merged.update({k: v for k, v in values.items() if v is not None})
        for key, value in merged.items():
            if key.startswith("ENABLE_") or key.endswith("_ENABLED"):
                processed[key] = (value or "0") == "1"
            elif key.endswith(("_THRESHOLD", "_PORT", "_SIZE")):
                try:
                    processed[key] = int(value)
                except (TypeError, ValueError):
                    processed[key] = value
            else:
                processed[key] = value
        return SimpleNamespace(**processed)

    @property
    def settings(self) -> SimpleNamespace:
        self._ensure_loaded()
        assert self._namespace is not None
        return self._namespace

    def as_ordered_dict(
        self,
        *,
        include_hidden: bool = False,
        logger=None,
        on_error=None,
    ) -> "OrderedDict[str, str]":
        self._ensure_loaded()
        ordered = settings_io.load_settings(
            include_hidden=include_hidden,
            logger=logger,
            on_error=on_error,
            example_path=settings_io.EXAMPLE_PATH,
            env_path=settings_io.ENV_PATH,
        )
        result: "OrderedDict[str, str]" = OrderedDict()
        for key in ordered.keys():
            result[key] = self._values.get(key, ordered[key])
        for key, value in self._values.items():
            if key in result:
                continue
            if include_hidden or key not in settings_io.HIDDEN_KEYS:
                result[key] = value
        return result

    def update(self, values: Mapping[str, str]) -> None:
        self._ensure_loaded()
        with self._lock:
            changed: "OrderedDict[str, str]" = OrderedDict()
            for key, value in values.items():
                str_value = "" if value is None else str(value)
                if self._values.get(key) != str_value:
                    changed[key] = str_value
            if not changed:
                return
            self._persist_many(changed)
            self._values.update(changed)
            self._namespace = self._build_namespace(self._values)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        self._ensure_loaded()
        return self._values.get(key, default)

    def reload(self) -> None:
        """Force a reload from the ``.env`` files and the database."""
        with self._lock:
            self._loaded = False
        self._ensure_loaded()


settings_store = SettingsStore()

__all__ = ["settings_store", "SettingsStore", "SettingsPersistenceError", "DEFAULTS"]
