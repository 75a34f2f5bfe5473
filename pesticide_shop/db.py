from contextlib import contextmanager
import logging
import sqlite3
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from werkzeug.security import generate_password_hash

from .models import Base, User
from .config import settings

TWOPLACES = Decimal("0.01")

logger = logging.getLogger(__name__)


def to_decimal(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    if isinstance(value, str):
        value = value.replace(" ", "").replace(",", "")
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


engine = None
SessionLocal = None


SQLITE_CONNECT_ARGS = {"check_same_thread": False, "timeout": 5}
SQLITE_JOURNAL_MODE = "WAL"
SQLITE_BUSY_TIMEOUT_MS = 30000


def _configure_sqlite_connection(dbapi_connection):
    """Apply common SQLite PRAGMA settings to the given connection."""

    cursor = dbapi_connection.cursor()
    try:
        try:
            cursor.execute(f"PRAGMA journal_mode={SQLITE_JOURNAL_MODE}")
        except sqlite3.OperationalError as exc:
            logger.warning(
                "Unable to set SQLite journal_mode to %s; continuing without WAL mode: %s",
                SQLITE_JOURNAL_MODE,
                exc,
            )
        else:
            cursor.fetchone()

        try:
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        except sqlite3.OperationalError as exc:
            logger.warning(
                "Unable to set SQLite busy_timeout; continuing with default timeout: %s",
                exc,
            )

        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        except sqlite3.OperationalError as exc:
            logger.warning(
                "Unable to enable SQLite foreign_keys; continuing without enforcement: %s",
                exc,
            )
    finally:
        cursor.close()


def sqlite_connect(db_path=None, *, apply_pragmas=True, **kwargs):
    """Return a SQLite connection with standard settings applied."""

    if db_path is None:
        if engine is None:
            raise RuntimeError(
                "Database not configured. Call configure_engine() first."
            )
        db_path = engine.url.database

    params = {**SQLITE_CONNECT_ARGS, **kwargs}
    conn = sqlite3.connect(str(db_path), **params)
    if apply_pragmas:
        _configure_sqlite_connection(conn)
    return conn


def configure_engine(db_path):
    """Create SQLAlchemy engine and session factory for ``db_path``."""
    global engine, SessionLocal
    engine = create_engine(
        f"sqlite:///{db_path}",
        future=True,
        connect_args=SQLITE_CONNECT_ARGS,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _record):  # pragma: no cover - SQLAlchemy hook
        _configure_sqlite_connection(dbapi_connection)

    SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,  # keep returned objects usable after commit
    )


@contextmanager
def get_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception("Database session error: %s", e)
        raise
    finally:
        session.close()


def init_db():
    """Create any missing tables."""
    Base.metadata.create_all(engine)


def reset_db():
    """Drop all tables and recreate them.

    Used by tests that need a clean schema without the migration history."""
    Base.metadata.drop_all(engine)
    with sqlite_connect() as conn:
        conn.execute("DROP TABLE IF EXISTS alembic_version")
        conn.commit()
    Base.metadata.create_all(engine)


def create_default_user_if_needed(app):
    """Ensure the default admin account exists."""
    with app.app_context():
        with get_session() as session:
            user = session.query(User).filter_by(username="admin").first()
            if not user:
                password = settings.DEFAULT_ADMIN_PASSWORD or "admin123"
                hashed_password = generate_password_hash(
                    password, method="pbkdf2:sha256", salt_length=16
                )
                session.add(User(username="admin", password=hashed_password, is_admin=True))
                logger.info("Created default admin account")
