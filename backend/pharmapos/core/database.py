"""
Database Configuration
"""
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from typing import Callable, Generator, Optional, TypeVar
import logging
import random
import time

from pharmapos.core.config import settings
from pharmapos.core.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Get the properly formatted database URL
db_url = settings.database_url

# Create engine
engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if "sqlite" in db_url else {},
    echo=settings.DEBUG
)


def configure_sqlite(engine):
    """
    Let SQLAlchemy own BEGIN on pysqlite connections so SAVEPOINTs nest
    inside the outer transaction.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


if engine.dialect.name == "sqlite":
    configure_sqlite(engine)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base model
Base = declarative_base()

# Storage-level failures that indicate a concurrent writer won the race
RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures the session is closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from pharmapos.models import (  # noqa: F401
        Tenant, Branch, Customer, Product, TenantTaxPolicy,
        Sale, SaleLineItem, SalePayment, CreditAccount, CreditPayment
    )
    Base.metadata.create_all(bind=bind or engine)


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    name: str = "operation",
    attempts: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
) -> T:
    """
    Run ``operation`` and commit it as one unit.

    Storage conflicts (stale version, unique violation, lock failure) roll the
    session back and re-run the whole operation, so it must re-read whatever
    it mutates. Domain errors roll back and propagate on the first attempt.
    """
    attempts = attempts or settings.TX_RETRY_ATTEMPTS
    base_delay_ms = settings.TX_RETRY_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms

    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.rollback()
            if attempt >= attempts:
                logger.error(f"{name} failed after {attempts} attempts: {exc}")
                raise ConcurrencyConflict(name, attempts) from exc
            # Exponential backoff with jitter
            delay = (base_delay_ms / 1000.0) * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)
            logger.warning(
                f"{name} hit a storage conflict (attempt {attempt}/{attempts}), "
                f"retrying in {delay:.3f}s: {exc.__class__.__name__}"
            )
            time.sleep(delay)
        except Exception:
            db.rollback()
            raise
