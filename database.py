import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings
from errors import FinanceError, StoreError, StoreTimeout

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

_TIMEOUT_MARKERS = ("timeout", "timed out", "database is locked")


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.store_timeout_secs
    else:
        engine_kwargs["pool_timeout"] = settings.store_timeout_secs
    from sqlalchemy import create_engine

    eng = create_engine(
        settings.database_url, connect_args=connect_args, **engine_kwargs
    )
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def translate_store_error(exc: SQLAlchemyError, operation: str) -> StoreError:
    if isinstance(exc, PoolTimeoutError):
        return StoreTimeout(f"Store timed out during {operation}")
    if isinstance(exc, OperationalError):
        text = str(exc.orig or exc).lower()
        if any(marker in text for marker in _TIMEOUT_MARKERS):
            return StoreTimeout(f"Store timed out during {operation}")
    return StoreError(f"Store failure during {operation}")


def store_operation(method: F) -> F:
    """Roll back on any failure of a service method.

    SQLAlchemy failures are re-raised as StoreError. Domain errors are re-raised
    unchanged, with any attributes the method already set discarded.
    """

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"store_error: operation={method.__qualname__}")
            raise translate_store_error(exc, method.__qualname__) from exc
        except FinanceError:
            self.session.rollback()
            raise

    return wrapper  # type: ignore[return-value]


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("store_error: operation=session_scope")
        raise translate_store_error(exc, "session_scope") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
