import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text

from .errors import ConstraintViolation, StorageUnavailable
from .settings import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))


def create_db_and_tables() -> None:
    # Import registers every table on SQLModel.metadata
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def check_db_connection() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@contextmanager
def storage_guard(session: Session, action: str) -> Iterator[None]:
    """
    Roll back and translate database errors raised while `action` runs.

    Connection-level failures become StorageUnavailable (safe to retry, the
    transaction was rolled back); anything else the database rejects becomes
    ConstraintViolation.
    """
    try:
        yield
    except IntegrityError as e:
        session.rollback()
        logger.error(f"Constraint violation while {action}: {e.orig}", exc_info=True)
        raise ConstraintViolation(f"Failed while {action}") from e
    except (OperationalError, InterfaceError) as e:
        session.rollback()
        logger.error(f"Storage unavailable while {action}: {e.orig}", exc_info=True)
        raise StorageUnavailable(f"Storage temporarily unavailable while {action}, please retry") from e
    except DBAPIError as e:
        session.rollback()
        logger.error(f"Database error while {action}: {e.orig}", exc_info=True)
        if e.connection_invalidated:
            raise StorageUnavailable(f"Storage temporarily unavailable while {action}, please retry") from e
        raise ConstraintViolation(f"Failed while {action}") from e
