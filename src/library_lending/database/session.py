"""
Database session management for the library lending service.

Connection handling and transactional scopes for SQLAlchemy:

1. Thread Safety: the engine serves concurrent requests, one session each
2. Transaction Management: every lending operation is one atomic unit
3. Connection Pooling: one pooled engine per process, disposed on shutdown
4. Error Translation: storage errors become retryable lending errors

Sessions are short-lived. Use ``session_scope()`` so the commit/rollback
decision is structural rather than remembered at each call site.
"""

import logging
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import ConcurrentModification, LendingError, StoreUnavailable
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """
    Owns the SQLAlchemy engine and session factory for one process.

    Created at startup, passed to the lending engine, and closed on
    shutdown. Nothing in the engine reaches for a global database handle.
    """

    def __init__(self, database_url: str | None = None, busy_timeout: float = 5.0):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured URL.
            busy_timeout: Seconds SQLite waits on a locked database file
        """
        if database_url is None:
            config = get_config()
            database_url = config.get_database_url()
            if database_url.startswith("sqlite:///") and not config.database_url:
                config.database_path.parent.mkdir(exist_ok=True, parents=True)
            logger.info("Using database at: %s", database_url)

        self.database_url = database_url
        self.busy_timeout = busy_timeout
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_memory_database(self) -> bool:
        return self.database_url in ("sqlite://", "sqlite:///:memory:")

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        - In-memory SQLite: a single shared connection (StaticPool), or the
          tables would vanish between sessions
        - File SQLite: pooled connections usable from worker threads, with a
          busy timeout so concurrent writers queue instead of failing
        - Other databases: a sized pool with pre-ping
        """
        if self._engine is None:
            if self.is_memory_database:
                self._engine = create_engine(
                    self.database_url,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                    echo=False,
                )
            elif self.database_url.startswith("sqlite"):
                self._engine = create_engine(
                    self.database_url,
                    connect_args={"check_same_thread": False, "timeout": self.busy_timeout},
                    echo=False,
                )
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            if self.database_url.startswith("sqlite"):

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                # Results are converted to pydantic models before the session closes
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session; the caller must close it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            book = session.get(Book, book_id)
        # committed here, or rolled back if the block raised
        ```

        Yields:
            Database session

        Raises:
            Lending errors raised inside the block propagate unchanged;
            storage errors are translated by ``translate_store_errors``.
        """
        session = self.create_session()
        try:
            with translate_store_errors():
                yield session
                session.commit()
            logger.debug("Database transaction committed")
        except LendingError:
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Health check: True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose the engine; called when the service shuts down."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """
    Map SQLAlchemy failures onto the lending error taxonomy.

    - StaleDataError (optimistic version check lost) -> ConcurrentModification
    - IntegrityError (unique/check constraint raced) -> ConcurrentModification
    - OperationalError / DBAPIError (locked, disconnected) -> StoreUnavailable

    The original exception is chained for logs; its text is not exposed.
    """
    try:
        yield
    except StaleDataError as e:
        logger.warning("Optimistic lock check failed: %s", e)
        raise ConcurrentModification() from e
    except IntegrityError as e:
        logger.warning("Integrity error during commit: %s", e.orig)
        raise ConcurrentModification() from e
    except (OperationalError, DBAPIError) as e:
        logger.warning("Store unavailable: %s", e)
        raise StoreUnavailable() from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a read with storage errors translated.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Context for the log line

    Returns:
        Query result

    Raises:
        StoreUnavailable / ConcurrentModification: if the query fails
    """
    try:
        with translate_store_errors():
            return query_func(session)
    except LendingError:
        logger.warning("%s", error_msg)
        raise
