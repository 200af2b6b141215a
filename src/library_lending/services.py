"""
Service wiring for the library lending engine.

``LibraryServices`` builds every collaborator once from a ``ServerConfig``
and hands them to each other explicitly; there is no module-level database
handle. The server creates one at startup and closes it on shutdown.
"""

import logging
from datetime import datetime

from .config import ServerConfig
from .credit import CreditLedger
from .database.session import DatabaseManager
from .lending import LendingEngine
from .locking import LockRegistry
from .policy import DatabasePolicyProvider, PolicyProvider, StaticPolicyProvider
from .reservations import ReservationManager
from .unit_of_work import Clock, UnitOfWork

logger = logging.getLogger(__name__)


class LibraryServices:
    """
    The lending engine and its collaborators, wired together.

    Args:
        config: Server configuration
        db: Database manager (built from ``config`` if omitted)
        policy_provider: Policy source (chosen by ``config.policy_source`` if omitted)
        clock: Source of the current time
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        db: DatabaseManager | None = None,
        policy_provider: PolicyProvider | None = None,
        clock: Clock = datetime.now,
    ):
        self.config = config
        if db is None:
            if not config.database_url:
                config.database_path.parent.mkdir(parents=True, exist_ok=True)
            db = DatabaseManager(config.get_database_url(), busy_timeout=config.lock_timeout_seconds)
        self.db = db
        self.policy_provider = policy_provider or _default_policy_provider(config)
        self.locks = LockRegistry(timeout=config.lock_timeout_seconds)
        self.uow = UnitOfWork(self.db, self.policy_provider, self.locks, clock)

        self.credit = CreditLedger(self.uow)
        self.lending = LendingEngine(self.uow, self.credit)
        self.reservations = ReservationManager(self.uow, self.lending, self.credit)

        logger.info(
            "Lending services ready (database=%s, policy=%s)",
            self.db.database_url,
            type(self.policy_provider).__name__,
        )

    def init_database(self, drop_existing: bool = False) -> None:
        self.db.init_database(drop_existing=drop_existing)

    def close(self) -> None:
        """Release the database engine; called once at process shutdown."""
        self.db.close()
        logger.info("Lending services closed")

    def __enter__(self) -> "LibraryServices":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _default_policy_provider(config: ServerConfig) -> PolicyProvider:
    if config.policy_source == "static":
        return StaticPolicyProvider()
    return DatabasePolicyProvider()
