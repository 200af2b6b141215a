"""
Configuration Provider for lending policy.

Policy is the small set of numbers that govern circulation: how many loans
a reader may hold, for how long, how often a loan may be renewed, how many
reservations a reader may queue, and the fine per overdue day. Staff may
change them while the service runs.

Each lending operation takes one ``LendingPolicy`` snapshot at its start and
uses it throughout, so a change made mid-operation applies to the next one.

Two providers:
- ``DatabasePolicyProvider`` reads the ``sys_config`` table inside the
  operation's own transaction
- ``StaticPolicyProvider`` holds values in memory; ``update()`` swaps them
  atomically (tests, embedded use)
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from .database.schema import SystemConfig
from .database.session import safe_query

logger = logging.getLogger(__name__)


class LendingPolicy(BaseModel):
    """An immutable snapshot of lending policy."""

    model_config = ConfigDict(frozen=True)

    max_borrow_count: int = Field(default=5, ge=1, description="Open loans allowed per reader")
    max_borrow_days: int = Field(default=30, ge=1, description="Loan period in days")
    max_renew_count: int = Field(default=1, ge=0, description="Renewals allowed per loan")
    max_reservation_count: int = Field(
        default=3, ge=1, description="Pending reservations allowed per reader"
    )
    fine_rate_per_day: Decimal = Field(
        default=Decimal("0.50"), ge=0, description="Fine per overdue day"
    )

    @property
    def loan_period(self) -> timedelta:
        return timedelta(days=self.max_borrow_days)


POLICY_KEYS = tuple(LendingPolicy.model_fields)

POLICY_DESCRIPTIONS = {
    name: field.description for name, field in LendingPolicy.model_fields.items()
}


def parse_policy(raw: dict[str, Any]) -> LendingPolicy:
    """
    Build a snapshot from raw key/value pairs.

    Unknown keys are ignored. A value that does not validate is replaced
    by its default and logged; one bad row must not stop circulation.
    """
    values: dict[str, Any] = {}
    for key in POLICY_KEYS:
        if key not in raw or raw[key] is None:
            continue
        try:
            LendingPolicy(**{key: raw[key]})
        except ValidationError:
            logger.warning(
                "Invalid policy value %s=%r, using default %s",
                key,
                raw[key],
                LendingPolicy.model_fields[key].default,
            )
            continue
        values[key] = raw[key]
    return LendingPolicy(**values)


class PolicyProvider(ABC):
    """Source of lending policy snapshots."""

    @abstractmethod
    def snapshot(self, session: Session | None = None) -> LendingPolicy:
        """
        Return the policy in force right now.

        Args:
            session: The operation's session, for providers backed by the store
        """


class StaticPolicyProvider(PolicyProvider):
    """In-memory policy; ``update()`` takes effect for the next operation."""

    def __init__(self, policy: LendingPolicy | None = None, **values: Any):
        self._lock = threading.Lock()
        self._policy = policy or LendingPolicy(**values)

    def snapshot(self, session: Session | None = None) -> LendingPolicy:  # noqa: ARG002
        with self._lock:
            return self._policy

    def update(self, **values: Any) -> LendingPolicy:
        """Replace some policy values; raises ValidationError on bad input."""
        with self._lock:
            self._policy = LendingPolicy(**{**self._policy.model_dump(), **values})
            logger.info("Lending policy updated: %s", values)
            return self._policy


class DatabasePolicyProvider(PolicyProvider):
    """
    Policy stored as rows of the ``sys_config`` table.

    Missing keys take their defaults. Reading happens inside the caller's
    transaction so the snapshot is consistent with the rows it governs.
    """

    def snapshot(self, session: Session | None = None) -> LendingPolicy:
        if session is None:
            raise ValueError("DatabasePolicyProvider needs the operation's session")

        rows = safe_query(
            session,
            lambda s: s.execute(
                select(SystemConfig.key, SystemConfig.value).where(
                    SystemConfig.key.in_(POLICY_KEYS)
                )
            ).all(),
            "Failed to read lending policy",
        )
        return parse_policy({key: value for key, value in rows})

    @staticmethod
    def store(session: Session, **values: Any) -> None:
        """
        Write policy values to ``sys_config`` (seeding, staff tooling).

        Values are validated first; the caller commits.
        """
        unknown = set(values) - set(POLICY_KEYS)
        if unknown:
            raise ValueError(f"Unknown policy keys: {sorted(unknown)}")
        LendingPolicy(**values)
        for key, value in values.items():
            row = session.get(SystemConfig, key)
            if row is None:
                session.add(
                    SystemConfig(key=key, value=str(value), description=POLICY_DESCRIPTIONS[key])
                )
            else:
                row.value = str(value)
        session.flush()
