"""
Tests for lending policy.

These tests verify:
1. Defaults and validation of policy values
2. Fallback to defaults for invalid stored values
3. The database-backed provider reading and writing sys_config
4. Hot reload: a change applies to the next operation
"""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from library_lending.database.schema import SystemConfig
from library_lending.policy import (
    POLICY_KEYS,
    DatabasePolicyProvider,
    LendingPolicy,
    StaticPolicyProvider,
    parse_policy,
)
from library_lending.services import LibraryServices


class TestLendingPolicy:
    """Test the policy snapshot model."""

    def test_defaults(self):
        policy = LendingPolicy()
        assert policy.max_borrow_count == 5
        assert policy.max_borrow_days == 30
        assert policy.max_renew_count == 1
        assert policy.max_reservation_count == 3
        assert policy.fine_rate_per_day == Decimal("0.50")
        assert policy.loan_period == timedelta(days=30)

    def test_snapshot_is_immutable(self):
        policy = LendingPolicy()
        with pytest.raises(ValidationError):
            policy.max_borrow_count = 10

    def test_zero_renewals_and_zero_rate_allowed(self):
        policy = LendingPolicy(max_renew_count=0, fine_rate_per_day="0")
        assert policy.max_renew_count == 0
        assert policy.fine_rate_per_day == 0

    def test_non_positive_limits_rejected(self):
        with pytest.raises(ValidationError):
            LendingPolicy(max_borrow_count=0)
        with pytest.raises(ValidationError):
            LendingPolicy(max_borrow_days=-1)


class TestParsePolicy:
    """Test building snapshots from stored strings."""

    def test_parses_strings(self):
        policy = parse_policy({"max_borrow_count": "2", "fine_rate_per_day": "1.25"})
        assert policy.max_borrow_count == 2
        assert policy.fine_rate_per_day == Decimal("1.25")
        assert policy.max_borrow_days == 30

    def test_invalid_values_fall_back_to_defaults(self, caplog):
        with caplog.at_level(logging.WARNING, logger="library_lending.policy"):
            policy = parse_policy({"max_borrow_count": "0", "max_borrow_days": "soon"})
        assert policy.max_borrow_count == 5
        assert policy.max_borrow_days == 30
        assert "Invalid policy value" in caplog.text

    def test_unknown_keys_ignored(self):
        assert parse_policy({"library_name": "Central"}) == LendingPolicy()


class TestStaticPolicyProvider:
    """Test the in-memory provider."""

    def test_update_replaces_only_given_values(self):
        provider = StaticPolicyProvider(max_borrow_count=2)
        provider.update(max_renew_count=3)
        snapshot = provider.snapshot()
        assert snapshot.max_borrow_count == 2
        assert snapshot.max_renew_count == 3

    def test_earlier_snapshot_unchanged_by_update(self):
        provider = StaticPolicyProvider()
        before = provider.snapshot()
        provider.update(max_borrow_days=14)
        assert before.max_borrow_days == 30
        assert provider.snapshot().max_borrow_days == 14

    def test_invalid_update_rejected(self):
        provider = StaticPolicyProvider()
        with pytest.raises(ValidationError):
            provider.update(max_borrow_count=0)
        assert provider.snapshot().max_borrow_count == 5


class TestDatabasePolicyProvider:
    """Test the sys_config-backed provider."""

    def test_missing_rows_use_defaults(self, db_manager):
        with db_manager.session_scope() as session:
            assert DatabasePolicyProvider().snapshot(session) == LendingPolicy()

    def test_requires_session(self):
        with pytest.raises(ValueError):
            DatabasePolicyProvider().snapshot()

    def test_store_and_read_back(self, db_manager):
        with db_manager.session_scope() as session:
            DatabasePolicyProvider.store(session, max_borrow_count=2, fine_rate_per_day="1.00")

        with db_manager.session_scope() as session:
            policy = DatabasePolicyProvider().snapshot(session)
            row = session.get(SystemConfig, "max_borrow_count")
            assert row.value == "2"
            assert row.description

        assert policy.max_borrow_count == 2
        assert policy.fine_rate_per_day == Decimal("1.00")

    def test_store_overwrites_existing(self, db_manager):
        with db_manager.session_scope() as session:
            DatabasePolicyProvider.store(session, max_borrow_days=30)
        with db_manager.session_scope() as session:
            DatabasePolicyProvider.store(session, max_borrow_days=7)
        with db_manager.session_scope() as session:
            assert DatabasePolicyProvider().snapshot(session).max_borrow_days == 7

    def test_store_rejects_unknown_keys(self, db_manager):
        with db_manager.session_scope() as session:
            with pytest.raises(ValueError, match="Unknown policy keys"):
                DatabasePolicyProvider.store(session, max_fines=3)

    def test_store_rejects_invalid_values(self, db_manager):
        with db_manager.session_scope() as session:
            with pytest.raises(ValidationError):
                DatabasePolicyProvider.store(session, max_borrow_count=0)

    def test_bad_stored_value_falls_back(self, db_manager):
        with db_manager.session_scope() as session:
            session.add(SystemConfig(key="max_borrow_days", value="-5"))

        with db_manager.session_scope() as session:
            assert DatabasePolicyProvider().snapshot(session).max_borrow_days == 30

    def test_every_policy_key_has_a_description(self):
        for key in POLICY_KEYS:
            assert LendingPolicy.model_fields[key].description


class TestHotReload:
    """Policy changes apply to the next operation."""

    def test_changed_loan_period_applies_to_next_borrow(
        self, services, policy, add_book, add_reader, clock
    ):
        add_reader("R1")
        first = services.lending.borrow_book("R1", add_book())
        assert first.due_date == clock.now + timedelta(days=30)

        policy.update(max_borrow_days=14)
        second = services.lending.borrow_book("R1", add_book())
        assert second.due_date == clock.now + timedelta(days=14)

    def test_database_policy_change_applies_to_next_borrow(
        self, db_manager, test_config, add_book, add_reader, clock
    ):
        services = LibraryServices(
            test_config, db=db_manager, policy_provider=DatabasePolicyProvider(), clock=clock
        )
        add_reader("R1")
        with db_manager.session_scope() as session:
            DatabasePolicyProvider.store(session, max_borrow_days=7)

        result = services.lending.borrow_book("R1", add_book())
        assert result.due_date == clock.now + timedelta(days=7)
