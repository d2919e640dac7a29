"""Tests for the subscription record store."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import NOW
from kenflash.clock import as_utc
from kenflash.models.subscription import Subscription
from kenflash.services import subscription_store
from kenflash.services.plans import UnknownPlanError
from kenflash.services.subscription_store import (
    find_active_subscription,
    list_subscriptions,
    record_subscription,
)


class TestRecordSubscription:
    def test_inserts_active_row_with_plan_expiry(self, db_session):
        result = record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW)

        assert result.created is True
        row = result.subscription
        assert row.email == "e@x.com"
        assert row.plan == "1 Day Plan"
        assert row.status == "active"
        assert row.transaction_ref == "T1"
        assert as_utc(row.expiry_time) == NOW + timedelta(hours=24)

    def test_same_transaction_is_recorded_once(self, db_session):
        first = record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW)
        second = record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW + timedelta(minutes=5))

        assert second.created is False
        assert second.subscription.id == first.subscription.id
        assert db_session.query(Subscription).count() == 1
        # The original expiry is never recomputed
        assert as_utc(second.subscription.expiry_time) == NOW + timedelta(hours=24)

    def test_separate_purchases_by_same_email_are_additive(self, db_session):
        record_subscription(db_session, "e@x.com", "2 Hour Plan", "T1", NOW)
        record_subscription(db_session, "e@x.com", "2 Hour Plan", "T2", NOW)

        assert db_session.query(Subscription).filter(Subscription.email == "e@x.com").count() == 2

    def test_unknown_plan_inserts_nothing(self, db_session):
        with pytest.raises(UnknownPlanError):
            record_subscription(db_session, "e@x.com", "Forever Plan", "T1", NOW)
        assert db_session.query(Subscription).count() == 0

    def test_concurrent_insert_returns_winning_row(self, db_session, monkeypatch):
        winner_id = record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW).subscription.id
        real_lookup = subscription_store.get_by_transaction_ref
        calls = []

        def lookup(db, transaction_ref):
            # The first lookup runs before the other writer commits
            calls.append(transaction_ref)
            return None if len(calls) == 1 else real_lookup(db, transaction_ref)

        monkeypatch.setattr(subscription_store, "get_by_transaction_ref", lookup)
        result = record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW + timedelta(minutes=5))

        assert result.created is False
        assert result.subscription.id == winner_id
        assert as_utc(result.subscription.expiry_time) == NOW + timedelta(hours=24)
        assert db_session.query(Subscription).count() == 1

    def test_integrity_error_is_raised_when_no_row_can_be_found(self, db_session, monkeypatch):
        record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW)
        monkeypatch.setattr(subscription_store, "get_by_transaction_ref", lambda db, transaction_ref: None)

        with pytest.raises(IntegrityError):
            record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW)
        assert db_session.query(Subscription).count() == 1


class TestFindActiveSubscription:
    def test_no_rows(self, db_session):
        assert find_active_subscription(db_session, "nobody@x.com", NOW) is None

    def test_expired_rows_are_ignored(self, db_session):
        record_subscription(db_session, "e@x.com", "2 Hour Plan", "T1", NOW - timedelta(hours=3))
        assert find_active_subscription(db_session, "e@x.com", NOW) is None

    def test_picks_latest_expiry(self, db_session):
        record_subscription(db_session, "e@x.com", "2 Hour Plan", "T1", NOW)
        record_subscription(db_session, "e@x.com", "1 Day Plan", "T2", NOW - timedelta(hours=1))
        record_subscription(db_session, "other@x.com", "1 Day Plan", "T3", NOW)

        found = find_active_subscription(db_session, "e@x.com", NOW)
        assert found is not None
        assert found.transaction_ref == "T2"


def test_list_subscriptions_filters(db_session):
    record_subscription(db_session, "a@x.com", "2 Hour Plan", "T1", NOW - timedelta(days=1))
    record_subscription(db_session, "a@x.com", "1 Day Plan", "T2", NOW)
    record_subscription(db_session, "b@x.com", "1 Day Plan", "T3", NOW)

    assert len(list_subscriptions(db_session)) == 3
    assert [s.transaction_ref for s in list_subscriptions(db_session, email="a@x.com")] == ["T2", "T1"]
    active = list_subscriptions(db_session, active_only=True, now=NOW)
    assert {s.transaction_ref for s in active} == {"T2", "T3"}
