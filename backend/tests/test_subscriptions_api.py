"""Tests for the subscription lookup and admin review endpoints."""
from datetime import timedelta

from conftest import NOW
from kenflash.services.subscription_store import record_subscription


class TestActiveSubscriptionLookup:
    def test_no_rows(self, client, clock):
        response = client.get("/subscriptions/active", params={"email": "e@x.com"})

        assert response.status_code == 200
        assert response.json() == {"email": "e@x.com", "active": False, "subscription": None}

    def test_active_row(self, client, clock, db_session):
        record_subscription(db_session, "e@x.com", "1 Day Plan", "T1", NOW - timedelta(hours=1))

        body = client.get("/subscriptions/active", params={"email": "e@x.com"}).json()

        assert body["active"] is True
        assert body["subscription"]["transaction_ref"] == "T1"
        assert body["subscription"]["expiry_time"] == (NOW + timedelta(hours=23)).isoformat()

    def test_only_expired_rows(self, client, clock, db_session):
        record_subscription(db_session, "e@x.com", "2 Hour Plan", "T1", NOW - timedelta(hours=2))

        body = client.get("/subscriptions/active", params={"email": "e@x.com"}).json()
        assert body["active"] is False

    def test_email_is_required(self, client):
        assert client.get("/subscriptions/active").status_code == 422


class TestAdminSubscriptions:
    def test_requires_admin_key(self, client):
        assert client.get("/v1/admin/subscriptions").status_code == 404
        response = client.get("/v1/admin/subscriptions", headers={"X-Platform-Admin-Key": "wrong"})
        assert response.status_code == 404

    def test_disabled_without_configured_key(self, client, monkeypatch, admin_key_header):
        monkeypatch.delenv("PLATFORM_ADMIN_KEY")
        assert client.get("/v1/admin/subscriptions", headers=admin_key_header).status_code == 404

    def test_lists_newest_first(self, client, clock, db_session, admin_key_header):
        record_subscription(db_session, "a@x.com", "2 Hour Plan", "T1", NOW - timedelta(days=2))
        record_subscription(db_session, "b@x.com", "1 Day Plan", "T2", NOW)

        response = client.get("/v1/admin/subscriptions", headers=admin_key_header)

        assert response.status_code == 200
        assert [row["transaction_ref"] for row in response.json()] == ["T2", "T1"]

    def test_active_only_filter(self, client, clock, db_session, admin_key_header):
        record_subscription(db_session, "a@x.com", "2 Hour Plan", "T1", NOW - timedelta(days=2))
        record_subscription(db_session, "a@x.com", "1 Day Plan", "T2", NOW)

        response = client.get(
            "/v1/admin/subscriptions",
            params={"email": "a@x.com", "active_only": "true"},
            headers=admin_key_header,
        )
        assert [row["transaction_ref"] for row in response.json()] == ["T2"]
