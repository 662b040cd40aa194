"""HTTP-level tests with the PostgREST layer replaced by an in-memory fake."""
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from compliancekit.auth import create_token, hash_password

SITE_ORIGIN = "https://shop.example.com"
EMBED = "emb_abc123"


@pytest.fixture
def website(fake_db):
    fake_db.rows("users").append({
        "id": "user-1",
        "email": "owner@example.com",
        "name": "Owner",
        "password_hash": hash_password("Correct1pass"),
    })
    row = {
        "id": "site-1",
        "user_id": "user-1",
        "embed_code": EMBED,
        "url": SITE_ORIGIN + "/",
        "name": "Shop",
        "company_name": "Shop Ltd",
        "company_email": "hello@shop.example.com",
        "dpo_name": None,
        "dpo_email": None,
    }
    fake_db.rows("websites").append(row)
    return row


@pytest.fixture
def owner_headers():
    token = create_token(sub="owner@example.com", extra={"user_id": "user-1", "role": "user"})
    return {"Authorization": f"Bearer {token}"}


def _consent(client, visitor="v1", ip="203.0.113.5"):
    return client.post(
        f"/api/widget/{EMBED}/consent",
        json={"visitor_id": visitor, "preferences": {"analytics": True, "marketing": False}},
        headers={"Origin": SITE_ORIGIN, "X-Forwarded-For": ip},
    )


class TestHealth:
    def test_health_has_request_id_and_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.headers["x-request-id"]
        assert resp.headers["x-content-type-options"] == "nosniff"


class TestWidget:
    def test_config_defaults(self, client, website):
        resp = client.get(f"/api/widget/{EMBED}/config", headers={"Origin": SITE_ORIGIN})
        assert resp.status_code == 200
        assert resp.json()["config"]["theme"] == "light"
        assert resp.headers["access-control-allow-origin"] == SITE_ORIGIN

    def test_unknown_embed_code(self, client, website):
        resp = client.get("/api/widget/nope/config", headers={"Origin": SITE_ORIGIN})
        assert resp.status_code == 404
        assert resp.headers["access-control-allow-origin"] != SITE_ORIGIN

    def test_preflight_echoes_registered_origin(self, client, website):
        resp = client.options(
            f"/api/widget/{EMBED}/consent",
            headers={"Origin": SITE_ORIGIN, "Access-Control-Request-Method": "POST"},
        )
        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == SITE_ORIGIN
        assert "POST" in resp.headers["access-control-allow-methods"]

    def test_consent_upsert(self, client, fake_db, website):
        assert _consent(client).status_code == 200
        assert _consent(client).status_code == 200
        consents = fake_db.rows("consents")
        assert len(consents) == 1
        assert consents[0]["ip_address"] == "203.0.113.5"

    def test_consent_requires_fields(self, client, website):
        resp = client.post(f"/api/widget/{EMBED}/consent", json={"visitor_id": "v1"})
        assert resp.status_code == 422

    def test_public_form_limit(self, client, website):
        statuses = [_consent(client, visitor=f"v{i}").status_code for i in range(11)]
        assert statuses[5] == 200
        assert statuses[:10] == [200] * 10
        assert statuses[10] == 429

    def test_rejection_carries_retry_after(self, client, website):
        for i in range(10):
            _consent(client, visitor=f"v{i}")
        resp = _consent(client, visitor="v10")
        assert resp.status_code == 429
        assert int(resp.headers["retry-after"]) > 0
        assert resp.headers["x-ratelimit-limit"] == "10"
        assert resp.headers["x-ratelimit-remaining"] == "0"
        assert resp.json()["retry_after"] == int(resp.headers["retry-after"])

    def test_limit_is_per_client(self, client, website):
        for i in range(10):
            _consent(client, visitor=f"v{i}", ip="198.51.100.1")
        assert _consent(client, ip="198.51.100.1").status_code == 429
        assert _consent(client, ip="198.51.100.2").status_code == 200

    def test_window_reset(self, client, clock, website):
        for i in range(11):
            _consent(client, visitor=f"v{i}")
        clock.advance(300)
        assert _consent(client).status_code == 200


class TestPublicDsar:
    def _submit(self, client, **overrides):
        body = {
            "request_type": "access",
            "requester_email": "Subject@Example.com",
            "description": "Please send me all data you hold about me.",
            **overrides,
        }
        return client.post(f"/api/dsar/{EMBED}", json=body, headers={"Origin": SITE_ORIGIN})

    def test_form_config(self, client, website):
        resp = client.get(f"/api/dsar/{EMBED}", headers={"Origin": SITE_ORIGIN})
        body = resp.json()
        assert body["contact_email"] == "hello@shop.example.com"
        assert [t["value"] for t in body["request_types"]] == [
            "access", "erasure", "rectification", "portability", "restriction", "objection",
        ]
        assert body["request_types"][0]["label"] == "Right of Access"
        assert resp.headers["access-control-allow-origin"] == SITE_ORIGIN

    def test_submit_sets_due_date_and_activity(self, client, fake_db, website):
        resp = self._submit(client)
        assert resp.status_code == 200
        dsar = fake_db.rows("data_subject_requests")[0]
        assert dsar["requester_email"] == "subject@example.com"
        assert dsar["status"] == "pending"
        created = datetime.fromisoformat(dsar["created_at"])
        assert datetime.fromisoformat(dsar["due_date"]) - created == timedelta(days=30)
        assert fake_db.rows("dsar_activities")[0]["action"] == "created"

    def test_submit_rejects_unknown_type(self, client, website):
        assert self._submit(client, request_type="delete_everything").status_code == 422

    def test_verify_flow(self, client, fake_db, website):
        self._submit(client)
        token = fake_db.rows("data_subject_requests")[0]["verification_token"]

        resp = client.get(f"/api/dsar/{EMBED}/verify", params={"token": token})
        assert resp.status_code == 200
        assert fake_db.rows("data_subject_requests")[0]["status"] == "verified"

        again = client.get(f"/api/dsar/{EMBED}/verify", params={"token": token})
        assert again.json()["already_verified"] is True

    def test_verify_answers_the_registered_origin(self, client, fake_db, website):
        self._submit(client)
        token = fake_db.rows("data_subject_requests")[0]["verification_token"]
        resp = client.get(f"/api/dsar/{EMBED}/verify", params={"token": token}, headers={"Origin": SITE_ORIGIN})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == SITE_ORIGIN

    def test_verify_token_is_scoped_to_its_website(self, client, fake_db, website, caplog):
        fake_db.rows("websites").append({
            "id": "site-2", "user_id": "user-2", "embed_code": "emb_other", "url": "https://other.example.org/",
        })
        self._submit(client)
        token = fake_db.rows("data_subject_requests")[0]["verification_token"]

        with caplog.at_level(logging.INFO, logger="compliancekit.security"):
            resp = client.get("/api/dsar/emb_other/verify", params={"token": token})
        assert resp.status_code == 404
        assert "verified_at" not in fake_db.rows("data_subject_requests")[0]
        assert any("invalid_token" in r.getMessage() for r in caplog.records)

    def test_verify_unknown_embed_code(self, client, website):
        assert client.get("/api/dsar/nope/verify", params={"token": "abc"}).status_code == 404

    def test_verify_requires_token(self, client, website):
        assert client.get(f"/api/dsar/{EMBED}/verify").status_code == 400
        assert client.get(f"/api/dsar/{EMBED}/verify", params={"token": "bogus"}).status_code == 404


class TestLogin:
    def _login(self, client, password):
        return client.post(
            "/api/auth/login",
            json={"email": "owner@example.com", "password": password},
            headers={"X-Forwarded-For": "192.0.2.10"},
        )

    def test_success(self, client, website):
        resp = self._login(client, "Correct1pass")
        assert resp.status_code == 200
        assert resp.json()["token"]

    def test_failures_count_down_then_lock(self, client, website):
        details = [self._login(client, "wrong").json()["error"] for _ in range(4)]
        assert "4 attempts remaining" in details[0]
        assert "1 attempts remaining" in details[3]
        locked = self._login(client, "wrong")
        assert locked.status_code == 429
        assert locked.headers["retry-after"] == "900"

    def test_lock_holds_even_with_correct_password(self, client, website):
        for _ in range(5):
            self._login(client, "wrong")
        # Reopen the throttle window so only the guard is in play
        client.app.state.throttle.reset()
        resp = self._login(client, "Correct1pass")
        assert resp.status_code == 429
        assert "locked" in resp.json()["error"]

    def test_success_resets_failures(self, client, website):
        self._login(client, "wrong")
        self._login(client, "wrong")
        assert self._login(client, "Correct1pass").status_code == 200
        assert "4 attempts remaining" in self._login(client, "wrong").json()["error"]

    def test_unknown_user_counts_as_failure(self, client, website):
        resp = client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": "x"},
            headers={"X-Forwarded-For": "192.0.2.10"},
        )
        assert resp.status_code == 401

    def test_admin_unlock(self, client, fake_db, website):
        for _ in range(5):
            self._login(client, "wrong")
        admin = create_token(sub="root@example.com", extra={"user_id": "admin-1", "role": "admin"})
        headers = {"Authorization": f"Bearer {admin}"}

        lockouts = client.get("/api/admin/lockouts", headers=headers).json()["lockouts"]
        assert lockouts[0]["identifier"] == "owner@example.com:192.0.2.10"

        resp = client.post(
            "/api/admin/unlock",
            json={"email": "owner@example.com", "ip_address": "192.0.2.10"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert client.app.state.login_guard.active_lockouts() == []

    def test_lockouts_require_admin(self, client, owner_headers):
        assert client.get("/api/admin/lockouts", headers=owner_headers).status_code == 403


class TestDsarDashboard:
    NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.fixture(autouse=True)
    def frozen_now(self):
        with patch("compliancekit.routes.dsar.utcnow", return_value=self.NOW), \
                patch("compliancekit.services.dsar_rules.utcnow", return_value=self.NOW):
            yield

    @pytest.fixture
    def dsar_rows(self, fake_db, website):
        now = self.NOW
        rows = [
            {"id": "d1", "website_id": "site-1", "status": "pending", "request_type": "access",
             "created_at": (now - timedelta(days=40)).isoformat(),
             "due_date": (now - timedelta(days=10)).isoformat()},
            {"id": "d2", "website_id": "site-1", "status": "in_progress", "request_type": "erasure",
             "created_at": now.isoformat(), "due_date": (now + timedelta(days=30)).isoformat()},
            {"id": "d4", "website_id": "site-1", "status": "completed", "request_type": "access",
             "created_at": (now - timedelta(days=20)).isoformat(),
             "due_date": (now + timedelta(days=10)).isoformat(),
             "completed_at": (now - timedelta(days=6)).isoformat()},
            {"id": "d3", "website_id": "other-site", "status": "pending", "request_type": "access",
             "created_at": now.isoformat(), "due_date": (now + timedelta(days=30)).isoformat()},
        ]
        fake_db.rows("data_subject_requests").extend(rows)
        return rows

    def test_list_decorates_deadlines(self, client, owner_headers, dsar_rows):
        resp = client.get("/api/dsar-requests", headers=owner_headers)
        rows = {r["id"]: r for r in resp.json()["requests"]}
        assert set(rows) == {"d1", "d2", "d4"}
        assert rows["d1"]["is_overdue"] is True
        assert rows["d1"]["days_remaining"] == -10
        assert rows["d2"]["is_overdue"] is False
        assert rows["d2"]["days_remaining"] == 30
        assert rows["d4"]["is_overdue"] is False

    def test_stats(self, client, owner_headers, dsar_rows):
        stats = client.get("/api/dsar-requests/stats", headers=owner_headers).json()
        assert stats == {
            "total": 3,
            "pending": 1,
            "in_progress": 1,
            "completed": 1,
            "rejected": 0,
            "overdue": 1,
            "average_response_time": 14,
            "by_type": {
                "access": 2,
                "erasure": 1,
                "rectification": 0,
                "portability": 0,
                "restriction": 0,
                "objection": 0,
            },
        }

    def test_detail_logs_data_access(self, client, owner_headers, dsar_rows, caplog):
        with caplog.at_level(logging.INFO, logger="compliancekit.security"):
            resp = client.get("/api/dsar-requests/d1", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json()["activities"] == []
        assert any("sensitive_data_access" in r.getMessage() and "dsar:d1" in r.getMessage() for r in caplog.records)

    def test_other_tenant_is_hidden(self, client, owner_headers, dsar_rows):
        assert client.get("/api/dsar-requests/d3", headers=owner_headers).status_code == 404

    def test_complete_via_update(self, client, fake_db, owner_headers, dsar_rows):
        resp = client.patch("/api/dsar-requests/d1", json={"status": "completed"}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json()["is_overdue"] is False
        assert resp.json()["completed_at"] == self.NOW.isoformat()
        actions = [a["action"] for a in fake_db.rows("dsar_activities")]
        assert actions == ["status_changed", "completed"]

    def test_unknown_status_rejected(self, client, owner_headers, dsar_rows):
        resp = client.patch("/api/dsar-requests/d1", json={"status": "archived"}, headers=owner_headers)
        assert resp.status_code == 422

    def test_reject(self, client, fake_db, owner_headers, dsar_rows):
        resp = client.post("/api/dsar-requests/d2/reject", json={"reason": "Identity not confirmed"}, headers=owner_headers)
        assert resp.status_code == 200
        assert fake_db.rows("data_subject_requests")[1]["status"] == "rejected"
        assert fake_db.rows("dsar_activities")[0]["action"] == "rejected"

    def test_requires_auth(self, client, dsar_rows):
        assert client.get("/api/dsar-requests").status_code in (401, 403)


class TestConsentDashboard:
    @pytest.fixture
    def consents(self, fake_db, website):
        rows = [
            {"id": "c1", "website_id": "site-1", "visitor_id": "a",
             "preferences": {"necessary": True, "analytics": True, "marketing": True, "functional": True}},
            {"id": "c2", "website_id": "site-1", "visitor_id": "b",
             "preferences": {"necessary": True, "analytics": False, "marketing": False, "functional": False}},
            {"id": "c3", "website_id": "site-1", "visitor_id": "c",
             "preferences": {"necessary": True, "analytics": True, "marketing": False, "functional": False}},
            {"id": "c4", "website_id": "other-site", "visitor_id": "d",
             "preferences": {"analytics": True, "marketing": True, "functional": True}},
        ]
        fake_db.rows("consents").extend(rows)
        return rows

    def test_stats(self, client, owner_headers, consents):
        resp = client.get("/api/consents/stats", params={"website_id": "site-1"}, headers=owner_headers)
        assert resp.json() == {
            "total": 3,
            "accepted_all": 1,
            "rejected_all": 1,
            "partial": 1,
            "analytics": 2,
            "marketing": 1,
            "functional": 1,
        }

    def test_stats_for_foreign_website(self, client, owner_headers, consents):
        resp = client.get("/api/consents/stats", params={"website_id": "other-site"}, headers=owner_headers)
        assert resp.status_code == 404

    def test_list_counts_all_rows(self, client, owner_headers, consents):
        resp = client.get("/api/consents", params={"website_id": "site-1", "limit": 2}, headers=owner_headers)
        body = resp.json()
        assert len(body["consents"]) == 2
        assert body["total"] == 3

    def test_delete(self, client, fake_db, owner_headers, consents):
        assert client.delete("/api/consents/c2", headers=owner_headers).status_code == 200
        assert {c["id"] for c in fake_db.rows("consents")} == {"c1", "c3", "c4"}

    def test_cannot_delete_other_tenants_consent(self, client, fake_db, owner_headers, consents):
        assert client.delete("/api/consents/c4", headers=owner_headers).status_code == 404
        assert len(fake_db.rows("consents")) == 4
