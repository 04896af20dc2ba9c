from datetime import datetime, timedelta, timezone

from app.services.dates import next_cycle_estimate, normalize_timestamp

APPROVED = "/webhooks/hotmart/purchase-approved"
INVALID = "/webhooks/hotmart/purchase-invalid"
CANCELLATION = "/webhooks/hotmart/subscription-cancellation"


def approved_body(email="A@X.com", **data):
    body = {
        "event": "PURCHASE_APPROVED",
        "id": "evt-approved-1",
        "data": {
            "buyer": {"email": email},
            "product": {"name": "VIP Plan"},
            "purchase": {"date_next_charge": 1700000000},
        },
    }
    body["data"].update(data)
    return body


# ---------------- PURCHASE APPROVED ----------------
def test_purchase_approved_upserts_active_row(client, fake_db):
    resp = client.post(APPROVED, json=approved_body())

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "action": "upserted",
        "buyer_email": "a@x.com",
        "subscriber_code": None,
        "plan": "VIP",
        "status": "ACTIVE",
        "date_next_charge": "2023-11-14T22:13:20.000Z",
    }
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.headers["cache-control"] == "no-store"

    [row] = fake_db.subscriptions
    assert row["buyer_email"] == "a@x.com"
    assert row["plan"] == "VIP"
    assert row["status"] == "ACTIVE"
    assert row["cancel_pending"] is False
    assert row["date_next_charge"] == "2023-11-14T22:13:20.000Z"

    [event] = fake_db.events
    assert event["subscription_id"] == row["id"]
    assert event["event_id"] == "evt-approved-1"
    assert event["event_type"] == "PURCHASE_APPROVED"
    assert event["payload"]["data"]["buyer"]["email"] == "A@X.com"


def test_purchase_approved_is_idempotent_per_email(client, fake_db):
    for plan_name in ("Basic", "Pro", "VIP Gold"):
        body = approved_body(product={"name": plan_name})
        body["id"] = f"evt-{plan_name}"
        assert client.post(APPROVED, json=body).status_code == 200

    assert len(fake_db.subscriptions) == 1
    assert fake_db.subscriptions[0]["plan"] == "VIP"
    assert len(fake_db.events) == 3


def test_redelivered_event_keeps_single_audit_row(client, fake_db):
    client.post(APPROVED, json=approved_body())
    client.post(APPROVED, json=approved_body())

    assert len(fake_db.subscriptions) == 1
    assert len(fake_db.events) == 1


def test_purchase_approved_without_next_charge_uses_estimate(client, fake_db):
    body = approved_body()
    del body["data"]["purchase"]

    before = next_cycle_estimate(datetime.now(timezone.utc)) - timedelta(seconds=1)
    resp = client.post(APPROVED, json=body)
    after = next_cycle_estimate(datetime.now(timezone.utc)) + timedelta(seconds=1)

    assert resp.status_code == 200
    stored = normalize_timestamp(fake_db.subscriptions[0]["date_next_charge"])
    assert stored is not None
    assert before <= stored <= after


def test_purchase_approved_keeps_known_subscriber_code(client, fake_db):
    body = approved_body(subscription={"subscriber": {"code": "SUB123"}, "plan": {"name": "pro"}})
    client.post(APPROVED, json=body)
    assert fake_db.subscriptions[0]["subscriber_code"] == "SUB123"

    renewal = approved_body()
    renewal["id"] = "evt-renewal"
    resp = client.post(APPROVED, json=renewal)

    assert resp.json()["subscriber_code"] is None
    assert fake_db.subscriptions[0]["subscriber_code"] == "SUB123"


def test_purchase_approved_reactivates_cancel_pending_row(client, fake_db):
    fake_db.subscriptions.append({
        "id": "sub-1",
        "buyer_email": "a@x.com",
        "subscriber_code": "SUB123",
        "plan": "PRO",
        "status": "INACTIVE",
        "date_next_charge": None,
        "cancel_pending": True,
        "user_id": None,
    })

    client.post(APPROVED, json=approved_body())

    row = fake_db.subscriptions[0]
    assert row["status"] == "ACTIVE"
    assert row["cancel_pending"] is False
    assert row["plan"] == "VIP"


def test_purchase_approved_ignores_other_events(client, fake_db):
    body = approved_body()
    body["event"] = "PURCHASE_REFUNDED"

    resp = client.post(APPROVED, json=body)

    assert resp.status_code == 200
    assert resp.json() == {"message": "Ignored: wrong event for this endpoint"}
    assert fake_db.calls == []


def test_purchase_approved_without_event_name_is_processed(client, fake_db):
    body = approved_body()
    del body["event"]

    assert client.post(APPROVED, json=body).json()["action"] == "upserted"
    assert fake_db.events[0]["event_type"] == "PURCHASE_APPROVED"


def test_purchase_approved_requires_email(client, fake_db):
    resp = client.post(APPROVED, json=approved_body(buyer={"name": "No Email"}))

    assert resp.status_code == 400
    assert resp.json() == {"error": "Email is required"}
    assert fake_db.calls == []


def test_upsert_failure_returns_500_without_audit(client, fake_db):
    fake_db.fail("subscriptions", "upsert", "constraint violated")

    resp = client.post(APPROVED, json=approved_body())

    assert resp.status_code == 500
    assert resp.json() == {"error": "Upsert failed", "details": "constraint violated"}
    assert fake_db.events == []


def test_audit_failure_does_not_fail_request(client, fake_db):
    fake_db.fail("subscription_events", "insert", "events table missing")

    resp = client.post(APPROVED, json=approved_body())

    assert resp.status_code == 200
    assert fake_db.subscriptions[0]["status"] == "ACTIVE"
    assert fake_db.events == []


# ---------------- MALFORMED BODIES ----------------
def test_missing_data_is_rejected_without_writes(client, fake_db):
    for path in (APPROVED, INVALID, CANCELLATION):
        resp = client.post(path, json={"event": "PURCHASE_APPROVED", "id": "x"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid payload: missing data"}

    assert fake_db.calls == []


def test_invalid_json_is_rejected(client, fake_db):
    resp = client.post(APPROVED, content=b"{not json", headers={"content-type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid JSON payload"
    assert fake_db.calls == []


# ---------------- PURCHASE INVALID ----------------
def test_purchase_delayed_deactivates_existing_row(client, fake_db):
    fake_db.subscriptions.append({
        "id": "sub-1",
        "buyer_email": "a@x.com",
        "subscriber_code": "SUB123",
        "plan": "PRO",
        "status": "ACTIVE",
        "date_next_charge": "2030-01-01T00:00:00.000Z",
        "cancel_pending": True,
        "user_id": None,
    })

    resp = client.post(INVALID, json={
        "event": "PURCHASE_DELAYED",
        "id": "evt-delayed",
        "data": {"buyer": {"email": " A@x.COM "}},
    })

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "action": "set_inactive",
        "buyer_email": "a@x.com",
        "event_type": "PURCHASE_DELAYED",
        "status": "INACTIVE",
    }

    [row] = fake_db.subscriptions
    assert row["status"] == "INACTIVE"
    assert row["cancel_pending"] is False
    assert row["plan"] == "PRO"
    assert row["date_next_charge"] == "2030-01-01T00:00:00.000Z"

    [event] = fake_db.events
    assert event["subscription_id"] == "sub-1"
    assert event["event_type"] == "PURCHASE_DELAYED"


def test_purchase_invalid_creates_row_when_absent(client, fake_db):
    resp = client.post(INVALID, json={"event": "PURCHASE_CHARGEBACK", "data": {"buyer": {"email": "new@x.com"}}})

    assert resp.status_code == 200
    [row] = fake_db.subscriptions
    assert row["buyer_email"] == "new@x.com"
    assert row["status"] == "INACTIVE"


def test_purchase_invalid_defaults_to_protest(client, fake_db):
    resp = client.post(INVALID, json={"data": {"buyer": {"email": "a@x.com"}}})

    assert resp.json()["event_type"] == "PURCHASE_PROTEST"
    assert fake_db.events[0]["event_type"] == "PURCHASE_PROTEST"


def test_purchase_invalid_ignores_approved_event(client, fake_db):
    resp = client.post(INVALID, json={"event": "PURCHASE_APPROVED", "data": {"buyer": {"email": "a@x.com"}}})

    assert resp.status_code == 200
    assert resp.json()["message"] == "Ignored: wrong event for this endpoint"
    assert fake_db.calls == []


# ---------------- SUBSCRIPTION CANCELLATION ----------------
def test_cancellation_marks_cancel_pending(client, fake_db):
    fake_db.subscriptions.append({
        "id": "sub-1",
        "buyer_email": "a@x.com",
        "subscriber_code": "SUB123",
        "plan": "PRO",
        "status": "ACTIVE",
        "date_next_charge": None,
        "cancel_pending": False,
        "user_id": None,
    })

    resp = client.post(CANCELLATION, json={
        "event": "SUBSCRIPTION_CANCELLATION",
        "id": "evt-cancel",
        "data": {"subscriber": {"code": "SUB123"}, "date_next_charge": 1700000000000},
    })

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "action": "set_cancel_pending_true",
        "subscriber_code": "SUB123",
        "date_next_charge": "2023-11-14T22:13:20.000Z",
    }
    row = fake_db.subscriptions[0]
    assert row["cancel_pending"] is True
    assert row["status"] == "ACTIVE"
    assert row["date_next_charge"] == "2023-11-14T22:13:20.000Z"
    assert fake_db.events[0]["event_type"] == "SUBSCRIPTION_CANCELLATION"


def test_cancellation_for_unknown_code_returns_404_without_write(client, fake_db):
    resp = client.post(CANCELLATION, json={"data": {"subscriber": {"code": "MISSING"}}})

    assert resp.status_code == 404
    assert resp.json() == {
        "error": "Subscription not found for subscriber_code",
        "subscriber_code": "MISSING",
    }
    assert fake_db.writes() == []


def test_cancellation_requires_subscriber_code(client, fake_db):
    resp = client.post(CANCELLATION, json={"data": {"subscriber": {}}})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing subscriber.code"}
    assert fake_db.calls == []


def test_cancellation_update_failure_returns_500(client, fake_db):
    fake_db.subscriptions.append({"id": "sub-1", "buyer_email": "a@x.com", "subscriber_code": "SUB123"})
    fake_db.fail("subscriptions", "update", "timeout")

    resp = client.post(CANCELLATION, json={"data": {"subscriber": {"code": "SUB123"}}})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Update failed", "details": "timeout"}
    assert fake_db.events == []


def test_cancellation_ignores_other_events(client, fake_db):
    resp = client.post(CANCELLATION, json={
        "event": "PURCHASE_APPROVED",
        "data": {"subscriber": {"code": "SUB123"}},
    })

    assert resp.status_code == 200
    assert resp.json() == {"message": "Ignored: wrong event for this endpoint"}
    assert fake_db.calls == []


def test_ambiguous_subscriber_code_is_not_cancelled(client, fake_db):
    fake_db.subscriptions.append({"id": "sub-1", "buyer_email": "a@x.com", "subscriber_code": "DUP", "cancel_pending": False})
    fake_db.subscriptions.append({"id": "sub-2", "buyer_email": "b@x.com", "subscriber_code": "DUP", "cancel_pending": False})

    resp = client.post(CANCELLATION, json={"data": {"subscriber": {"code": "DUP"}}})

    assert resp.status_code == 404
    assert fake_db.writes() == []
    assert all(row["cancel_pending"] is False for row in fake_db.subscriptions)


def test_non_string_event_is_ignored(client, fake_db):
    body = approved_body()
    body["event"] = 5

    resp = client.post(APPROVED, json=body)

    assert resp.status_code == 200
    assert resp.json() == {"message": "Ignored: wrong event for this endpoint"}
    assert fake_db.calls == []


def test_numeric_event_id_is_recorded_as_text(client, fake_db):
    body = approved_body()
    body["id"] = 1.5

    assert client.post(APPROVED, json=body).status_code == 200
    assert fake_db.events[0]["event_id"] == "1.5"
