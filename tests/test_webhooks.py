"""Tests for inbound webhook handlers.

Covers the full request flow: tenant resolution, endpoint switches,
signature enforcement, schema validation, persistence and compensation.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from bizdash.orders import Order, OrderStatus


def _order_payload(tenant_id: str, **overrides) -> dict:
    payload = {
        "tenantId": tenant_id,
        "orderNumber": "ORD-1001",
        "customerName": "Jane Doe",
        "customerEmail": "jane@example.com",
        "amount": 129.5,
        "items": [{"productName": "Widget", "quantity": 2, "price": 64.75}],
    }
    payload.update(overrides)
    return payload


# ── Orders ────────────────────────────────────────────────────────────────


class TestOrderWebhook:
    def test_unsigned_accepted_without_secret(self, client, services, tenant, sign):
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["orderNumber"] == "ORD-1001"
        assert services.orders.get(tenant.tenant_id, data["orderId"]) is not None

    def test_creates_exactly_one_order_and_notification(self, client, services, tenant, sign):
        secret = services.tenants.rotate_secret(tenant.tenant_id)
        body, headers = sign(_order_payload(tenant.tenant_id), secret)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 200
        assert len(services.orders.for_tenant(tenant.tenant_id)) == 1
        notifications = services.store.query(tenant.tenant_id)
        assert len(notifications) == 1
        n = notifications[0]
        assert n.title == "New Order Received"
        assert n.type.value == "order"
        assert n.priority.value == "high"
        assert n.entity_id == resp.json()["orderId"]
        assert n.action_url == f"/orders/{resp.json()['orderId']}"

    def test_records_activity(self, client, services, tenant, sign):
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        client.post("/api/webhooks/orders", content=body, headers=headers)

        entries = services.activity.for_tenant(tenant.tenant_id)
        assert [e.activity_type for e in entries] == ["order_created_webhook"]
        assert entries[0].metadata["source"] == "webhook"

    def test_generated_secret_scenario(self, client, services, tenant, auth_headers, sign):
        """Generate S; HMAC(S, B) is accepted, 'deadbeef' is rejected with no new order."""
        resp = client.post("/api/webhooks/settings/generate-secret", headers=auth_headers)
        secret = resp.json()["secret"]

        body, headers = sign(_order_payload(tenant.tenant_id), secret)
        ok = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert ok.status_code == 200
        assert services.orders.get(tenant.tenant_id, ok.json()["orderId"]) is not None

        body2, headers2 = sign(_order_payload(tenant.tenant_id, orderNumber="ORD-1002"), None)
        headers2["x-webhook-signature"] = "deadbeef"
        bad = client.post("/api/webhooks/orders", content=body2, headers=headers2)
        assert bad.status_code == 401
        assert bad.json()["error"] == "Invalid webhook signature"
        assert len(services.orders.for_tenant(tenant.tenant_id)) == 1

    def test_missing_signature_with_secret(self, client, services, tenant, sign):
        services.tenants.rotate_secret(tenant.tenant_id)
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 401
        assert resp.json()["error"] == "Webhook signature required but not provided"
        assert len(services.orders) == 0
        assert len(services.store) == 0

    def test_signature_from_rotated_out_secret_rejected(self, client, services, tenant, sign):
        old = services.tenants.rotate_secret(tenant.tenant_id)
        services.tenants.rotate_secret(tenant.tenant_id)
        body, headers = sign(_order_payload(tenant.tenant_id), old)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 401

    def test_non_numeric_amount_lists_field(self, client, services, tenant, sign):
        body, headers = sign(_order_payload(tenant.tenant_id, amount="lots"), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Invalid webhook data"
        assert "amount" in [d["field"] for d in data["details"]]
        assert len(services.orders) == 0
        assert len(services.store) == 0

    @pytest.mark.parametrize("amount", [True, "10.0", -1])
    def test_rejects_non_amounts(self, client, services, tenant, sign, amount):
        body, headers = sign(_order_payload(tenant.tenant_id, amount=amount), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 400
        assert len(services.orders) == 0

    def test_missing_required_fields(self, client, services, tenant, sign):
        payload = _order_payload(tenant.tenant_id)
        del payload["customerName"]
        del payload["orderNumber"]
        body, headers = sign(payload, None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 400
        fields = {d["field"] for d in resp.json()["details"]}
        assert {"customerName", "orderNumber"} <= fields

    def test_invalid_json(self, client, tenant):
        resp = client.post(
            "/api/webhooks/orders", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400

    def test_missing_tenant_id(self, client, sign):
        payload = _order_payload("x")
        del payload["tenantId"]
        body, headers = sign(payload, None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "tenantId"

    def test_unknown_tenant(self, client, sign):
        body, headers = sign(_order_payload("no-such-tenant"), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 404

    def test_webhooks_disabled(self, client, services, tenant, sign):
        services.tenants.update_settings(tenant.tenant_id, webhook_enabled=False)
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 403
        assert len(services.orders) == 0

    def test_endpoint_disabled(self, client, services, tenant, sign):
        services.tenants.update_settings(tenant.tenant_id, endpoints={"orders": False})
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        resp = client.post("/api/webhooks/orders", content=body, headers=headers)
        assert resp.status_code == 403

    def test_notification_failure_removes_order(self, client, services, tenant, sign):
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        with patch.object(services.store, "insert", side_effect=RuntimeError("db down")):
            resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to process order webhook"
        assert len(services.orders) == 0
        assert services.activity.for_tenant(tenant.tenant_id) == []

    def test_broadcast_failure_does_not_fail_request(self, client, services, tenant, sign):
        from bizdash.errors import TransientDeliveryError

        body, headers = sign(_order_payload(tenant.tenant_id), None)
        with patch.object(services.hub, "publish", side_effect=TransientDeliveryError("room down")):
            resp = client.post("/api/webhooks/orders", content=body, headers=headers)

        assert resp.status_code == 200
        assert len(services.orders) == 1
        assert len(services.store) == 1


# ── Notifications ─────────────────────────────────────────────────────────


class TestNotificationWebhook:
    def test_creates_notification(self, client, services, tenant, sign):
        secret = services.tenants.rotate_secret(tenant.tenant_id)
        body, headers = sign(
            {
                "tenantId": tenant.tenant_id,
                "title": "Server maintenance",
                "message": "Scheduled downtime at 02:00 UTC",
                "type": "system",
                "priority": "urgent",
                "userId": "user-9",
            },
            secret,
        )
        resp = client.post("/api/webhooks/notifications", content=body, headers=headers)

        assert resp.status_code == 200
        data = resp.json()
        stored = services.store.get(tenant.tenant_id, data["notificationId"])
        assert stored is not None
        assert stored.priority.value == "urgent"
        assert stored.user_id == "user-9"
        assert stored.is_read is False

    def test_title_too_long(self, client, services, tenant, sign):
        body, headers = sign({"tenantId": tenant.tenant_id, "title": "x" * 256, "message": "m"}, None)
        resp = client.post("/api/webhooks/notifications", content=body, headers=headers)
        assert resp.status_code == 400
        assert "title" in [d["field"] for d in resp.json()["details"]]
        assert len(services.store) == 0

    def test_unknown_type_rejected(self, client, tenant, sign):
        body, headers = sign({"tenantId": tenant.tenant_id, "title": "t", "message": "m", "type": "spam"}, None)
        resp = client.post("/api/webhooks/notifications", content=body, headers=headers)
        assert resp.status_code == 400

    def test_store_failure_returns_500(self, client, services, tenant, sign):
        body, headers = sign({"tenantId": tenant.tenant_id, "title": "t", "message": "m"}, None)
        with patch.object(services.store, "insert", side_effect=RuntimeError("db down")):
            resp = client.post("/api/webhooks/notifications", content=body, headers=headers)
        assert resp.status_code == 500


# ── Payments ──────────────────────────────────────────────────────────────


class TestPaymentWebhook:
    @pytest.fixture()
    def order(self, services, tenant):
        return services.orders.create(
            Order(tenant_id=tenant.tenant_id, order_number="ORD-7", customer_name="Sam", amount=50.0)
        )

    def _payload(self, tenant_id, order_id, **overrides):
        payload = {
            "tenantId": tenant_id,
            "orderId": order_id,
            "amount": 50.0,
            "status": "paid",
            "paymentId": "pay_123",
        }
        payload.update(overrides)
        return payload

    def test_paid_marks_order_and_notifies(self, client, services, tenant, order, sign):
        body, headers = sign(self._payload(tenant.tenant_id, order.id), None)
        resp = client.post("/api/webhooks/payments", content=body, headers=headers)

        assert resp.status_code == 200
        assert order.status == OrderStatus.PAID
        notifications = services.store.query(tenant.tenant_id)
        assert len(notifications) == 1
        assert notifications[0].type.value == "payment"
        assert "ORD-7" in notifications[0].message

    def test_non_paid_status_is_acknowledged_only(self, client, services, tenant, order, sign):
        body, headers = sign(self._payload(tenant.tenant_id, order.id, status="failed"), None)
        resp = client.post("/api/webhooks/payments", content=body, headers=headers)

        assert resp.status_code == 200
        assert order.status == OrderStatus.PENDING
        assert len(services.store) == 0

    def test_unknown_order(self, client, services, tenant, sign):
        body, headers = sign(self._payload(tenant.tenant_id, "missing"), None)
        resp = client.post("/api/webhooks/payments", content=body, headers=headers)
        assert resp.status_code == 404
        assert len(services.store) == 0

    def test_order_of_other_tenant_not_found(self, client, services, tenant, other_tenant, sign):
        foreign = services.orders.create(
            Order(tenant_id=other_tenant.tenant_id, order_number="X-1", customer_name="Eve", amount=1.0)
        )
        body, headers = sign(self._payload(tenant.tenant_id, foreign.id), None)
        resp = client.post("/api/webhooks/payments", content=body, headers=headers)
        assert resp.status_code == 404
        assert foreign.status == OrderStatus.PENDING

    def test_notification_failure_restores_status(self, client, services, tenant, order, sign):
        body, headers = sign(self._payload(tenant.tenant_id, order.id), None)
        with patch.object(services.store, "insert", side_effect=RuntimeError("db down")):
            resp = client.post("/api/webhooks/payments", content=body, headers=headers)
        assert resp.status_code == 500
        assert order.status == OrderStatus.PENDING


# ── Health / status ───────────────────────────────────────────────────────


class TestWebhookHealth:
    def test_health_is_public(self, client):
        resp = client.get("/api/webhooks/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_status_requires_auth(self, client):
        assert client.get("/api/webhooks/status").status_code == 401

    def test_status_counts_per_tenant(self, client, tenant, auth_headers, sign):
        body, headers = sign(_order_payload(tenant.tenant_id), None)
        client.post("/api/webhooks/orders", content=body, headers=headers)
        resp = client.get("/api/webhooks/status", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["counts"]["orders"] >= 1
