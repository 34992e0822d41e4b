"""Tests for NotificationService: persistence first, best-effort broadcast."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from bizdash.errors import NotFoundError, TransientDeliveryError
from bizdash.notifications.service import NotificationService
from bizdash.notifications.store import NotificationStore
from bizdash.realtime.hub import TenantHub


@pytest.fixture()
def hub():
    mock = MagicMock(spec=TenantHub)
    mock.publish.return_value = 1
    return mock


@pytest.fixture()
def service(hub):
    return NotificationService(NotificationStore(), hub)


class TestCreate:
    def test_persists_then_publishes(self, service, hub):
        n = service.create_notification("t1", "Title", "Body", priority="high")

        assert service.store.get("t1", n.id) is n
        hub.publish.assert_called_once()
        tenant_id, event, data = hub.publish.call_args.args
        assert (tenant_id, event) == ("t1", "new-notification")
        assert data["id"] == n.id
        assert data["priority"] == "high"

    def test_store_failure_propagates_without_publish(self, service, hub):
        service.store.insert = MagicMock(side_effect=RuntimeError("db down"))
        with pytest.raises(RuntimeError):
            service.create_notification("t1", "Title", "Body")
        hub.publish.assert_not_called()

    def test_broadcast_failure_is_swallowed(self, service, hub):
        hub.publish.side_effect = TransientDeliveryError("no session took it")
        n = service.create_notification("t1", "Title", "Body")
        assert service.store.get("t1", n.id) is n

    def test_missing_tenant(self, service):
        with pytest.raises(ValueError):
            service.create_notification("", "Title", "Body")


class TestMutations:
    def test_mark_as_read_publishes_update(self, service, hub):
        n = service.create_notification("t1", "Title", "Body")
        hub.reset_mock()

        service.mark_as_read("t1", n.id)
        hub.publish.assert_called_once_with(
            "t1", "notification-updated", {"id": n.id, "isRead": True, "isDismissed": False}
        )

    def test_dismiss_publishes_update(self, service, hub):
        n = service.create_notification("t1", "Title", "Body")
        hub.reset_mock()

        service.dismiss("t1", n.id)
        _, event, data = hub.publish.call_args.args
        assert event == "notification-updated"
        assert data["isDismissed"] is True

    def test_unknown_or_foreign_id(self, service, hub):
        n = service.create_notification("t2", "Title", "Body")
        hub.reset_mock()
        with pytest.raises(NotFoundError):
            service.mark_as_read("t1", n.id)
        with pytest.raises(NotFoundError):
            service.dismiss("t1", "missing")
        hub.publish.assert_not_called()

    def test_mark_all_as_read_single_bulk_event(self, service, hub):
        for _ in range(5):
            service.create_notification("t1", "Title", "Body", user_id="u1")
        hub.reset_mock()

        assert service.mark_all_as_read("t1", "u1") == 5
        hub.publish.assert_called_once_with("t1", "notifications-marked-read", {"count": 5, "userId": "u1"})
        assert service.unread_count("t1", "u1") == 0


class TestBuilders:
    def test_new_order(self, service):
        n = service.notify_new_order(
            "t1", {"id": "o1", "orderNumber": "ORD-1", "customerName": "Ann", "amount": 10.0}
        )
        assert n.title == "New Order Received"
        assert n.message == "Order #ORD-1 from Ann"
        assert n.entity_type == "order"
        assert n.metadata["amount"] == 10.0

    def test_payment_received(self, service):
        n = service.notify_payment_received(
            "t1", {"id": "p1", "orderId": "o1", "orderNumber": "ORD-1", "amount": 10.0}
        )
        assert n.type.value == "payment"
        assert n.action_url == "/orders/o1"

    def test_low_stock(self, service):
        n = service.notify_low_stock("t1", {"id": "sku-1", "name": "Mug", "stockLevel": 2})
        assert n.type.value == "warning"
        assert "Mug" in n.message

    def test_system_alert(self, service):
        n = service.notify_system_alert("t1", {"message": "Disk full", "priority": "urgent"})
        assert n.title == "System Alert"
        assert n.priority.value == "urgent"
