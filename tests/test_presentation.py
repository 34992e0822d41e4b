"""Tests for notification display lookups."""

from __future__ import annotations

import pytest

from bizdash.client.presentation import color_for, icon_for, toast_duration, toast_variant
from bizdash.notifications.models import NotificationPriority, NotificationType


class TestLookups:
    @pytest.mark.parametrize("type_", [t.value for t in NotificationType])
    def test_every_type_has_an_icon(self, type_):
        glyph, css = icon_for(type_)
        assert glyph
        assert css.startswith("text-")

    def test_unknown_type_falls_back_to_info(self):
        assert icon_for("mystery") == icon_for("info")
        assert icon_for(None) == icon_for("info")

    @pytest.mark.parametrize("priority", [p.value for p in NotificationPriority])
    def test_every_priority_has_a_color(self, priority):
        assert "bg-" in color_for(priority)

    def test_urgent_is_red(self):
        assert "red" in color_for("urgent")


class TestToasts:
    def test_error_type_is_destructive(self):
        assert toast_variant({"type": "error"}) == "destructive"
        assert toast_variant({"type": "warning"}) == "default"

    def test_urgent_stays_longer(self):
        assert toast_duration({"priority": "urgent"}) == 10.0
        assert toast_duration({"priority": "high"}) == 5.0
        assert toast_duration({}) == 5.0
