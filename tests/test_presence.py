"""
Unit tests for PresenceRegistry
"""
import pytest

from alarm_api.presence import PresenceRegistry, ROLE_MAIN, ROLE_RECEIVER


class TestPresenceRegistry:

    def test_empty_snapshot(self):
        assert PresenceRegistry().snapshot() == {"count": 0, "devices": []}

    def test_count_includes_unidentified_connections(self):
        registry = PresenceRegistry()
        registry.open("a")
        registry.open("b")
        registry.register("a", ROLE_MAIN)

        snapshot = registry.snapshot()

        assert snapshot["count"] == 2
        assert snapshot["devices"] == [{"role": "main", "id": "a"}]

    def test_devices_in_registration_order(self):
        registry = PresenceRegistry()
        for session_id in ("c", "a", "b"):
            registry.open(session_id)
            registry.register(session_id, ROLE_RECEIVER)

        assert [d["id"] for d in registry.snapshot()["devices"]] == ["c", "a", "b"]

    def test_reregister_updates_role_in_place(self):
        registry = PresenceRegistry()
        registry.register("a", ROLE_RECEIVER)
        registry.register("b", ROLE_RECEIVER)

        registry.register("a", ROLE_MAIN)

        assert registry.role_of("a") == ROLE_MAIN
        assert registry.snapshot()["devices"][0] == {"role": "main", "id": "a"}

    def test_invalid_role(self):
        with pytest.raises(ValueError):
            PresenceRegistry().register("a", "admin")

    def test_close_unregisters(self):
        registry = PresenceRegistry()
        registry.open("a")
        registry.register("a", ROLE_MAIN)

        assert registry.close("a") is True
        assert registry.snapshot() == {"count": 0, "devices": []}
        assert registry.role_of("a") is None

    def test_close_unidentified_session(self):
        registry = PresenceRegistry()
        registry.open("a")

        assert registry.close("a") is False
        assert registry.snapshot()["count"] == 0

    def test_unregister_unknown(self):
        assert PresenceRegistry().unregister("nope") is False

    def test_injected_store(self):
        store = {}
        registry = PresenceRegistry(store)

        registry.register("a", ROLE_MAIN)

        assert store == {"a": {"role": "main"}}
        assert registry.is_registered("a")
