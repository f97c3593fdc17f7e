from chatapp.presence import PresenceRegistry


def test_lookup_unknown_user_is_absent():
    registry = PresenceRegistry()
    assert registry.lookup(42) is None
    assert registry.online_user_ids() == []


def test_register_overwrites_previous_connection():
    registry = PresenceRegistry()
    registry.register(1, "conn-a")
    registry.register(1, "conn-b")

    assert registry.lookup(1) == "conn-b"
    assert registry.online_user_ids() == [1]
    assert len(registry) == 1


def test_unregister_removes_user():
    registry = PresenceRegistry()
    registry.register(1, "conn-a")
    registry.register(2, "conn-b")

    assert registry.unregister(1) is True
    assert registry.lookup(1) is None
    assert registry.online_user_ids() == [2]
    assert registry.unregister(1) is False


def test_stale_connection_does_not_unregister_replacement():
    registry = PresenceRegistry()
    registry.register(1, "old")
    registry.register(1, "new")

    assert registry.unregister(1, "old") is False
    assert registry.lookup(1) == "new"
    assert registry.unregister(1, "new") is True
    assert not registry.is_online(1)
