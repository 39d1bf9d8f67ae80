import threading

import pytest

from capgrants.core.registry import DEFAULT_OPERATIONS, OperationRegistry


def test_registry_defaults_to_baseline_operations():
    r = OperationRegistry()
    assert r.operations() == ("read", "write", "delete", "destroy")
    assert r.operations() == DEFAULT_OPERATIONS


def test_registry_add_is_idempotent_and_keeps_order():
    r = OperationRegistry()
    r.add("publish")
    r.add("publish")
    r.add("read")

    assert r.operations() == ("read", "write", "delete", "destroy", "publish")


def test_registry_set_and_remove():
    r = OperationRegistry()
    r.set(["view", "edit"])
    assert list(r) == ["view", "edit"]

    r.remove("view")
    assert r.operations() == ("edit",)

    r.remove("missing")
    assert len(r) == 1


def test_registry_has_all_and_has_invalid():
    r = OperationRegistry()

    assert r.has_all(["destroy", "read", "delete", "write"]) is True
    assert r.has_all(["read", "write"]) is False

    assert r.has_invalid(["read", "write"]) is False
    assert r.has_invalid(["read", "unknown"]) is True
    assert r.invalid(["nope", "read", "Read"]) == ["nope", "Read"]


def test_registry_rejects_bad_names_fail_closed():
    r = OperationRegistry()

    with pytest.raises(TypeError):
        r.add(123)

    with pytest.raises(ValueError):
        r.add("")

    with pytest.raises(ValueError):
        r.add("any")

    with pytest.raises(ValueError):
        r.add("re:ad")

    with pytest.raises(ValueError):
        r.set(["read", "read"])

    with pytest.raises(TypeError):
        r.set("read")

    assert r.operations() == DEFAULT_OPERATIONS


def test_registry_pattern_follows_live_vocabulary():
    r = OperationRegistry()
    assert r.pattern().fullmatch("posts:read,write") is not None
    assert r.pattern().fullmatch("posts:publish") is None

    r.add("publish")
    assert r.pattern().fullmatch("posts:publish") is not None
    assert r.pattern().fullmatch("posts:any") is not None
    assert r.pattern().fullmatch("posts:read,") is None
    assert r.pattern().fullmatch("posts:readwrite") is None


def test_registry_from_env(monkeypatch):
    monkeypatch.setenv("CAPGRANTS_OPERATIONS", " view, edit ,,publish ")
    assert OperationRegistry.from_env().operations() == ("view", "edit", "publish")

    monkeypatch.setenv("CAPGRANTS_OPERATIONS", "   ")
    assert OperationRegistry.from_env().operations() == DEFAULT_OPERATIONS

    monkeypatch.delenv("CAPGRANTS_OPERATIONS")
    assert OperationRegistry.from_env().operations() == DEFAULT_OPERATIONS


def test_registry_concurrent_adds_do_not_lose_operations():
    r = OperationRegistry()
    names = [f"op{i}" for i in range(50)]

    threads = [threading.Thread(target=r.add, args=(name,)) for name in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert set(names) <= set(r.operations())
    assert len(r) == 4 + len(names)
