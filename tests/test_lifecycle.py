"""Tests for the disposal protocol, DisposableStore and DisposableOwner."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import SimpleNamespace

import pytest

from evbus.domain.errors import SelfRegistrationError
from evbus.domain.lifecycle import (
    Disposable,
    DisposableOwner,
    DisposableStore,
    FunctionDisposable,
    is_disposable,
    to_disposable,
)


class Counter:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


class Resource:
    """Minimal object satisfying the Disposable protocol."""

    def __init__(self) -> None:
        self.disposed = 0

    def dispose(self) -> None:
        self.disposed += 1


# ---------------------------------------------------------------------------
# Protocol helpers
# ---------------------------------------------------------------------------


def test_is_disposable():
    assert is_disposable(Resource())
    assert is_disposable(DisposableStore())
    assert isinstance(Resource(), Disposable)
    assert not is_disposable(object())
    assert not is_disposable(None)
    assert not is_disposable(SimpleNamespace(dispose="not callable"))
    assert not is_disposable(SimpleNamespace(dispose=lambda reason: None))


def test_to_disposable_runs_once():
    fn = Counter()
    d = to_disposable(fn)

    assert isinstance(d, FunctionDisposable)
    d.dispose()
    d.dispose()

    assert fn.count == 1
    assert d.is_disposed


# ---------------------------------------------------------------------------
# DisposableStore
# ---------------------------------------------------------------------------


def test_store_disposes_all_held_items():
    a, b = Resource(), Resource()
    store = DisposableStore()

    store.add(a)
    store.add(b)
    assert len(store) == 2

    store.dispose()

    assert (a.disposed, b.disposed) == (1, 1)
    assert len(store) == 0
    assert store.is_disposed


def test_store_calls_bare_functions():
    fns = [Counter(), Counter(), Counter()]
    store = DisposableStore()

    for fn in fns:
        store.add(fn)
    store.dispose()

    assert [fn.count for fn in fns] == [1, 1, 1]


def test_add_returns_same_value():
    store = DisposableStore()
    r = Resource()
    fn = Counter()

    assert store.add(r) is r
    assert store.add(fn) is fn


def test_second_dispose_warns_and_does_not_rerelease(caplog):
    fn = Counter()
    store = DisposableStore()
    store.add(fn)

    store.dispose()
    with caplog.at_level(logging.WARNING, logger="evbus.domain.lifecycle"):
        store.dispose()

    assert fn.count == 1
    assert "Trying to dispose a disposed store" in caplog.text


def test_add_after_dispose_releases_immediately(caplog):
    r = Resource()
    store = DisposableStore()
    store.dispose()

    with caplog.at_level(logging.WARNING, logger="evbus.domain.lifecycle"):
        returned = store.add(r)

    assert returned is r
    assert r.disposed == 1
    assert len(store) == 0
    assert "Trying to add a disposable to a disposed store" in caplog.text


def test_self_registration_raises():
    store = DisposableStore()
    with pytest.raises(SelfRegistrationError, match="Cannot register a disposable on itself!"):
        store.add(store)


def test_nested_store_disposed_with_parent():
    parent, child = DisposableStore(), DisposableStore()
    r = Resource()
    child.add(r)
    parent.add(child)

    parent.dispose()

    assert child.is_disposed
    assert r.disposed == 1


def test_failing_item_does_not_block_the_rest():
    def broken():
        raise RuntimeError("broken")

    ok = Resource()
    store = DisposableStore()
    store.add(broken)
    store.add(ok)

    with pytest.raises(RuntimeError, match="broken"):
        store.dispose()

    assert ok.disposed == 1
    assert store.is_disposed


def test_several_failures_raised_as_group():
    def broken_a():
        raise RuntimeError("a")

    def broken_b():
        raise ValueError("b")

    store = DisposableStore()
    store.add(broken_a)
    store.add(broken_b)

    with pytest.raises(ExceptionGroup) as excinfo:
        store.dispose()

    assert len(excinfo.value.exceptions) == 2


def test_unhashable_disposable_accepted():
    @dataclass
    class Lease:
        name: str
        released: bool = False

        def dispose(self) -> None:
            self.released = True

    lease = Lease("db")
    store = DisposableStore()

    assert store.add(lease) is lease
    store.dispose()

    assert lease.released


def test_equal_but_distinct_disposables_each_released():
    released: list[str] = []

    @dataclass(frozen=True)
    class Lease:
        name: str

        def dispose(self) -> None:
            released.append(self.name)

    store = DisposableStore()
    store.add(Lease("db"))
    store.add(Lease("db"))
    assert len(store) == 2

    store.dispose()

    assert released == ["db", "db"]


def test_same_object_added_twice_released_once():
    r = Resource()
    store = DisposableStore()
    store.add(r)
    store.add(r)

    store.dispose()

    assert r.disposed == 1


def test_callable_disposable_is_disposed_not_called():
    class Both(Resource):
        called = 0

        def __call__(self) -> None:
            self.called += 1

    both = Both()
    store = DisposableStore()
    store.add(both)
    store.dispose()

    assert (both.disposed, both.called) == (1, 0)


def test_clear_keeps_store_usable():
    first, second = Resource(), Resource()
    store = DisposableStore()
    store.add(first)

    store.clear()
    store.add(second)

    assert first.disposed == 1
    assert second.disposed == 0
    assert not store.is_disposed


def test_context_manager_disposes_on_exit():
    r = Resource()
    with DisposableStore() as store:
        store.add(r)
        assert r.disposed == 0

    assert r.disposed == 1
    assert store.is_disposed


# ---------------------------------------------------------------------------
# DisposableOwner
# ---------------------------------------------------------------------------


class Panel(DisposableOwner):
    def __init__(self) -> None:
        super().__init__()
        self.resource = self._register(Resource())

    def register(self, d):
        return self._register(d)


def test_owner_releases_registered_items():
    panel = Panel()
    panel.dispose()

    assert panel.resource.disposed == 1


def test_owner_rejects_self_registration():
    panel = Panel()
    with pytest.raises(SelfRegistrationError):
        panel.register(panel)


def test_owner_add_after_dispose_releases_immediately(caplog):
    panel = Panel()
    panel.dispose()
    late = Resource()

    with caplog.at_level(logging.WARNING):
        panel.register(late)

    assert late.disposed == 1
