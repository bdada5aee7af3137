"""Disposal protocol and aggregate store.

A *disposable* is anything that can be told to release its resources with a
zero-argument ``dispose()``. A :class:`DisposableStore` owns many of them and
releases them together, exactly once.
"""

from __future__ import annotations

import inspect
import logging
from types import TracebackType
from typing import Any, Callable, Protocol, TypeVar, Union, runtime_checkable

from evbus.domain.errors import SelfRegistrationError

logger = logging.getLogger(__name__)


@runtime_checkable
class Disposable(Protocol):
    def dispose(self) -> None: ...


ReleaseFn = Callable[[], Any]
DisposableLike = Union[Disposable, ReleaseFn]

T = TypeVar("T")


def is_disposable(thing: object) -> bool:
    """Return True if ``thing`` exposes a callable ``dispose()`` taking no arguments."""
    dispose = getattr(thing, "dispose", None)
    if not callable(dispose):
        return False
    try:
        signature = inspect.signature(dispose)
    except (TypeError, ValueError):
        return True
    return all(
        p.default is not p.empty or p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        for p in signature.parameters.values()
    )


def _release(d: DisposableLike) -> None:
    if is_disposable(d):
        d.dispose()
    else:
        d()


class FunctionDisposable:
    """Wraps a release callable; the callable runs at most once."""

    def __init__(self, fn: ReleaseFn) -> None:
        self._fn = fn
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._fn()


def to_disposable(fn: ReleaseFn) -> FunctionDisposable:
    return FunctionDisposable(fn)


class DisposableStore:
    """Owns a set of disposables and releases them together.

    Once disposed the store is retired for good: anything added afterwards is
    released immediately rather than kept.
    """

    def __init__(self) -> None:
        # Keyed by id(): members need not be hashable and equal members stay distinct.
        self._disposables: dict[int, DisposableLike] = {}
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def __len__(self) -> int:
        return len(self._disposables)

    def add(self, d: T) -> T:
        """Register ``d`` for release when the store is disposed. Returns ``d``."""
        if d is self:
            raise SelfRegistrationError()

        if self._disposed:
            logger.warning(
                "Trying to add a disposable to a disposed store. This is probably a bug."
            )
            _release(d)
        else:
            self._disposables[id(d)] = d

        return d

    def clear(self) -> None:
        """Release everything currently held without retiring the store."""
        held = list(self._disposables.values())
        self._disposables.clear()
        _release_all(held)

    def dispose(self) -> None:
        if self._disposed:
            logger.warning("Trying to dispose a disposed store. This is probably a bug.")
            return

        self._disposed = True
        self.clear()

    def __enter__(self) -> DisposableStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()


def _release_all(items: list[DisposableLike]) -> None:
    # Every item gets released even if earlier ones fail.
    errors: list[Exception] = []
    for d in items:
        try:
            _release(d)
        except Exception as exc:
            errors.append(exc)

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup("Encountered errors while disposing of store", errors)


class DisposableOwner:
    """Base class for objects that collect disposables and release them on dispose()."""

    def __init__(self) -> None:
        self._store = DisposableStore()

    def dispose(self) -> None:
        self._store.dispose()

    def _register(self, o: T) -> T:
        if o is self:
            raise SelfRegistrationError()
        return self._store.add(o)
