"""Single observable value with synchronous change notification."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

from evbus.domain.lifecycle import FunctionDisposable, to_disposable

logger = logging.getLogger(__name__)

V = TypeVar("V")


class State(Generic[V]):
    """Holds a value and tells listeners when it changes.

    ``listen`` replays the current value to the new listener straight away.
    Setting an equal value is a no-op.
    """

    def __init__(self, initial_value: V) -> None:
        self._value = initial_value
        self._listeners: dict[int, Callable[[V], None]] = {}

    @property
    def value(self) -> V:
        return self._value

    def get_value(self) -> V:
        return self._value

    def set_value(self, new_value: V) -> None:
        if new_value == self._value:
            return
        self._value = new_value
        for listener in tuple(self._listeners.values()):
            self._notify(listener, new_value)

    def listen(self, listener: Callable[[V], None]) -> FunctionDisposable:
        self._listeners[id(listener)] = listener
        self._notify(listener, self._value)
        return to_disposable(lambda: self._listeners.pop(id(listener), None))

    def _notify(self, listener: Callable[[V], None], value: V) -> None:
        try:
            listener(value)
        except Exception as exc:
            logger.error(f"State listener failed: {exc!r}", exc_info=True)
