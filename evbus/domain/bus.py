"""In-process event bus with disposable subscriptions.

Listeners are kept per event key in insertion order and are invoked from an
immutable snapshot taken when ``emit`` is called. Delivery is either inline
(``sync=True``) or deferred onto the bus scheduler (the default).
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from typing import Any, Callable

from evbus.domain.errors import BusDisposedError
from evbus.domain.lifecycle import DisposableStore
from evbus.domain.models import BusOptions, BusState
from evbus.services.scheduler import InlineScheduler, MicrotaskQueue, Scheduler

logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class ListenerHandle:
    """Removes one listener from the collection it was registered into."""

    def __init__(self, listeners: dict[int, Listener], listener: Listener) -> None:
        self._listeners = listeners
        self._listener = listener
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._listeners.pop(id(self._listener), None)


class EventBus:
    """Publish/subscribe bus keyed by event name.

    Listeners are called in registration order. A listener that raises is
    logged and skipped; the rest of the snapshot still runs. Emitting a key
    while that key is already being delivered is logged and ignored.
    """

    def __init__(
        self,
        options: BusOptions | Mapping[str, Any] | None = None,
        *,
        scheduler: Scheduler | None = None,
        **overrides: Any,
    ) -> None:
        if isinstance(options, BusOptions):
            options = options.model_dump()
        self.options = BusOptions.model_validate({**(options or {}), **overrides})

        # Listener collections are keyed by id(listener), in registration order.
        self._events: dict[Hashable, dict[int, Listener]] = {}
        self._firing: set[Hashable] = set()
        self._state = BusState.ACTIVE

        if scheduler is not None:
            self._scheduler = scheduler
        elif self.options.sync:
            self._scheduler = InlineScheduler()
        else:
            self._scheduler = MicrotaskQueue()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_sync(self) -> bool:
        return self.options.sync

    @property
    def state(self) -> BusState:
        return self._state

    @property
    def is_disposed(self) -> bool:
        return self._state == BusState.DISPOSED

    def listener_count(self, event: Hashable) -> int:
        return len(self._events.get(event, ()))

    def has_listeners(self, event: Hashable) -> bool:
        return self.listener_count(event) > 0

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on(self, event: Hashable, listener: Listener) -> ListenerHandle:
        """Subscribe ``listener`` to ``event``.

        Membership is by identity. Registering the same callable object twice
        keeps a single membership, and each call still returns its own handle
        for it. Equal but distinct callables are separate listeners, and so are
        bound methods, which Python creates anew on each attribute access;
        keep the returned handle to remove one.
        """
        self._check_disposed()

        listeners = self._events.get(event)
        if listeners is None:
            listeners = self._events[event] = {}
        listeners[id(listener)] = listener

        return ListenerHandle(listeners, listener)

    def once(self, event: Hashable, listener: Listener) -> ListenerHandle:
        """Subscribe ``listener`` for a single invocation.

        The returned handle cancels the subscription if it has not fired yet.
        """
        fired = False

        def wrapper(*args: Any) -> None:
            nonlocal fired
            # Two deferred emissions may both hold the wrapper in their snapshots.
            if fired:
                return
            fired = True
            try:
                listener(*args)
            finally:
                handle.dispose()

        handle = self.on(event, wrapper)
        return handle

    def scoped(
        self, event: Hashable, listener: Listener, scope: DisposableStore
    ) -> ListenerHandle:
        """Subscribe ``listener`` and hand the subscription to ``scope``."""
        return scope.add(self.on(event, listener))

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(self, event: Hashable, *args: Any) -> None:
        self._check_disposed()

        if event in self._firing:
            logger.warning(f'Recursive emit detected for event "{event}"')
            return

        listeners = self._events.get(event)
        if not listeners:
            logger.debug(f'No listeners for event "{event}"')
            return

        # Listeners added or removed during delivery only affect later emits.
        snapshot = tuple(listeners.values())

        def invoke() -> None:
            self._firing.add(event)
            try:
                for listener in snapshot:
                    try:
                        listener(*args)
                    except Exception as exc:
                        logger.error(
                            f'Listener {getattr(listener, "__qualname__", listener)!s} '
                            f'failed for event "{event}": {exc!r}',
                            exc_info=True,
                        )
            finally:
                self._firing.discard(event)

        self._scheduler.schedule(invoke)

    def flush(self) -> int:
        """Run deferred deliveries that are still pending. Returns how many ran."""
        drain = getattr(self._scheduler, "drain", None)
        if drain is None:
            return 0
        return drain()

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def dispose(self, event: Hashable | None = None) -> None:
        """Clear one event's listeners, or retire the whole bus when ``event`` is None."""
        self._check_disposed()

        if event is not None:
            self._events.pop(event, None)
            logger.debug(f'Disposed listeners for event "{event}"')
        else:
            self._events.clear()
            self._state = BusState.DISPOSED

    def _check_disposed(self) -> None:
        if self._state == BusState.DISPOSED:
            raise BusDisposedError()
