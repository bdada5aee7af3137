"""Error types for the event bus and disposal layer.

Only programmer errors surface here. Listener failures, reentrant emits and
redundant store disposal are reported through logging instead.
"""

from __future__ import annotations


class EvbusError(Exception):
    """Base error for event bus and lifecycle operations."""


class BusDisposedError(EvbusError):
    """Operation attempted on a fully disposed EventBus."""

    def __init__(self) -> None:
        super().__init__("EventBus has been disposed")


class SelfRegistrationError(EvbusError):
    """A store or owner was asked to hold itself."""

    def __init__(self) -> None:
        super().__init__("Cannot register a disposable on itself!")
