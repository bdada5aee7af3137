"""Configuration models for the event bus."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class BusState(StrEnum):
    """Whole-bus lifecycle.

    Retiring a single key with ``EventBus.dispose(key)`` only drops that key's
    listeners; the bus stays ``ACTIVE`` and the key is not tracked here.
    """

    ACTIVE = "active"
    DISPOSED = "disposed"


class BusOptions(BaseModel):
    """Construction-time options for an EventBus.

    ``sync`` selects inline delivery (True) or deferred delivery on the bus
    scheduler (False). It is fixed for the lifetime of the bus.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    sync: bool = False
