"""
contactkit.store - Backing store contract and adapters

The Google People API and AppleScript adapters are imported from their own
modules so that the in-memory store can be used without them.
"""

from contactkit.store.base import (
    ContactStore,
    RemovalChannel,
    RemovalChannelError,
    RemovalTarget,
    SaveRequest,
    SaveResult,
)
from contactkit.store.memory import InMemoryRemovalChannel, InMemoryStore

__all__ = [
    "ContactStore",
    "RemovalChannel",
    "RemovalChannelError",
    "RemovalTarget",
    "SaveRequest",
    "SaveResult",
    "InMemoryStore",
    "InMemoryRemovalChannel",
]
