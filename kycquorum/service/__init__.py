"""Service surface: change notifications and the optional HTTP server."""

from kycquorum.service.events import (
    ConsensusEvent,
    ConsensusEventEmitter,
    EventType,
    IdempotentListener,
)

__all__ = [
    "ConsensusEvent",
    "ConsensusEventEmitter",
    "EventType",
    "IdempotentListener",
]
