"""Shared types for capability handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable

from memberdesk.models.room import RoomSession
from memberdesk.router import Capability

Emit = Callable[[str], Awaitable[None]]


@dataclass
class TurnContext:
    """One inbound message and the session it was routed against."""

    room_id: str
    text: str
    session: RoomSession
    emit: Emit


# Post-verification work keyed by intent name, e.g. "loan-lookup".
Continuation = Callable[[TurnContext, RoomSession], Awaitable[None]]


class CapabilityHandler(ABC):
    """Handles the messages the router assigns to one capability."""

    capability: Capability

    @abstractmethod
    async def handle(self, ctx: TurnContext) -> None:
        """Process the message, writing state before announcing a transition.

        ``StorageError`` is not caught here; the turn driver answers it.
        """
