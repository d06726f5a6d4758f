"""Leg abstraction for voxrelay.

A bridge session has two legs: the telephony leg (inbound, accepted by the
server) and the assistant leg (outbound, dialled after provisioning). Both
move whole WebSocket messages: ``bytes`` for audio, ``str`` for control.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class BaseTransport(ABC):
    """One leg of a bridge session.

    Every failure to move a message surfaces as
    :class:`~voxrelay.core.errors.TransportError`, which the session treats
    as the leg having ended.
    """

    @abstractmethod
    async def connect(self, **kwargs) -> None:
        """Open the leg.

        For the telephony leg this accepts the pending upgrade; for the
        assistant leg it dials the provisioned media URL.
        """
        ...

    @abstractmethod
    async def send(self, data: bytes | str) -> None:
        """Send one message. ``bytes`` go out as binary frames."""
        ...

    @abstractmethod
    async def recv(self) -> bytes | str:
        """Wait for the next message."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the leg. Must be idempotent."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    async def send_json(self, message: dict[str, Any]) -> None:
        """Send a control message as a JSON text frame."""
        await self.send(json.dumps(message))
