from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional


class AbstractStorage(ABC):
    """
    Asynchronous key-value persistence supplied by the application.

    The library stores at most one value through it: the serialized current
    user session.
    """

    @abstractmethod
    async def set_string(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def get_string(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or None."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class AbstractWebSocketClient(ABC):
    """
    Duplex text stream used by the live query layer.

    Applications wrap their WebSocket library of choice in this interface and
    hand a factory for it to the client.
    """

    @abstractmethod
    async def connect(self, url: str) -> None:
        """Open the connection to ``url``."""
        pass

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send one text frame."""
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[str]:
        """
        Iterate over inbound text frames until the connection closes.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


WebSocketFactory = Callable[[], AbstractWebSocketClient]
