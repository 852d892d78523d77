"""
Base Adapter Abstract Class

An adapter connects chatnav to a messaging surface. It turns whatever the platform
delivers into `(sender, text)` calls on the message handler, and delivers the texts
the handler yields back to the user.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

# (sender, text) -> reply texts, in delivery order
MessageHandler = Callable[[str, str], AsyncIterator[str]]


class Adapter(ABC):
    def __init__(self) -> None:
        self.message_handler: MessageHandler | None = None

    @abstractmethod
    async def initialize(self) -> None:
        """Connect to the messaging surface and start accepting messages."""
        raise NotImplementedError

    @abstractmethod
    async def send_message(self, recipient: str, text: str) -> None:
        """Deliver one text to a user."""
        raise NotImplementedError

    def set_message_handler(self, callback: MessageHandler) -> None:
        self.message_handler = callback

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError
