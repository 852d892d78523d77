"""
Base Tool Abstract Class for chatnav

This module defines the Tool interface implemented by components that answer user
messages on their own, without going through the conversational model. The web
search/browse command handler is the main example.

Key Concepts:
-------------
1. Tool Invocation: the message service hands every inbound message to the tool
2. Message Processing: the tool yields zero or more outbound messages
3. Not Handled: a tool that yields nothing leaves the message to the next component
4. Recipient Consistency: replies always go back to the user who sent the message

Architecture:
-------------
- Tools are async generators that yield Reply / SummarizationRequest objects
- Each tool has a unique name used as the author prefix of its replies
- Tools provide instruction text describing their commands to the user
- Tools can maintain per-user state across invocations (e.g., browsing sessions)
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ..types import InboundMessage, OutboundMessage, Reply


def _maybe_update_inplace_and_validate_recipient(
    *, input_message: InboundMessage, tool_message: OutboundMessage
) -> None:
    """
    Ensures replies are addressed to the sender of the triggering message.

    - Auto-sets the recipient on tool messages if unset
    - Raises an error if the tool message names a different recipient

    Args:
        input_message: The message that triggered the tool
        tool_message: The outbound message produced by the tool

    Raises:
        ValueError: If tool_message is addressed to someone else
    """
    if tool_message.recipient != input_message.sender:
        if tool_message.recipient is None:
            tool_message.recipient = input_message.sender
        else:
            raise ValueError(
                f"Messages from tool should be addressed to the sender ({input_message.sender=}), "
                f"not to {tool_message.recipient=}."
            )


class Tool(ABC):
    """
    Something that can answer a user message directly.

    Tools expose a small command language to users (e.g. `!search`, `!open 2`) and
    keep whatever state they need to interpret follow-up commands.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        An identifier for the tool. Replies are authored as `{name}.{command}`.
        """

    @property
    def output_recipient_should_match_sender(self) -> bool:
        """
        A flag which indicates whether outbound messages must go back to the sender.
        """
        return True

    async def process(self, message: InboundMessage) -> AsyncIterator[OutboundMessage]:
        """
        Public entry point for processing messages sent to this tool.

        This method enforces recipient consistency on each yielded message and delegates
        to the concrete implementation in _process(). Tools should NOT override this method.

        Args:
            message: The inbound message from the transport.

        Yields:
            Outbound messages for the sender. Yielding nothing means the tool did not
            handle the message and the caller should route it elsewhere.
        """
        async for m in self._process(message):
            if self.output_recipient_should_match_sender:
                _maybe_update_inplace_and_validate_recipient(input_message=message, tool_message=m)
            yield m

    @abstractmethod
    async def _process(self, message: InboundMessage) -> AsyncIterator[OutboundMessage]:
        """
        Core tool implementation that concrete tools must override.

        Implementation Notes:
        - This is an async generator, so use 'yield' to return messages
        - Yield progress notices before long-running operations
        - Handle errors gracefully and return them via error_message()
        """
        if False:  # This is to convince the type checker that this is an async generator.
            yield  # type: ignore[unreachable]
        _ = message  # Stifle "unused argument" warning.
        raise NotImplementedError

    @abstractmethod
    def instruction(self) -> str:
        """
        Returns a text description of the tool's commands, shown to users asking for help.
        """
        raise NotImplementedError

    def instruction_dict(self) -> dict[str, str]:
        """
        Returns the tool instruction as a dictionary mapping tool name to instruction text.
        """
        return {self.name: self.instruction()}

    def error_message(self, error_message: str, recipient: str | None = None) -> Reply:
        """
        Constructs a standardized error reply from this tool.

        Usage:
            try:
                result = await risky_operation()
            except BackendError as e:
                yield self.error_message(f"Operation failed: {e}")
        """
        return Reply(text=error_message, recipient=recipient, author=self.name)
