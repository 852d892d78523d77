"""
Message types exchanged between transports, tools and the conversational generator.

This module contains the Pydantic models that flow through chatnav. Every transport
adapter turns its platform envelope into an InboundMessage, and every component that
answers a user produces outbound messages:

- Reply: plain text delivered back to a user through the transport
- SummarizationRequest: a typed hand-off from the navigation core to the
  conversational generator, asking it to summarize the page the user is viewing

Outbound text is always plain text with lightweight emphasis markers (`*bold*`) and
literal command hints such as `!open 2` embedded so the rendering surface can show
them verbatim.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel


class InboundMessage(BaseModel):
    """
    A piece of text received from a user.

    Adapters create one of these per delivery from the transport.
    """
    sender: str  # Stable identity of the user (phone number, console id, ...)
    text: str  # Raw message text as typed by the user


class Reply(BaseModel):
    """
    Text to be delivered to a user.

    `recipient` may be left unset by a tool; the tool base class fills it in with
    the sender of the message being processed.
    """
    type: Literal["reply"] = "reply"
    text: str
    recipient: Optional[str] = None
    author: Optional[str] = None  # Component that produced the reply (e.g. "search.open")


class SummarizationRequest(BaseModel):
    """
    Request for the conversational generator to summarize a webpage.

    Produced by the `summarize` command. The message service resolves it through the
    LLM service and delivers the generated summary as a Reply.
    """
    type: Literal["summarization_request"] = "summarization_request"
    title: str  # Title of the page being summarized
    content: str  # Full extracted text of the page
    prompt: str  # Ready-to-send prompt built from title and content
    recipient: Optional[str] = None
    author: Optional[str] = None


OutboundMessage = Union[Reply, SummarizationRequest]
