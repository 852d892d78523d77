"""
Transport adapters.

- adapter.py: the Adapter contract (initialize, send_message, set_message_handler, close)
- console.py: interactive terminal chat
- http.py: FastAPI endpoints for generic HTTP clients
"""

from .adapter import Adapter, MessageHandler
from .console import ConsoleAdapter
from .http import HttpAdapter

__all__ = ["Adapter", "ConsoleAdapter", "HttpAdapter", "MessageHandler"]
