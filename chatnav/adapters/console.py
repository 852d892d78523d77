"""
Console adapter: chat with the bot from a terminal.

Every line typed is one message from a single local user. Typing `quit` or sending
EOF (Ctrl-D) ends the session; `exit` is left to the bot, where it leaves browse
mode.
"""

import asyncio
from typing import Callable

import termcolor

from .adapter import Adapter

MESSAGE_PADDING = 8
QUIT_COMMANDS = ("quit", "/quit")


class ConsoleAdapter(Adapter):
    def __init__(self, sender: str = "console-user", read_line: Callable[[str], str] = input):
        super().__init__()
        self.sender = sender
        self.read_line = read_line
        self.is_running = False

    async def initialize(self) -> None:
        print(termcolor.colored("chatnav console", "cyan"), flush=True)
        print(termcolor.colored("Type !help for commands, 'quit' to leave.", "cyan"), flush=True)
        self.is_running = True

    async def send_message(self, recipient: str, text: str) -> None:
        print(termcolor.colored("Bot:".ljust(MESSAGE_PADDING), "magenta"), text, flush=True)

    async def run(self) -> None:
        """Reads lines until the user quits, answering each one."""
        prompt = termcolor.colored("You:".ljust(MESSAGE_PADDING), "red")
        while self.is_running:
            try:
                line = await asyncio.to_thread(self.read_line, prompt)
            except EOFError:
                break
            if line.strip().lower() in QUIT_COMMANDS:
                break
            if not line.strip() or self.message_handler is None:
                continue
            async for text in self.message_handler(self.sender, line):
                await self.send_message(self.sender, text)
        await self.close()

    async def close(self) -> None:
        if self.is_running:
            self.is_running = False
            print(termcolor.colored("Chat session ended. Goodbye!", "cyan"), flush=True)
