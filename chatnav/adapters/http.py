"""
HTTP adapter: a small FastAPI app in front of the message service.

Endpoints:
    POST /messages            {"sender": ..., "text": ...} -> {"replies": [...]}
    GET  /health              liveness probe
"""

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .adapter import Adapter

logger = structlog.stdlib.get_logger(component=__name__)


class MessageRequest(BaseModel):
    sender: str
    text: str


class MessageResponse(BaseModel):
    replies: list[str]


class HttpAdapter(Adapter):
    def __init__(self, host: str = "127.0.0.1", port: int = 8080):
        super().__init__()
        self.host = host
        self.port = port
        self.app = self.create_app()
        self._server: uvicorn.Server | None = None

    def create_app(self) -> FastAPI:
        app = FastAPI(title="chatnav")

        @app.get("/health")
        async def health() -> dict[str, str]:
            return {"status": "ok"}

        @app.post("/messages")
        async def post_message(request: MessageRequest) -> MessageResponse:
            if self.message_handler is None:
                raise HTTPException(status_code=503, detail="No message handler configured")
            logger.info("http_message", sender=request.sender)
            replies = [text async for text in self.message_handler(request.sender, request.text)]
            return MessageResponse(replies=replies)

        return app

    async def initialize(self) -> None:
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_config=None)
        self._server = uvicorn.Server(config)

    async def serve(self) -> None:
        if self._server is None:
            await self.initialize()
        assert self._server is not None
        await self._server.serve()

    async def send_message(self, recipient: str, text: str) -> None:
        raise NotImplementedError("HTTP clients receive replies in the POST /messages response")

    async def close(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
