import pytest
from fastapi.testclient import TestClient

from chatnav.adapters import ConsoleAdapter, HttpAdapter


async def echo_handler(sender, text):
    yield f"notice for {sender}"
    yield f"echo: {text}"


def test_http_health():
    client = TestClient(HttpAdapter().app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_http_post_message_returns_replies():
    adapter = HttpAdapter()
    adapter.set_message_handler(echo_handler)
    client = TestClient(adapter.app)
    response = client.post("/messages", json={"sender": "alice", "text": "!search cats"})
    assert response.status_code == 200
    assert response.json() == {"replies": ["notice for alice", "echo: !search cats"]}


def test_http_without_handler():
    client = TestClient(HttpAdapter().app)
    response = client.post("/messages", json={"sender": "alice", "text": "hi"})
    assert response.status_code == 503


def test_http_rejects_malformed_body():
    adapter = HttpAdapter()
    adapter.set_message_handler(echo_handler)
    client = TestClient(adapter.app)
    assert client.post("/messages", json={"sender": "alice"}).status_code == 422


@pytest.mark.asyncio
async def test_http_cannot_push_messages():
    adapter = HttpAdapter()
    with pytest.raises(NotImplementedError, match="POST /messages"):
        await adapter.send_message("alice", "hello")
    assert TestClient(adapter.app).get("/messages/alice").status_code in (404, 405)


@pytest.mark.asyncio
async def test_console_round_trip(capsys):
    lines = iter(["hello", "   ", "quit", "never read"])
    adapter = ConsoleAdapter(sender="me", read_line=lambda prompt: next(lines))
    adapter.set_message_handler(echo_handler)
    await adapter.initialize()
    await adapter.run()
    out = capsys.readouterr().out
    assert "notice for me" in out
    assert "echo: hello" in out
    assert "never read" not in out
    assert "Goodbye!" in out
    assert not adapter.is_running


@pytest.mark.asyncio
async def test_console_stops_on_eof(capsys):
    def read_line(prompt):
        raise EOFError

    adapter = ConsoleAdapter(read_line=read_line)
    adapter.set_message_handler(echo_handler)
    await adapter.initialize()
    await adapter.run()
    assert "Goodbye!" in capsys.readouterr().out
