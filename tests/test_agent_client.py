"""
Tests for the remote agent client.

A fake aiohttp session records requests and replays canned responses, so no
network is needed.

Verifies:
- Assistant/thread resolution on the first turn, reuse afterwards
- Streamed reply accumulation
- Failures surface as AgentError with stable categories
- Turn payload formatting (user message + metadata)
"""
import asyncio
import json
from unittest.mock import Mock

import aiohttp
import pytest

from editor.store import DocumentStore
from voice_loop.agent_client import AgentClient, build_run_metadata, build_user_message
from voice_loop.errors import AgentError, AgentErrorCategory, classify_agent_error


class FakeContent:
    def __init__(self, chunks, delay=0.0):
        self._chunks = chunks
        self._delay = delay

    async def iter_any(self):
        for chunk in self._chunks:
            if self._delay:
                await asyncio.sleep(self._delay)
            yield chunk


class FakeResponse:
    def __init__(self, status=200, json_body=None, chunks=(), delay=0.0):
        self.status = status
        self._json = json_body
        self.content = FakeContent(list(chunks), delay)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                Mock(real_url="http://agent.test"), (), status=self.status, message="boom"
            )

    async def json(self):
        return self._json


class FakeSession:
    closed = False

    def __init__(self, routes):
        # path suffix -> list of FakeResponse (consumed in order) or Exception
        self.routes = routes
        self.requests = []

    def post(self, url, json=None):
        self.requests.append((url, json))
        for suffix, responses in self.routes.items():
            if url.endswith(suffix):
                response = responses.pop(0) if isinstance(responses, list) else responses
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"unexpected POST {url}")


def _sse(*values) -> bytes:
    return "".join(f"data: {json.dumps(v, ensure_ascii=False)}\n\n" for v in values).encode("utf-8")


def _stream_routes(chunks, assistants=None, **stream_kwargs):
    return {
        "/assistants/search": [FakeResponse(json_body=assistants or [])],
        "/assistants": [FakeResponse(json_body={"assistant_id": "asst_new"})],
        "/threads": [FakeResponse(json_body={"thread_id": "thr_1"})],
        "/runs/stream": [FakeResponse(chunks=chunks, **stream_kwargs)],
    }


@pytest.mark.asyncio
async def test_first_turn_creates_assistant_and_thread():
    body = _sse({"run_id": "r1"}, "Action: next_page\n", {"content": "Answer: Xong."})
    session = FakeSession(_stream_routes([body[:17], body[17:]]))
    client = AgentClient("http://agent.test/", graph_id="editor", session=session)

    reply = await client.run_turn("trang sau", [{"role": "user", "content": "trước"}], {"action": "voice_command"})

    assert reply == "Action: next_page\nAnswer: Xong."
    assert client.assistant_id == "asst_new"
    assert client.thread_id == "thr_1"

    urls = [url for url, _ in session.requests]
    assert urls == [
        "http://agent.test/assistants/search",
        "http://agent.test/assistants",
        "http://agent.test/threads",
        "http://agent.test/threads/thr_1/runs/stream",
    ]
    assert session.requests[1][1]["graph_id"] == "editor"
    run = session.requests[3][1]
    assert run["assistant_id"] == "asst_new"
    assert run["stream_mode"] == "updates"
    assert run["input"]["messages"][-1] == {"role": "user", "content": "trang sau"}
    assert run["metadata"] == {"action": "voice_command"}


@pytest.mark.asyncio
async def test_existing_assistant_and_thread_are_reused():
    routes = _stream_routes([_sse("một")], assistants=[{"assistant_id": "asst_1"}, {"assistant_id": "asst_2"}])
    routes["/runs/stream"].append(FakeResponse(chunks=[_sse("hai")]))
    session = FakeSession(routes)
    client = AgentClient("http://agent.test", session=session)

    assert await client.run_turn("a", [], {}) == "một"
    assert await client.run_turn("b", [], {}) == "hai"

    assert client.assistant_id == "asst_1"
    urls = [url for url, _ in session.requests]
    assert urls.count("http://agent.test/threads") == 1
    assert not any(url.endswith("/assistants") for url in urls)


@pytest.mark.asyncio
async def test_stream_without_text_returns_none():
    session = FakeSession(_stream_routes([_sse({"run_id": "r1"}, {"messages": []})]))
    client = AgentClient(session=session)
    assert await client.run_turn("a", [], {}) is None


@pytest.mark.asyncio
async def test_http_error_is_categorized_and_thread_reset():
    routes = _stream_routes([])
    routes["/runs/stream"] = [FakeResponse(status=500)]
    client = AgentClient(session=FakeSession(routes))

    with pytest.raises(AgentError) as exc:
        await client.run_turn("a", [], {})

    assert exc.value.category == AgentErrorCategory.HTTP_ERROR
    assert exc.value.status == 500
    assert client.thread_id is None


@pytest.mark.asyncio
async def test_timeout_is_categorized():
    session = FakeSession(_stream_routes([_sse("chậm")], delay=1.0))
    client = AgentClient(session=session, timeout_seconds=0.01)

    with pytest.raises(AgentError) as exc:
        await client.run_turn("a", [], {})

    assert exc.value.category == AgentErrorCategory.TIMEOUT


@pytest.mark.asyncio
async def test_connection_error_is_categorized():
    session = FakeSession({"/assistants/search": aiohttp.ClientConnectionError("refused")})
    client = AgentClient(session=session)

    with pytest.raises(AgentError) as exc:
        await client.run_turn("a", [], {})

    assert exc.value.category == AgentErrorCategory.NETWORK_ERROR


@pytest.mark.parametrize("error,category", [
    (AgentError("agent.bad_stream"), AgentErrorCategory.BAD_STREAM),
    (asyncio.TimeoutError(), AgentErrorCategory.TIMEOUT),
    (aiohttp.ClientPayloadError("truncated"), AgentErrorCategory.BAD_STREAM),
    (UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid"), AgentErrorCategory.BAD_STREAM),
    (ConnectionResetError(), AgentErrorCategory.NETWORK_ERROR),
    (RuntimeError("request timed out"), AgentErrorCategory.TIMEOUT),
    (RuntimeError("network unreachable"), AgentErrorCategory.NETWORK_ERROR),
    (KeyError("thread_id"), AgentErrorCategory.UNKNOWN_ERROR),
])
def test_classify_agent_error(error, category):
    assert classify_agent_error(error) == category


def test_user_message_carries_page_context():
    store = DocumentStore.with_blank_document()
    store.append_to_current_page("Dòng đầu")
    store.add_page("Nội dung hai", title="Kết luận")

    message = build_user_message("đọc trang", store)

    assert message == (
        "đọc trang\n\n"
        "Current page: 2/2 - Kết luận\n"
        "Current page content: Nội dung hai"
    )


def test_user_message_without_document():
    assert build_user_message("xin chào", DocumentStore()) == (
        "xin chào\n\nCurrent page: 1/1\nCurrent page content: "
    )


def test_run_metadata_describes_documents():
    store = DocumentStore.with_blank_document()
    doc = store.current_document

    metadata = build_run_metadata(store)

    assert metadata["current_document"] == doc.id
    assert metadata["current_page"] == 1
    assert metadata["total_pages"] == 1
    assert metadata["documents"] == [doc.summary()]
    assert metadata["action"] == "voice_command"
