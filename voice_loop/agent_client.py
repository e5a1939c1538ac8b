"""
Remote agent client (LangGraph-style HTTP API).

One conversation uses one assistant and one thread, resolved lazily on the
first turn:
- POST /assistants/search -> first assistant, else POST /assistants (graph_id)
- POST /threads
- POST /threads/{thread_id}/runs/stream -> server-sent events

Every failure surfaces as AgentError with a stable category; the caller
routes it to the fallback interpreter. The whole turn is bounded by
timeout_seconds.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from logging_setup import get_logger, Component
from editor.store import DocumentStore
from .errors import AgentError, AgentErrorCategory, classify_agent_error
from .stream_events import SSEDecoder, StreamEvent, accumulate_reply, decode_event


logger = get_logger(Component.AGENT_CLIENT)


def build_user_message(utterance: str, store: DocumentStore) -> str:
    """The utterance plus the current page context, as the agent expects it."""
    doc = store.current_document
    page = store.get_current_page(doc) if doc is not None else None

    page_number = page.page_number if page is not None else 1
    total_pages = doc.total_pages if doc is not None else 1
    page_title = f" - {page.title}" if page is not None and page.title else ""
    content = page.content if page is not None else ""

    return (
        f"{utterance}\n\n"
        f"Current page: {page_number}/{total_pages}{page_title}\n"
        f"Current page content: {content}"
    )


def build_run_metadata(store: DocumentStore) -> Dict[str, Any]:
    doc = store.current_document
    return {
        "current_document": doc.id if doc is not None else None,
        "current_page": doc.current_page if doc is not None else None,
        "total_pages": doc.total_pages if doc is not None else None,
        "documents": [d.summary() for d in store.documents],
        "action": "voice_command",
    }


class AgentClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8123",
        *,
        graph_id: str = "agent",
        timeout_seconds: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.graph_id = graph_id
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None
        self.assistant_id: Optional[str] = None
        self.thread_id: Optional[str] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        async with self._get_session().post(f"{self.base_url}{path}", json=payload) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _ensure_thread(self) -> None:
        if self.assistant_id is None:
            assistants = await self._post_json("/assistants/search", {"limit": 100, "offset": 0})
            if isinstance(assistants, list) and assistants:
                self.assistant_id = assistants[0]["assistant_id"]
            else:
                created = await self._post_json("/assistants", {
                    "graph_id": self.graph_id,
                    "name": "Document Management Assistant",
                })
                self.assistant_id = created["assistant_id"]
            logger.info("Agent assistant resolved", assistant_id=self.assistant_id)

        if self.thread_id is None:
            thread = await self._post_json("/threads", {"metadata": {"purpose": "document_management"}})
            self.thread_id = thread["thread_id"]
            logger.info("Agent thread created", thread_id=self.thread_id)

    async def stream_run(
        self,
        messages: List[Dict[str, str]],
        metadata: Dict[str, Any],
    ) -> AsyncIterator[StreamEvent]:
        """Start a streaming run and yield decoded events in arrival order."""
        await self._ensure_thread()
        run_data = {
            "assistant_id": self.assistant_id,
            "input": {"messages": messages},
            "stream_mode": "updates",
            "metadata": metadata,
        }
        url = f"{self.base_url}/threads/{self.thread_id}/runs/stream"
        async with self._get_session().post(url, json=run_data) as resp:
            resp.raise_for_status()
            decoder = SSEDecoder()
            async for chunk in resp.content.iter_any():
                for value in decoder.feed(chunk):
                    yield decode_event(value)
            for value in decoder.flush():
                yield decode_event(value)

    async def _collect(self, messages: List[Dict[str, str]], metadata: Dict[str, Any]) -> Optional[str]:
        events = []
        async for event in self.stream_run(messages, metadata):
            events.append(event)
        return accumulate_reply(events)

    async def run_turn(
        self,
        user_message: str,
        history: List[Dict[str, str]],
        metadata: Dict[str, Any],
    ) -> Optional[str]:
        """
        Send one turn and return the accumulated reply (None: no agent output).

        Raises AgentError on any failure, including the timeout.
        """
        messages = [*history, {"role": "user", "content": user_message}]
        start_ts = time.time()
        try:
            reply = await asyncio.wait_for(self._collect(messages, metadata), timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            category = classify_agent_error(e)
            status = getattr(e, "status", None)
            logger.warning(
                "Agent call failed",
                category=category,
                error=str(e),
                error_type=type(e).__name__,
                status=status,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            if category == AgentErrorCategory.HTTP_ERROR:
                # A stale thread/assistant is the usual cause; resolve again next turn.
                self.thread_id = None
            raise AgentError(category, str(e) or type(e).__name__, status=status) from e

        logger.info(
            "Agent call completed",
            reply_length=len(reply) if reply else 0,
            history_length=len(history),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return reply
