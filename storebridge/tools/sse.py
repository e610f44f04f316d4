"""Server-sent events transport for the tool dispatcher.

A client opens ``GET .../sse`` and receives an ``endpoint`` event naming
the URL to POST its JSON-RPC requests to. Responses are pushed back on
the open stream as ``message`` events. Idle streams get a ``: ping``
comment every ``ping_interval`` seconds so proxies keep them open.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

import structlog

from storebridge.domain.base import utc_now
from storebridge.tools.dispatcher import JsonRpcDispatcher

logger = structlog.get_logger()


def format_event(data: str, event: str | None = None) -> str:
    """Render one SSE frame."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


PING_FRAME = ": ping\n\n"


@dataclass
class SseSession:
    """An open event stream and its outbound queue."""

    id: str
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    created_at: datetime = field(default_factory=utc_now)


class SseSessionManager:
    """Tracks open SSE sessions and routes their requests to a dispatcher."""

    def __init__(self, dispatcher: JsonRpcDispatcher, ping_interval: float = 30.0) -> None:
        self.dispatcher = dispatcher
        self.ping_interval = ping_interval
        self._sessions: dict[str, SseSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self) -> SseSession:
        session = SseSession(id=str(uuid4()))
        self._sessions[session.id] = session
        logger.info("SSE session opened", session_id=session.id)
        return session

    def get(self, session_id: str) -> SseSession | None:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("SSE session closed", session_id=session_id)

    async def submit(self, session: SseSession, request: Any) -> None:
        """Dispatch a request and queue its response on the session stream."""
        response = await self.dispatcher.handle(request)
        if response is not None:
            await session.queue.put(response)

    async def stream(self, endpoint_url: str) -> AsyncIterator[str]:
        """Open a session and yield its SSE frames until the client goes away.

        The session is registered on the first iteration, so a stream that
        is never started leaves no session behind.
        """
        session = self.open()
        try:
            yield format_event(f"{endpoint_url}?session_id={session.id}", event="endpoint")
            while True:
                try:
                    message = await asyncio.wait_for(
                        session.queue.get(), timeout=self.ping_interval
                    )
                except asyncio.TimeoutError:
                    yield PING_FRAME
                    continue
                yield format_event(json.dumps(message, default=str), event="message")
        finally:
            self.close(session.id)
