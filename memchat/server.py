"""Minimal asyncio HTTP server for the chat and search operations.

Routes:
- ``POST /api/chat``   ``{"message", "sessionId"}`` -> ``{"reply", "debug"}``
- ``POST /api/search`` ``{"query", "sessionId", "limit"}`` -> ``{"results"}``
- ``GET  /health``     -> ``{"status": "ok", ...}``
"""

from __future__ import annotations

import asyncio
import datetime
import json
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from memchat.errors import CompletionError
from memchat.logging import get_logger

if TYPE_CHECKING:
    from memchat.agent.chat import ChatService

logger = get_logger(__name__)

_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    500: "Internal Server Error",
}
_MAX_BODY_BYTES = 1024 * 1024
_HEADER_TIMEOUT = 5.0

_ROUTES = {
    "/health": "GET",
    "/api/chat": "POST",
    "/api/search": "POST",
}


class BadRequest(ValueError):
    """Client sent an unusable request."""


def _response(status: int, payload: Any) -> bytes:
    body = json.dumps(payload, ensure_ascii=False).encode()
    head = (
        f"HTTP/1.1 {status} {_REASONS.get(status, 'Error')}\r\n"
        "Content-Type: application/json; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n\r\n"
    ).encode()
    return head + body


class ChatServer:
    """Serves a :class:`ChatService` over plain HTTP/1.1 (one request per connection)."""

    def __init__(self, service: ChatService, host: str = "127.0.0.1", port: int = 8787) -> None:
        self.service = service
        self.host = host
        self.port = port
        self._server: asyncio.AbstractServer | None = None
        self.last_processed_at: str | None = None

    def record_processed(self) -> None:
        self.last_processed_at = datetime.datetime.now(datetime.timezone.utc).isoformat()

    @staticmethod
    def _parse_json(body: bytes) -> dict[str, Any]:
        if not body:
            return {}
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadRequest(f"Invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise BadRequest("JSON body must be an object")
        return data

    @staticmethod
    def _session_id(data: dict[str, Any]) -> str:
        session_id = data.get("sessionId") or "default"
        if not isinstance(session_id, str):
            raise BadRequest("sessionId must be a string")
        return session_id

    async def _chat(self, data: dict[str, Any]) -> tuple[int, Any]:
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            raise BadRequest("message must be a non-empty string")
        result = await self.service.handle_turn(message, session_id=self._session_id(data))
        self.record_processed()
        return 200, {"reply": result.reply, "debug": result.debug}

    async def _search(self, data: dict[str, Any]) -> tuple[int, Any]:
        query = data.get("query")
        if not isinstance(query, str):
            raise BadRequest("query must be a string")
        limit = data.get("limit", 5)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise BadRequest("limit must be a non-negative integer")
        ranked = await self.service.search(query, session_id=self._session_id(data), limit=limit)
        results = [
            {"content": r["content"], "role": r["role"], "similarity": r["score"]}
            for r in ranked
        ]
        return 200, {"results": results}

    def _health(self) -> tuple[int, Any]:
        return 200, {
            "status": "ok",
            "model": self.service.model,
            "active_sessions": sorted(self.service.locks.in_progress),
            "last_processed_at": self.last_processed_at,
        }

    async def dispatch(self, method: str, path: str, body: bytes) -> tuple[int, Any]:
        """Route one request and return ``(status, payload)``."""
        expected = _ROUTES.get(path)
        if expected is None:
            return 404, {"error": "Not Found"}
        if method != expected:
            return 405, {"error": "Method Not Allowed"}
        try:
            if path == "/health":
                return self._health()
            data = self._parse_json(body)
            if path == "/api/chat":
                return await self._chat(data)
            return await self._search(data)
        except BadRequest as e:
            return 400, {"error": str(e)}
        except CompletionError as e:
            logger.error("chat_completion_failed", path=path, error=str(e))
            return 500, {"error": str(e)}
        except Exception as e:
            logger.exception("request_failed", path=path)
            return 500, {"error": str(e)}

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=_HEADER_TIMEOUT)
            parts = request_line.decode(errors="replace").split()
            if len(parts) < 2:
                writer.write(_response(400, {"error": "Bad Request"}))
                await writer.drain()
                return

            method = parts[0].upper()
            path = urlsplit(parts[1]).path

            content_length = 0
            while True:
                line = await asyncio.wait_for(reader.readline(), timeout=_HEADER_TIMEOUT)
                if line in (b"\r\n", b"\n", b""):
                    break
                name, _, value = line.decode(errors="replace").partition(":")
                if name.strip().lower() == "content-length":
                    try:
                        content_length = int(value.strip())
                    except ValueError:
                        content_length = -1

            if content_length < 0:
                writer.write(_response(400, {"error": "Invalid Content-Length"}))
            elif content_length > _MAX_BODY_BYTES:
                writer.write(_response(413, {"error": "Payload Too Large"}))
            else:
                body = await reader.readexactly(content_length) if content_length else b""
                status, payload = await self.dispatch(method, path, body)
                writer.write(_response(status, payload))
            await writer.drain()
        except (asyncio.TimeoutError, asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug("connection_dropped", error=str(e))
        finally:
            writer.close()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        logger.info("Chat server started", host=self.host, port=self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        async with self._server:
            await self._server.serve_forever()

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Chat server stopped")
