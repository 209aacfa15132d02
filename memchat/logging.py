"""Structured logging for memchat (structlog rendered through stdlib logging).

Chat transcripts and provider credentials both pass through log calls, so
every event goes through :func:`scrub_event` before rendering. Credentials
are masked wherever they appear, and conversation text is clipped to a
per-field budget so a summary pass does not dump the whole backlog.
"""

import json
import logging
import re
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog

_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),           # OpenAI-compatible keys
    re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{10,}"),    # Authorization headers
    re.compile(r"AIza[A-Za-z0-9_-]{10,}"),           # Google API keys
]
# user:password@ in api_base / embedding endpoint URLs
_URL_CREDENTIALS = re.compile(r"(?<=://)[^/@\s:]+:[^/@\s]+(?=@)")

# Keys whose whole value is a credential, whatever it looks like.
_SECRET_KEYS = frozenset({"api_key", "authorization"})

# Conversation-text keys and how many characters of each reach the log.
_TEXT_LIMITS = {
    "content": 200,
    "query": 200,
    "reply": 200,
    "response": 200,
    "summary": 400,
    "transcript": 400,
}

# Client libraries that log request bodies (and so user text) at DEBUG/INFO.
_CHATTY_LOGGERS = ("LiteLLM", "httpx", "httpcore", "chromadb")


def mask_secret(value: str) -> str:
    """Mask a secret value, keeping first 4 and last 4 chars visible.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def scrub_text(value: str) -> str:
    """Mask key-shaped substrings and URL credentials in *value*."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: mask_secret(m.group(0)), value)
    return _URL_CREDENTIALS.sub("****", value)


def clip_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}... ({len(value)} chars)"


def scrub_event(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Structlog processor applied to every memchat event."""
    for key, val in event_dict.items():
        if not isinstance(val, str):
            continue
        if key in _SECRET_KEYS and val:
            # Already-masked values are left alone.
            event_dict[key] = val if "****" in val else mask_secret(val)
            continue
        val = scrub_text(val)
        limit = _TEXT_LIMITS.get(key)
        event_dict[key] = clip_text(val, limit) if limit else val
    return event_dict


@contextmanager
def session_context(session_id: str) -> Iterator[None]:
    """Attach ``session_id`` to every event logged inside the block, across awaits."""
    with structlog.contextvars.bound_contextvars(session_id=session_id):
        yield


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Route structlog through a single stderr handler on the ``memchat`` logger.

    Args:
        json_output: Emit one JSON object per line; otherwise the dev console renderer.
        level: Level name applied to the ``memchat`` logger hierarchy. The
            HTTP and vector-store client loggers stay at WARNING or above
            unless ``level`` is DEBUG.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        scrub_event,
    ]
    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer(serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw))
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger("memchat")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    root.propagate = False

    client_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def get_logger(name: str = "memchat") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
