import json
import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import get_settings

logger = logging.getLogger("app.core.middleware")

_SENSITIVE_KEYS = frozenset({"password", "token", "idtoken", "key", "authorization", "cookie", "secret", "email", "imageurl", "image_url", "imageurls", "image_urls"})


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  if isinstance(data, dict):
    return {k: ("***" if k.lower() in _SENSITIVE_KEYS else _redact_sensitive_keys(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _header(scope: Scope, name: bytes) -> str | None:
  for key, value in scope.get("headers", []):
    if key.lower() == name:
      return value.decode("latin-1")
  return None


def _request_target(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Render a request body for logs; JSON is redacted, binary is summarized."""
  if not body:
    return "<empty>"
  normalized = (content_type or "").lower()
  if "json" not in normalized and not normalized.startswith("text/"):
    return f"<non-text body {len(body)} bytes>"
  if len(body) > max_bytes:
    # Partial JSON would not parse; log the raw prefix.
    return f"{body[:max_bytes].decode('utf-8', errors='replace')}...(truncated)"

  text = body.decode("utf-8", errors="replace")
  if "json" in normalized:
    try:
      return json.dumps(_redact_sensitive_keys(json.loads(text)), ensure_ascii=True)
    except json.JSONDecodeError:
      return text
  return text


class RequestLoggingMiddleware:
  """Assign a request id, log method, target, status and latency, and optionally the request body."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    settings = get_settings()
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    start_time = time.perf_counter()
    logger.info("Incoming request request_id=%s %s %s", request_id, scope.get("method", "UNKNOWN"), _request_target(scope))

    receive_wrapper = receive
    if settings.log_http_bodies:
      chunks: list[bytes] = []
      while True:
        message = await receive()
        if message.get("type") != "http.request":
          break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
          break
      request_body = b"".join(chunks)
      body_sent = False

      async def receive_wrapper() -> Message:
        nonlocal body_sent
        if body_sent:
          return {"type": "http.request", "body": b"", "more_body": False}
        body_sent = True
        return {"type": "http.request", "body": request_body, "more_body": False}

      if request_body:
        logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(request_body, _header(scope, b"content-type"), settings.log_http_body_bytes))

    status_code = 0

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message.get("status", 0)
        headers = MutableHeaders(scope=message)
        if "x-request-id" not in headers:
          headers["x-request-id"] = request_id
      await send(message)

    await self.app(scope, receive_wrapper, send_wrapper)
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code, (time.perf_counter() - start_time) * 1000)


class SecurityHeadersMiddleware:
  """Strip server fingerprinting headers and forbid MIME sniffing."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in ("x-powered-by", "server"):
          if name in headers:
            del headers[name]
        headers.setdefault("x-content-type-options", "nosniff")
      await send(message)

    await self.app(scope, receive, send_wrapper)
