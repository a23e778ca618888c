import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.ai.ad_pipeline import AdPromptError
from app.ai.compositor import CompositionError
from app.services.usage_guard import LimitReachedError, UsageGuardUnavailableError
from app.video.models import InvalidGenerationRequestError, ProviderSubmissionError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly; pydantic puts them in ctx.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None, **extra: Any) -> dict[str, Any]:
  """Build an error payload; `requestId` lets support correlate client reports with logs."""
  payload: dict[str, Any] = {**extra, "detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content", "prompt"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors; details stay in the logs."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions; 5xx details are never returned to callers."""
  from app.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id), headers=exc.headers)

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def limit_reached_exception_handler(request: Request, exc: LimitReachedError) -> JSONResponse:
  """Report a refused submission as LimitReached, distinct from a failed job."""
  request_id = _request_id(request)
  logger.info("Limit reached request_id=%s kind=%s limit=%s used=%s", request_id, exc.kind, exc.limit, exc.used)
  detail = f"You have reached your monthly {exc.kind} limit ({exc.limit}). Upgrade your plan for more."
  return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=_error_payload(detail, request_id=request_id, status="LimitReached", limit=exc.limit, used=exc.used, remaining=0))


async def invalid_request_exception_handler(request: Request, exc: InvalidGenerationRequestError) -> JSONResponse:
  request_id = _request_id(request)
  logger.warning("Invalid generation request request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), request_id=request_id))


async def provider_submission_exception_handler(request: Request, exc: ProviderSubmissionError) -> JSONResponse:
  """Provider rejections surface as a generic 502; the provider's body is only logged."""
  request_id = _request_id(request)
  logger.error("Provider submission failed request_id=%s provider=%s status_code=%s error=%s", request_id, exc.provider_id, exc.status_code, exc)
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload("Video generation failed. Please try again.", request_id=request_id))


async def prompt_generation_exception_handler(request: Request, exc: CompositionError | AdPromptError) -> JSONResponse:
  request_id = _request_id(request)
  logger.error("Prompt generation failed request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload("Prompt generation failed. Please try again.", request_id=request_id))


async def usage_unavailable_exception_handler(request: Request, exc: UsageGuardUnavailableError) -> JSONResponse:
  request_id = _request_id(request)
  logger.error("Usage guard unavailable request_id=%s path=%s", request_id, request.url.path)
  return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=_error_payload("Usage limits are temporarily unavailable.", request_id=request_id))
