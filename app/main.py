from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.ai.ad_pipeline import AdPromptError
from app.ai.compositor import CompositionError
from app.api.models import HealthResponse
from app.api.routes import prompts, videos
from app.config import get_settings
from app.core.exceptions import (
  global_exception_handler,
  http_exception_handler,
  invalid_request_exception_handler,
  limit_reached_exception_handler,
  prompt_generation_exception_handler,
  provider_submission_exception_handler,
  request_validation_exception_handler,
  usage_unavailable_exception_handler,
)
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.services.usage_guard import LimitReachedError, UsageGuardUnavailableError
from app.video.models import InvalidGenerationRequestError, ProviderSubmissionError

settings = get_settings()

app = FastAPI(title="Adreel Engine", lifespan=lifespan, docs_url=None if settings.environment == "production" else "/docs", redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "content-disposition", "retry-after", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(LimitReachedError, limit_reached_exception_handler)
app.add_exception_handler(InvalidGenerationRequestError, invalid_request_exception_handler)
app.add_exception_handler(ProviderSubmissionError, provider_submission_exception_handler)
app.add_exception_handler(CompositionError, prompt_generation_exception_handler)
app.add_exception_handler(AdPromptError, prompt_generation_exception_handler)
app.add_exception_handler(UsageGuardUnavailableError, usage_unavailable_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False, response_model=HealthResponse)
async def health_check() -> HealthResponse:
  """Return a simple health status."""
  return HealthResponse(environment=settings.environment)


app.include_router(videos.router, prefix="/v1/videos", tags=["videos"])
app.include_router(prompts.router, prefix="/v1/prompts", tags=["prompts"])
