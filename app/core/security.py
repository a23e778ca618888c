from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from app.config import get_settings
from app.core.firebase import verify_id_token
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

security_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
  """Verified caller identity resolved from a Firebase ID token."""

  id: str
  email: str | None
  is_admin: bool = False


def _unauthorized(detail: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_current_user(token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)]) -> AuthenticatedUser:
  """Verify the bearer token and return the caller identity."""
  if token is None or not token.credentials:
    raise _unauthorized("Not authenticated")

  # firebase_admin verification is blocking (certificate fetch), keep it off the event loop.
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise _unauthorized("Invalid authentication credentials")

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise _unauthorized("Invalid token claims")

  email = decoded_claims.get("email")
  normalized_email = str(email).strip().lower() if email else None
  admin_emails = get_settings().admin_emails
  is_admin = normalized_email is not None and normalized_email in admin_emails
  return AuthenticatedUser(id=str(firebase_uid), email=normalized_email, is_admin=is_admin)
