from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from scenario_queue.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str:
  if not authorization:
    return ""
  scheme, _, token = authorization.strip().partition(" ")
  if scheme.lower() != "bearer":
    return ""
  return token.strip()


def cron_credentials_valid(secret: str, *, authorization: str | None, x_cron_secret: str | None) -> bool:
  """Compare both accepted credential carriers in constant time."""
  bearer_valid = secrets.compare_digest(_bearer_token(authorization).encode(), secret.encode())
  header_valid = secrets.compare_digest((x_cron_secret or "").encode(), secret.encode())
  return bearer_valid or header_valid


async def verify_cron_secret(
  settings: Annotated[Settings, Depends(get_settings)], authorization: Annotated[str | None, Header()] = None, x_cron_secret: Annotated[str | None, Header()] = None
) -> None:
  """Guard trigger endpoints with the shared cron secret."""
  if not settings.cron_secret:
    # Local runs may trigger passes by hand without configuring a secret.
    if settings.is_development:
      logger.warning("KAIWA_CRON_SECRET not set - allowing unauthenticated cron access in %s", settings.environment)
      return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cron authentication is not configured.")

  if not cron_credentials_valid(settings.cron_secret, authorization=authorization, x_cron_secret=x_cron_secret):
    logger.warning("Unauthorized cron request rejected")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
