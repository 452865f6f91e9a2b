"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import uuid


def generate_job_id() -> str:
  """Return a new queue job identifier."""
  return str(uuid.uuid4())


def generate_nanoid(size: int = 10) -> str:
  """Return a short non-sequential id suitable for public references."""
  alphabet = string.ascii_letters + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))


def generate_scenario_id() -> str:
  """Return an identifier for a generated custom scenario."""
  return f"custom-{generate_nanoid(10)}"


def generate_request_id() -> str:
  """Return a short id used to correlate API responses with server logs."""
  return uuid.uuid4().hex[:12]
