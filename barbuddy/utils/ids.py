"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import time
import uuid


def generate_job_id() -> str:
  """Return a new background job identifier."""
  return str(uuid.uuid4())


def generate_document_id(prefix: str) -> str:
  """Return a time-ordered id for uploaded documents, e.g. ``ref_1718000000000_a1b2c``."""
  alphabet = string.ascii_lowercase + string.digits
  suffix = "".join(secrets.choice(alphabet) for _ in range(5))
  return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
