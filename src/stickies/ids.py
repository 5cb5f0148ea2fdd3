"""Ingestion identifiers.

Voice ingestions use ``<epoch-millis>-<uuid4>`` for traceability; typed
submissions use ``text:<uuid4>`` so the two can never be confused.
"""

from __future__ import annotations

import re
import time
import uuid

TEXT_PREFIX = "text:"

_VOICE_ID_RE = re.compile(
    r"^\d+-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def new_voice_ingestion_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4()}"


def new_text_ingestion_id() -> str:
    return f"{TEXT_PREFIX}{uuid.uuid4()}"


def is_valid_ingestion_id(value: str) -> bool:
    """True for a well-formed voice ingestion id."""
    return bool(_VOICE_ID_RE.match(value))


def is_text_ingestion_id(value: str) -> bool:
    return value.startswith(TEXT_PREFIX)
