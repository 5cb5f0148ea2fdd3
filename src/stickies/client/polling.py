"""Bounded status polling with an explicit attempt counter."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from stickies.errors import IngestionTimeoutError

logger = logging.getLogger(__name__)

TERMINAL = frozenset(["completed", "failed"])


def poll_until_terminal(
    ingestion_id: str,
    fetch_status: Callable[[str], str],
    *,
    interval: float = 1.0,
    max_attempts: int = 60,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Call *fetch_status* until it returns a terminal status.

    Sleeps *interval* seconds between attempts (never after the last one).

    Raises:
        IngestionTimeoutError: No terminal status after *max_attempts* checks.
    """
    for attempt in range(1, max_attempts + 1):
        status = fetch_status(ingestion_id)
        if status in TERMINAL:
            logger.debug("Ingestion %s is %s after %d check(s)", ingestion_id, status, attempt)
            return status
        if attempt < max_attempts:
            sleep(interval)
    raise IngestionTimeoutError(ingestion_id, max_attempts)
