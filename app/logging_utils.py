"""
app/logging_utils.py

JSON event lines for import and matching milestones.
"""

from __future__ import annotations

import json
import logging
from typing import Any

SERVICE_NAME = "debt-import"


def format_event(event: str, **fields: Any) -> str:
    """
    Render one event as compact JSON with stable key order.

    ``event`` and ``service`` are reserved; UUIDs, Decimals and dates are
    rendered with ``str``.
    """

    payload = {**fields, "event": event, "service": SERVICE_NAME}
    return json.dumps(payload, default=str, sort_keys=True, separators=(",", ":"))


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, format_event(event, **fields))
