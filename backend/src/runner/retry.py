"""Retry classification shared by Act execution and semantic Checks."""

from __future__ import annotations

import asyncio
import re

RETRYABLE_ERROR = re.compile(r"schema|No object generated|rate|timeout|ECONNRESET|ETIMEDOUT", re.I)
MALFORMED_OUTPUT_ERROR = re.compile(r"schema|No object generated", re.I)


def is_retryable_error(message: str) -> bool:
    """Transient categories: malformed structured output, rate limits, timeouts, resets."""
    return bool(RETRYABLE_ERROR.search(message))


def is_malformed_output_error(message: str) -> bool:
    return bool(MALFORMED_OUTPUT_ERROR.search(message))


async def delay(ms: int) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)
