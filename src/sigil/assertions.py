"""Runtime checks on module outputs.

``assert_`` failures are retried by ``Module.call``; ``suggest`` only logs.
"""

from __future__ import annotations

import logging
from typing import Any

from sigil.errors import AssertionFailedError

logger = logging.getLogger(__name__)


def assert_(condition: Any, message: str = "Assertion failed", **context: Any) -> None:
    if not condition:
        raise AssertionFailedError(message, context=context or None)


def suggest(condition: Any, message: str = "Suggestion not met", **context: Any) -> bool:
    if condition:
        return True
    details = f" ({', '.join(f'{k}: {v}' for k, v in context.items())})" if context else ""
    logger.warning(f"Suggestion failed: {message}{details}")
    return False
