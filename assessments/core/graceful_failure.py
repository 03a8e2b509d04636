"""
Graceful failure helper for best-effort side effects.

Cache writes, progress snapshot writes and similar side effects must never
fail the operation they accompany. Wrap them in ``graceful_failure`` to log
the exception with context and continue.

This is distinct from ``handle_db_error`` in the session repository, which
converts storage failures into ``PersistenceError`` and re-raises.

Usage:
    from assessments.core.graceful_failure import graceful_failure

    with graceful_failure("populate result cache", logger, context={"session_id": sid}):
        cache.set(key, value, ttl=ttl)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Run the wrapped block, logging and suppressing any exception.

    Args:
        operation_name: Human-readable name of the operation for logging
            (e.g., "populate result cache").
        logger: The logger instance to use.
        log_level: Logging level for failures. Defaults to WARNING.
        exc_info: Whether to include the traceback. Defaults to False.
        context: Extra key/value pairs appended to the log message.
    """
    try:
        yield
    except Exception as e:
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"Failed to {operation_name} ({context_str}): {e}"
        else:
            message = f"Failed to {operation_name}: {e}"

        logger.log(log_level, message, exc_info=exc_info)
