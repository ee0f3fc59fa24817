"""
Timing helpers used around slow external calls.
"""
import time
import logging
import functools
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, log_level: int = logging.DEBUG):
    """
    Context manager for timing code blocks.

    Args:
        name: Name of the operation being timed
        log_level: Logging level to use (default: DEBUG)

    Example:
        with timer("generate_questions"):
            questions = await generator.generate(messages)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        elapsed_time = time.perf_counter() - start_time
        logger.log(log_level, f"TIMER - {name}: {elapsed_time:.4f} seconds")


def timed_coroutine(log_level: int = logging.INFO):
    """Decorator that logs the execution time of an async function."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                elapsed_time = time.perf_counter() - start_time
                logger.log(log_level, f"TIMER - {func.__name__}: {elapsed_time:.4f} seconds")
        return wrapper
    return decorator
