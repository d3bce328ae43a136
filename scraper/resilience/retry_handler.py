"""
Retry handling with a bounded attempt loop.
Fixed delay by default; set backoff_factor > 1 for exponential backoff.
"""

import time
from typing import Any, Callable, Optional, Tuple

from config import RetryConfig


class RetryHandler:
    """Runs operations with a bounded number of attempts."""

    def __init__(self, config: Optional[RetryConfig] = None):
        """
        Initialize retry handler.

        Args:
            config: RetryConfig instance, uses defaults if None
        """
        self.config = config or RetryConfig()

    def delays(self):
        """Sleep schedule between attempts (one entry per retry)."""
        delay = self.config.base_delay
        for _ in range(self.config.max_retries - 1):
            yield min(delay, self.config.max_delay)
            delay *= self.config.backoff_factor

    def execute_with_retry(
        self,
        func: Callable,
        *args,
        retry_if: Optional[Callable[[Exception], bool]] = None,
        **kwargs
    ) -> Tuple[bool, Any]:
        """
        Execute function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for func
            retry_if: Predicate deciding whether an exception is retryable;
                non-retryable exceptions propagate immediately. Every
                exception is retried when None.
            **kwargs: Keyword arguments for func

        Returns:
            Tuple of (success: bool, result or last error message)
        """
        last_error = None
        schedule = self.delays()

        for attempt in range(1, self.config.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if result is not None:
                    return True, result
                last_error = "Function returned None"
            except Exception as e:
                if retry_if is not None and not retry_if(e):
                    raise
                last_error = str(e)
                print(f"  Attempt {attempt}/{self.config.max_retries} failed: {e}")

            # Don't sleep after last attempt
            if attempt < self.config.max_retries:
                sleep_time = next(schedule)
                print(f"  Retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{self.config.max_retries})...")
                time.sleep(sleep_time)

        return False, last_error
