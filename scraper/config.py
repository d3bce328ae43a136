"""
Configuration dataclasses for the repack scraper.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 5.0
    max_delay: float = 60.0
    backoff_factor: float = 1.0


@dataclass
class ScraperConfig:
    """Main configuration for the scraper system."""
    # Site settings
    site: str = "fitgirl"
    base_url: str = ""

    # Data files
    data_file: str = "games.json"
    cache_file: str = "cache.json"
    progress_file: str = "progress.json"
    temp_file: str = "temp.json"
    complete_file: str = "complete.json"
    state_file: str = "state.json"

    # Browser settings
    headless: bool = True
    page_timeout: float = 60.0

    # Retry settings
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Mode-specific
    start_index: Optional[int] = None
    query: Optional[str] = None

    REQUIRED_ENV = ("BASE_URL", "FILE", "TIMEOUT", "MAX_RETRIES", "RETRY_DELAY")

    @classmethod
    def from_env(cls, environ=None) -> "ScraperConfig":
        """
        Build configuration from environment variables.

        TIMEOUT and RETRY_DELAY are given in milliseconds.

        Raises:
            ValueError: If a required variable is missing or not a number
        """
        env = os.environ if environ is None else environ

        missing = [name for name in cls.REQUIRED_ENV if not env.get(name)]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Check your .env file."
            )

        try:
            timeout_ms = int(env["TIMEOUT"])
            max_retries = int(env["MAX_RETRIES"])
            retry_delay_ms = int(env["RETRY_DELAY"])
        except ValueError as e:
            raise ValueError(f"TIMEOUT, MAX_RETRIES and RETRY_DELAY must be integers: {e}")

        if max_retries < 1:
            raise ValueError("MAX_RETRIES must be at least 1")

        retry_delay = retry_delay_ms / 1000.0
        retry = RetryConfig(
            max_retries=max_retries,
            base_delay=retry_delay,
            max_delay=max(retry_delay, RetryConfig.max_delay),
        )

        return cls(
            site=env.get("SITE", "fitgirl").lower(),
            base_url=env["BASE_URL"],
            data_file=env["FILE"],
            cache_file=env.get("CACHE_FILE") or "cache.json",
            progress_file=env.get("PROGRESS_FILE") or "progress.json",
            temp_file=env.get("TEMP_FILE") or "temp.json",
            complete_file=env.get("COMPLETE_FILE") or "complete.json",
            state_file=env.get("STATE_FILE") or "state.json",
            headless=env.get("HEADLESS", "true").lower() not in ("0", "false", "no"),
            page_timeout=timeout_ms / 1000.0,
            retry=retry,
        )
