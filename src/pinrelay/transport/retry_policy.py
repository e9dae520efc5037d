"""Send retry policy for the relay connection.

The relay protocol retries a failed frame write a small, fixed number of
times with a short constant pause; backoff buys nothing on a socket that
either accepts the write or is already gone.
"""

from __future__ import annotations

from pinrelay import const


class RetryPolicy:
    """Fixed-delay retry policy for frame writes."""

    def __init__(
        self,
        max_attempts: int = const.SEND_RETRIES,
        delay_seconds: float = const.SEND_RETRY_DELAY,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total write attempts, first one included (default: 3)
            delay_seconds: Pause between failed attempts (default: 2ms)

        """
        if max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {max_attempts}"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds

    def get_delay(self, attempt: int) -> float:
        """Return the pause after failed attempt ``attempt`` (0-indexed)."""
        del attempt
        return self.delay_seconds

    def should_retry(self, attempt: int) -> bool:
        """True if another attempt follows failed attempt ``attempt`` (0-indexed)."""
        return attempt + 1 < self.max_attempts

    def __repr__(self) -> str:
        return f"RetryPolicy(max_attempts={self.max_attempts}, delay={self.delay_seconds}s)"
