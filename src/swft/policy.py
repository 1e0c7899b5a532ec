from __future__ import annotations

from dataclasses import dataclass

from .constants import DEFAULT_MAX_TIMEOUT_MS, DEFAULT_TIMEOUT_MS


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How long to wait for a reply, and how often to resend one unit.

    ``max_attempts=None`` retries forever. ``backoff`` multiplies the reply
    deadline after every timeout, up to ``max_timeout_ms``.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int | None = None
    backoff: float = 1.0
    max_timeout_ms: int = DEFAULT_MAX_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.backoff < 1.0:
            raise ValueError(f"backoff must be >= 1.0, got {self.backoff}")

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts

    def next_timeout_ms(self, current_ms: float) -> float:
        return min(current_ms * self.backoff, max(self.max_timeout_ms, self.timeout_ms))
