"""Ordered fallback cascades and per-provider rate-limit backoff.

A cascade is data: an ordered list of named steps, each returning a value or
None. ``first_success`` walks the list and records which step answered. The
steps run over provider results that were already gathered for the tick, so
a lower-priority provider that happened to answer first can never win over
a higher-priority one that also succeeded.
"""

import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pairwatch.exceptions import ProviderErrorKind
from pairwatch.logging import get_logger
from pairwatch.models import ProviderResult, Resolution

logger = get_logger(__name__)

T = TypeVar("T")
V = TypeVar("V")


@dataclass(frozen=True)
class Step(Generic[T]):
    """One cascade stage: a source name and a resolver returning T or None."""

    source: str
    resolve: Callable[[], T | None]


def first_success(steps: Iterable[Step[T]]) -> Resolution[T] | None:
    """Return the first non-None step value and its source, or None."""
    for step in steps:
        value = step.resolve()
        if value is not None:
            return Resolution(value=value, provider_id=step.source)
    return None


def from_result(
    result: ProviderResult[V] | None,
    extract: Callable[[V], T | None] = lambda v: v,  # type: ignore[assignment,return-value]
) -> Callable[[], T | None]:
    """Build a step resolver reading a successful ProviderResult.

    Failed or missing results resolve to None; ``extract`` selects the fact
    from the result value and may itself return None for "not usable".
    """

    def resolve() -> T | None:
        if result is None or not result.success or result.value is None:
            return None
        return extract(result.value)

    return resolve


class RateLimitBackoff:
    """Tracks providers that answered 429 and skips them until backoff ends.

    Args:
        backoff_seconds: How long a rate-limited provider is left alone.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        backoff_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backoff = backoff_seconds
        self._clock = clock
        self._until: dict[str, float] = {}

    def is_backed_off(self, provider_id: str) -> bool:
        until = self._until.get(provider_id)
        if until is None:
            return False
        if self._clock() >= until:
            del self._until[provider_id]
            return False
        return True

    def record(self, result: ProviderResult) -> None:  # type: ignore[type-arg]
        """Start a backoff window when a result reports rate limiting."""
        if not result.success and result.kind == ProviderErrorKind.RATE_LIMIT:
            if result.provider_id not in self._until:
                logger.warning(
                    "provider_rate_limited",
                    provider=result.provider_id,
                    backoff_seconds=self._backoff,
                )
            self._until[result.provider_id] = self._clock() + self._backoff

    async def call(
        self,
        provider_id: str,
        fetch: Callable[[], Awaitable[ProviderResult[T]]],
    ) -> ProviderResult[T]:
        """Run fetch unless provider_id is backing off, recording the outcome."""
        if self.is_backed_off(provider_id):
            logger.debug("provider_skipped_backoff", provider=provider_id)
            return ProviderResult.fail(
                provider_id, ProviderErrorKind.RATE_LIMIT, "backing off after rate limit"
            )
        result = await fetch()
        self.record(result)
        return result
