from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from chatrouter.clients.base import Classifier
from chatrouter.errors import ParseError
from chatrouter.schemas.results import AttemptOutcome, ChainResult, ProviderAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderChain:
    """
    Ordered, strictly sequential fallback over classifier providers.

    Each provider gets one bounded attempt per call. Any exception (including
    the per-attempt timeout) moves on to the next provider; the first value
    returned wins and later providers are not consulted.
    """

    def __init__(
        self,
        classifiers: Sequence[Classifier],
        *,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive when set.")
        self._classifiers = tuple(classifiers)
        self._timeout = timeout_seconds

    @property
    def provider_ids(self) -> List[str]:
        return [classifier.provider_id for classifier in self._classifiers]

    def __len__(self) -> int:
        return len(self._classifiers)

    async def first_success(
        self, call: Callable[[Classifier], Awaitable[T]]
    ) -> ChainResult:
        attempts: List[ProviderAttempt] = []
        for classifier in self._classifiers:
            provider_id = getattr(classifier, "provider_id", type(classifier).__name__)
            started = time.perf_counter()
            try:
                if self._timeout is not None:
                    value = await asyncio.wait_for(call(classifier), timeout=self._timeout)
                else:
                    value = await call(classifier)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                outcome = (
                    AttemptOutcome.PARSE_ERROR
                    if isinstance(exc, ParseError)
                    else AttemptOutcome.TRANSPORT_ERROR
                )
                attempt = ProviderAttempt(
                    provider_id=provider_id,
                    latency_ms=self._elapsed_ms(started),
                    outcome=outcome,
                    error=str(exc) or type(exc).__name__,
                )
                attempts.append(attempt)
                logger.warning(
                    "classifier provider failed, falling back",
                    extra={
                        "provider": provider_id,
                        "outcome": outcome.value,
                        "latency_ms": attempt.latency_ms,
                        "error": attempt.error,
                    },
                )
                continue

            attempts.append(
                ProviderAttempt(
                    provider_id=provider_id,
                    latency_ms=self._elapsed_ms(started),
                    outcome=AttemptOutcome.SUCCESS,
                )
            )
            return ChainResult(value=value, attempts=attempts)

        return ChainResult(value=None, attempts=attempts)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
