"""QuestionGenerator: the single entry point for getting N questions.

Splits the request into batches, runs them one after another, and retries
each batch with exponential backoff behind the shared rate limiter.

Retry policy per batch:
  attempt 1 ── fail ── sleep d ── attempt 2 ── fail ── sleep 2d ── attempt 3 ...
  - ConfigurationError: raised immediately, never retried.
  - Any other GenerationError: retried until ``max_retries`` attempts are
    used, then the last error is raised unchanged.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from thinkdrills.core.config import Settings, get_settings
from thinkdrills.core.errors import (
    ConfigurationError,
    GenerationCancelledError,
    GenerationError,
    NoQuestionsGeneratedError,
)
from thinkdrills.models.worksheet import GeneratedQuestion, QuestionGenerationRequest
from thinkdrills.services.completion_client import CompletionClient
from thinkdrills.services.rate_limiter import RateLimiter

logger = logging.getLogger("thinkdrills.question_generator")

CancelCheck = Callable[[], Awaitable[bool]]


def split_batches(count: int, batch_size: int) -> list[int]:
    """[10, 10, 5] for count=25, batch_size=10."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    full, rest = divmod(count, batch_size)
    return [batch_size] * full + ([rest] if rest else [])


class QuestionGenerator:
    def __init__(
        self,
        completion_client: CompletionClient,
        rate_limiter: RateLimiter,
        *,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        batch_size: int = 10,
        batch_pause: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._client = completion_client
        self._limiter = rate_limiter
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._batch_size = batch_size
        self._batch_pause = batch_pause
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        rate_limiter: RateLimiter,
        settings: Settings | None = None,
        completion_client: CompletionClient | None = None,
    ) -> "QuestionGenerator":
        settings = settings or get_settings()
        return cls(
            completion_client or CompletionClient(settings),
            rate_limiter,
            max_retries=settings.max_retries,
            initial_delay=settings.retry_delay,
            batch_size=settings.batch_size,
            batch_pause=settings.batch_pause,
        )

    async def generate_questions(
        self,
        request: QuestionGenerationRequest,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> list[GeneratedQuestion]:
        batches = split_batches(request.count, self._batch_size)
        questions: list[GeneratedQuestion] = []

        for i, size in enumerate(batches):
            if i > 0:
                await self._check_cancelled(is_cancelled)
                await self._sleep(self._batch_pause)
            logger.info(
                "[question_generator] batch %d/%d (%d questions) category=%s interest=%s grade=%d",
                i + 1, len(batches), size, request.category, request.interest, request.grade,
            )
            questions.extend(await self._generate_batch(request, size, is_cancelled))

        if not questions:
            raise NoQuestionsGeneratedError("Provider returned no questions")
        if len(questions) < request.count:
            logger.warning(
                "[question_generator] requested %d questions, got %d",
                request.count, len(questions),
            )
        return questions

    async def _generate_batch(
        self,
        request: QuestionGenerationRequest,
        size: int,
        is_cancelled: Optional[CancelCheck],
    ) -> list[GeneratedQuestion]:
        last_error: GenerationError | None = None

        for attempt in range(self._max_retries):
            await self._limiter.wait_for_availability()
            try:
                return await self._client.generate_batch(request, size)
            except ConfigurationError:
                raise
            except GenerationError as exc:
                last_error = exc
                logger.warning(
                    "[question_generator] attempt %d/%d failed: %s (%s)",
                    attempt + 1, self._max_retries, exc.__class__.__name__, exc.detail,
                )

            if attempt < self._max_retries - 1:
                delay = self._initial_delay * (2 ** attempt)
                await self._check_cancelled(is_cancelled)
                logger.info("[question_generator] waiting %.2fs before retry", delay)
                await self._sleep(delay)

        assert last_error is not None
        raise last_error

    @staticmethod
    async def _check_cancelled(is_cancelled: Optional[CancelCheck]) -> None:
        if is_cancelled is not None and await is_cancelled():
            logger.info("[question_generator] caller went away, stopping generation")
            raise GenerationCancelledError("Caller cancelled generation")
