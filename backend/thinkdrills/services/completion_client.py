"""CompletionClient: one provider call for one batch of questions.

Rules:
  - Exactly one network call per ``generate_batch``; no retries here
    (the retrying generator owns that policy).
  - Every failure leaves this module as one of the typed kinds in
    ``thinkdrills.core.errors``.
  - Every returned question satisfies the GeneratedQuestion invariants:
    four unique options and ``answer in options``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any

import openai
from pydantic import ValidationError

from thinkdrills.core.config import Settings, get_settings
from thinkdrills.core.errors import (
    ConfigurationError,
    GenerationError,
    GenericProviderError,
    MalformedResponseError,
    RateLimitedError,
)
from thinkdrills.models.worksheet import GeneratedQuestion, QuestionGenerationRequest
from thinkdrills.prompts.question_generation import (
    QUESTION_GENERATION_SYSTEM_PROMPT,
    build_question_prompt,
)

logger = logging.getLogger("thinkdrills.completion_client")
_prompt_logger = logging.getLogger("thinkdrills.llm_prompts")

_CONFIG_ERROR_CODES = {"invalid_api_key", "model_not_found"}
_RATE_LIMIT_CODES = {"rate_limit_exceeded"}


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def classify_openai_error(exc: Exception) -> GenerationError:
    code = getattr(exc, "code", None)
    status = getattr(exc, "status_code", None)

    if code in _CONFIG_ERROR_CODES or isinstance(
        exc, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError)
    ):
        return ConfigurationError(f"OpenAI rejected the request ({code or status})", cause=exc)
    if code in _RATE_LIMIT_CODES or status == 429 or isinstance(exc, openai.RateLimitError):
        return RateLimitedError("OpenAI rate limit exceeded", cause=exc)
    return GenericProviderError(f"OpenAI request failed: {exc.__class__.__name__}", cause=exc)


def classify_gemini_error(exc: Exception) -> GenerationError:
    code = getattr(exc, "code", None)
    status = getattr(exc, "status", None)

    if code in (401, 403, 404):
        return ConfigurationError(f"Gemini rejected the request ({code})", cause=exc)
    if code == 429 or status == "RESOURCE_EXHAUSTED":
        return RateLimitedError("Gemini quota exhausted", cause=exc)
    return GenericProviderError(f"Gemini request failed: {exc.__class__.__name__}", cause=exc)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def clean_json_response(content: str) -> str:
    """Strip markdown code fences some models wrap around JSON output."""
    content = content.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", content, re.DOTALL)
    if fenced:
        return fenced.group(1)
    return content


def parse_questions(content: str | None) -> list[GeneratedQuestion]:
    """Parse and validate a ``{"questions": [...]}`` payload.

    Raises MalformedResponseError if the payload is not JSON, has no
    non-empty ``questions`` array, or any entry breaks the question invariants.
    """
    try:
        parsed = json.loads(clean_json_response(content or ""))
    except json.JSONDecodeError as exc:
        raise MalformedResponseError("Response was not valid JSON", cause=exc) from exc

    raw = parsed.get("questions") if isinstance(parsed, dict) else None
    if not isinstance(raw, list) or not raw:
        raise MalformedResponseError("Response has no questions array")

    questions: list[GeneratedQuestion] = []
    for i, item in enumerate(raw):
        try:
            questions.append(GeneratedQuestion.model_validate(item))
        except ValidationError as exc:
            raise MalformedResponseError(f"Question {i + 1} is invalid: {exc.errors()[0]['msg']}", cause=exc) from exc
    return questions


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CompletionClient:
    def __init__(self, settings: Settings | None = None, client: Any = None):
        self._settings = settings or get_settings()
        self._client = client

    @property
    def provider(self) -> str:
        return self._settings.llm_provider

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self._settings.llm_api_key:
            env_name = "GEMINI_API_KEY" if self.provider == "gemini" else "OPENAI_API_KEY"
            raise ConfigurationError(f"{env_name} is not configured")
        if self.provider == "gemini":
            from google import genai
            self._client = genai.Client(api_key=self._settings.gemini_api_key)
        else:
            # Retries are handled by the generator, not the SDK.
            self._client = openai.AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.openai_timeout,
                max_retries=0,
            )
        return self._client

    async def generate_batch(
        self, request: QuestionGenerationRequest, batch_size: int
    ) -> list[GeneratedQuestion]:
        prompt = build_question_prompt(
            category=request.category,
            interest=request.interest,
            grade=request.grade,
            count=batch_size,
        )
        content = await self.complete(QUESTION_GENERATION_SYSTEM_PROMPT, prompt)
        questions = parse_questions(content)
        if len(questions) > batch_size:
            logger.info(
                "[completion_client] provider returned %d questions, keeping %d",
                len(questions), batch_size,
            )
            questions = questions[:batch_size]
        return questions

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()

        if os.environ.get("DEBUG_LLM_PROMPTS", "").lower() in ("1", "true"):
            _prompt_logger.warning(
                "\n── SYSTEM ──\n%s\n── USER ──\n%s\n── CONFIG ── provider=%s model=%s temp=%s",
                system_prompt, user_prompt, self.provider,
                self._settings.llm_model, self._settings.openai_temperature,
            )

        call = (
            self._call_gemini(client, system_prompt, user_prompt)
            if self.provider == "gemini"
            else self._call_openai(client, system_prompt, user_prompt)
        )
        try:
            return await asyncio.wait_for(call, timeout=self._settings.openai_timeout)
        except asyncio.TimeoutError as exc:
            raise GenericProviderError(
                f"Provider call timed out after {self._settings.openai_timeout}s", cause=exc
            ) from exc

    async def _call_openai(self, client, system_prompt: str, user_prompt: str) -> str:
        try:
            completion = await client.chat.completions.create(
                model=self._settings.openai_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self._settings.openai_temperature,
            )
        except openai.APIError as exc:
            raise classify_openai_error(exc) from exc
        except Exception as exc:
            raise GenericProviderError(f"OpenAI request failed: {exc}", cause=exc) from exc
        return completion.choices[0].message.content or ""

    async def _call_gemini(self, client, system_prompt: str, user_prompt: str) -> str:
        from google.genai import errors as genai_errors
        from google.genai import types

        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self._settings.openai_temperature,
            response_mime_type="application/json",
        )
        try:
            response = await client.aio.models.generate_content(
                model=self._settings.gemini_model,
                contents=user_prompt,
                config=config,
            )
        except genai_errors.APIError as exc:
            raise classify_gemini_error(exc) from exc
        except Exception as exc:
            raise GenericProviderError(f"Gemini request failed: {exc}", cause=exc) from exc
        return response.text or ""
