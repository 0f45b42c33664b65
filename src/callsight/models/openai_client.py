"""OpenAI client wrapper for structured generation."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Protocol

import httpx
from openai import (
    APIError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    OpenAI,
    PermissionDeniedError,
    RateLimitError,
)

from callsight.errors import GenerationAuthError
from callsight.models.retry import build_retryer

logger = logging.getLogger(__name__)


class StructuredOutputError(ValueError):
    """Raised when the model response is not a JSON object."""


class LLMJsonClient(Protocol):
    """Protocol for clients that return structured JSON."""

    def complete_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        schema_name: str | None = None,
        json_schema: dict | None = None,
        strict_schema: bool = True,
    ) -> dict:
        """Generate a JSON object for the given prompts."""


class OpenAIJsonClient:
    """JSON-focused wrapper around OpenAI chat completions."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.0,
        max_retries: int = 4,
        backoff_seconds: float = 1.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._client = OpenAI(api_key=api_key, base_url=base_url or None, http_client=http_client)
        self._model = model
        self._temperature = temperature
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds

    @property
    def model(self) -> str:
        return self._model

    def close(self) -> None:
        """Close the underlying OpenAI client."""

        self._client.close()

    def _supports_schema_fallback(self, exc: BadRequestError) -> bool:
        """Return True when the error suggests schema response format is unsupported."""

        message = str(exc).lower()
        fallback_tokens: Sequence[str] = (
            "json_schema",
            "response_format",
            "unsupported",
            "not supported",
            "invalid schema",
        )
        return any(token in message for token in fallback_tokens)

    def _is_retryable_openai_error(self, exc: BaseException) -> bool:
        """Return whether an OpenAI exception should trigger retry/backoff."""

        if isinstance(exc, (RateLimitError, APITimeoutError)):
            return True
        if isinstance(exc, (BadRequestError, AuthenticationError, PermissionDeniedError)):
            return False
        return isinstance(exc, APIError)

    def _create_completion_with_retry(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        response_format: dict,
    ):
        """Create chat completion with retry/backoff for transient errors."""

        response = None
        retryer = build_retryer(
            self._is_retryable_openai_error,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
        )

        try:
            for attempt in retryer:
                with attempt:
                    response = self._client.chat.completions.create(
                        model=self._model,
                        temperature=self._temperature,
                        response_format=response_format,
                        messages=[
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_prompt},
                        ],
                    )
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise GenerationAuthError(
                f"Generation service rejected credentials for model '{self._model}'.",
                details={"model": self._model},
            ) from exc

        if response is None:
            raise ValueError("OpenAI response missing after retries.")
        return response

    def complete_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        schema_name: str | None = None,
        json_schema: dict | None = None,
        strict_schema: bool = True,
    ) -> dict:
        """Call the OpenAI API and parse a JSON object from the response."""

        if json_schema is None:
            response = self._create_completion_with_retry(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                response_format={"type": "json_object"},
            )
        else:
            schema_response_format = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name or "structured_output",
                    "schema": json_schema,
                    "strict": bool(strict_schema),
                },
            }
            try:
                response = self._create_completion_with_retry(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    response_format=schema_response_format,
                )
            except BadRequestError as exc:
                if not self._supports_schema_fallback(exc):
                    raise
                logger.info(
                    "Model %s rejected json_schema output; retrying as json_object.", self._model
                )
                response = self._create_completion_with_retry(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    response_format={"type": "json_object"},
                )

        content = response.choices[0].message.content
        if content is None:
            raise StructuredOutputError("Model returned empty content for JSON response.")

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise StructuredOutputError(f"Model response was not valid JSON: {content}") from exc

        if not isinstance(payload, dict):
            raise StructuredOutputError(f"Expected JSON object, got {type(payload).__name__}.")

        return payload

