"""
Completion client for the OpenAI chat completions API.

Talks to the upstream API and translates its responses and failures into
relay types. No caching, no rate limiting and no retries happen here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..core.enricher import build_messages
from ..core.errors import MalformedUpstreamResponse, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    """Completion text and the tokens it cost."""
    text: str
    tokens_used: int
    request_id: Optional[str] = None


class CompletionClient:
    """Async wrapper around one chat completion call.

    The SDK's own retries are disabled so every call is exactly one
    outbound request.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int,
        temperature: float = 0.7,
        presence_penalty: float = 0.6,
        frequency_penalty: float = 0.5,
        timeout_seconds: float = 30.0,
        client: Optional[Any] = None,
    ):
        """Initialize the completion client.

        Args:
            api_key: OpenAI API key (required)
            model: Default model name (required)
            max_tokens: Default completion token budget
            temperature: Sampling temperature
            presence_penalty: Presence penalty sent with every request
            frequency_penalty: Frequency penalty sent with every request
            timeout_seconds: Upstream request timeout
            client: Preconfigured AsyncOpenAI-compatible client

        Raises:
            ValueError: If api_key or model is missing/empty
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key is required and cannot be empty")
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.presence_penalty = presence_penalty
        self.frequency_penalty = frequency_penalty
        self.timeout_seconds = timeout_seconds
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def complete(
        self,
        prompt_text: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        """Request one completion for an enriched prompt.

        Args:
            prompt_text: Enriched prompt to send as the user message
            model: Override the default model
            max_tokens: Override the default token budget

        Returns:
            CompletionResult with the raw completion text

        Raises:
            UpstreamError: Timeout, connection failure or non-success status
            MalformedUpstreamResponse: Response unparseable or completion text missing
        """
        model = model or self.model
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=build_messages(prompt_text),
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
                presence_penalty=self.presence_penalty,
                frequency_penalty=self.frequency_penalty,
            )
        # APITimeoutError subclasses APIConnectionError, so it goes first
        except openai.APITimeoutError as e:
            logger.error("Upstream request timed out after %ss (model=%s)", self.timeout_seconds, model)
            raise UpstreamError(None, "Upstream request timed out", timed_out=True) from e
        except openai.APIConnectionError as e:
            logger.error("Upstream connection failed (model=%s): %s", model, e)
            raise UpstreamError(None, "Upstream connection failed") from e
        except openai.APIStatusError as e:
            logger.error("Upstream returned HTTP %s (model=%s)", e.status_code, model)
            raise UpstreamError(e.status_code, e.message or "Upstream request failed") from e
        # Success status with a body the SDK could not parse
        except (openai.APIResponseValidationError, ValueError) as e:
            logger.error("Upstream response could not be parsed (model=%s): %s", model, e)
            raise MalformedUpstreamResponse("Upstream response could not be parsed") from e
        except openai.APIError as e:
            logger.error("Upstream request failed (model=%s): %s", model, e)
            raise UpstreamError(None, "Upstream request failed") from e

        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedUpstreamResponse("Upstream response has no choices")
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
        if not isinstance(text, str):
            raise MalformedUpstreamResponse("Upstream response has no completion content")

        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", None) or 0

        return CompletionResult(
            text=text,
            tokens_used=int(tokens_used),
            request_id=getattr(response, "id", None),
        )
