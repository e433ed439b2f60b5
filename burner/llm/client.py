"""
LLM Client for OpenAI-compatible completion endpoints.

Provides a wrapper around the OpenAI SDK pointed at the configured base URL.
One request is made per call: retrying is the caller's job, so SDK-level
retries are disabled and every failure comes back as a tagged result.
"""

import threading
import time
from typing import NamedTuple

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    RateLimitError,
)

from burner.config import Settings, get_settings
from burner.llm.keys import KeyRotator
from burner.llm.retry import AttemptResult, Failure, FailureKind, Ok


class Completion(NamedTuple):
    """Text and usage from one completion."""

    text: str
    model: str
    total_tokens: int | None
    latency_ms: int


class LLMClient:
    """
    Client for the completion API.

    Rotates through the configured credential pool on every call and
    keeps one SDK client per credential.
    """

    def __init__(self, settings: Settings | None = None, rotator: KeyRotator | None = None):
        """
        Initialize the LLM client.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            rotator: Credential rotation. Built from ``settings.api_key_pool`` if not provided.

        Raises:
            ConfigurationError: If no API keys are configured.
        """
        self._settings = settings or get_settings()
        self._rotator = rotator or KeyRotator(self._settings.api_key_pool)
        self._clients: dict[int, OpenAI] = {}
        self._clients_lock = threading.Lock()

    @property
    def model(self) -> str:
        return self._settings.llm_model

    def _client_for(self, index: int, api_key: str) -> OpenAI:
        with self._clients_lock:
            client = self._clients.get(index)
            if client is None:
                client = OpenAI(
                    api_key=api_key,
                    base_url=self._settings.llm_base_url,
                    timeout=self._settings.llm_timeout_seconds,
                    max_retries=0,
                )
                self._clients[index] = client
            return client

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
    ) -> AttemptResult[Completion]:
        """
        Request a single completion.

        Args:
            system_prompt: System message defining the model's role.
            user_prompt: User message with the actual request.
            temperature: Override temperature (uses config default if None).

        Returns:
            ``Ok(Completion)`` or a ``Failure`` tagged timeout, rate_limited or transport.
        """
        index, api_key = self._rotator.next()
        client = self._client_for(index, api_key)
        temp = temperature if temperature is not None else self._settings.llm_temperature

        started = time.monotonic()
        try:
            response = client.chat.completions.create(
                model=self._settings.llm_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temp,
                top_p=self._settings.llm_top_p,
                max_completion_tokens=self._settings.llm_max_tokens,
            )
        except APITimeoutError as e:
            return Failure(FailureKind.TIMEOUT, f"Request timed out: {e}")
        except RateLimitError as e:
            return Failure(FailureKind.RATE_LIMITED, f"Rate limit exceeded: {e.message}")
        except APIConnectionError as e:
            return Failure(FailureKind.TRANSPORT, f"Connection failed: {e}")
        except APIStatusError as e:
            if e.status_code == 429:
                return Failure(FailureKind.RATE_LIMITED, f"Rate limit exceeded: {e.message}")
            return Failure(FailureKind.TRANSPORT, f"API error ({e.status_code}): {e.message}")
        except APIError as e:
            return Failure(FailureKind.TRANSPORT, f"API error: {e.message}")
        latency_ms = int((time.monotonic() - started) * 1000)

        content = response.choices[0].message.content if response.choices else None
        if not content:
            return Failure(FailureKind.TRANSPORT, "Empty response from LLM")

        usage = response.usage
        return Ok(
            Completion(
                text=content,
                model=response.model or self._settings.llm_model,
                total_tokens=usage.total_tokens if usage else None,
                latency_ms=latency_ms,
            )
        )

    def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        index, api_key = self._rotator.next()
        try:
            response = self._client_for(index, api_key).chat.completions.create(
                model=self._settings.llm_model,
                messages=[{"role": "user", "content": "ping"}],
                max_completion_tokens=5,
            )
            return bool(response.choices)
        except APIError:
            return False
