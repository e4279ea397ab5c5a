"""Chat-completion client over Anthropic or OpenAI."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import anthropic
import openai
from anthropic.types import TextBlock

from src.config import settings
from src.errors import LLMError, LLMTimeoutError
from src.pipeline_config import LLMProvider

logger = logging.getLogger(__name__)


class LLMClient:
    """One handle for every LLM call the pipeline makes.

    ``complete`` takes a system prompt plus a user/assistant message list and
    returns the reply text. Provider errors come back as LLMError; a blown
    wall-clock budget comes back as LLMTimeoutError. A rate-limit error is
    retried once on ``fallback_model`` when one is configured.
    ``temperature`` is only sent to OpenAI; the current Anthropic SDK rejects it.
    """

    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        *,
        api_key: str = "",
        fallback_model: str = "",
    ) -> None:
        self.provider = provider
        self.model = model
        self.fallback_model = fallback_model
        self._api_key = api_key
        self._client: Any = None

    def _sdk(self) -> Any:
        # SDK retries off: one attempt per call keeps the timeout a wall-clock budget
        if self._client is None:
            if self.provider is LLMProvider.OPENAI:
                self._client = openai.OpenAI(api_key=self._api_key or None, max_retries=0)
            else:
                self._client = anthropic.Anthropic(api_key=self._api_key or None, max_retries=0)
        return self._client

    def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        timeout: float = 120.0,
    ) -> str:
        try:
            return self._create(self.model, system, messages, max_tokens, temperature, timeout)
        except (anthropic.RateLimitError, openai.RateLimitError) as exc:
            if not self.fallback_model:
                raise LLMError(f"LLM rate limited: {exc}") from exc
            logger.warning("Rate limited on %s, retrying on %s", self.model, self.fallback_model)
            try:
                return self._create(
                    self.fallback_model, system, messages, max_tokens, temperature, timeout
                )
            except (anthropic.APITimeoutError, openai.APITimeoutError) as retry_exc:
                raise LLMTimeoutError(f"LLM call timed out after {timeout:.0f}s") from retry_exc
            except (anthropic.APIError, openai.APIError) as retry_exc:
                raise LLMError(f"LLM unavailable: {retry_exc}") from retry_exc
        except (anthropic.APITimeoutError, openai.APITimeoutError) as exc:
            raise LLMTimeoutError(f"LLM call timed out after {timeout:.0f}s") from exc
        except (anthropic.APIError, openai.APIError) as exc:
            raise LLMError(f"LLM unavailable: {exc}") from exc

    def _create(
        self,
        model: str,
        system: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        timeout: float,
    ) -> str:
        sdk = self._sdk()
        if self.provider is LLMProvider.OPENAI:
            response = sdk.chat.completions.create(
                model=model,
                messages=[{"role": "system", "content": system}, *messages],
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        response = sdk.messages.create(
            model=model,
            system=system,
            messages=messages,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        block = response.content[0]
        if not isinstance(block, TextBlock):
            raise LLMError(f"Expected TextBlock from Claude, got {type(block).__name__}")
        return block.text.strip()


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    if settings.llm_provider is LLMProvider.OPENAI:
        return LLMClient(
            LLMProvider.OPENAI,
            settings.openai_model,
            api_key=settings.openai_api_key,
            fallback_model=settings.llm_fallback_model,
        )
    return LLMClient(
        LLMProvider.ANTHROPIC,
        settings.llm_model,
        api_key=settings.anthropic_api_key,
        fallback_model=settings.llm_fallback_model,
    )
