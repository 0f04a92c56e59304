from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from chatrouter.core.config import Settings, settings as default_settings
from chatrouter.errors import ParseError, ProviderMisconfiguredError, ProviderTransportError
from chatrouter.schemas.inbound import ConversationContext

logger = logging.getLogger(__name__)


class OpenAIClassifier:
    """Chat Completions classifier for OpenAI, or Azure OpenAI when an endpoint is set."""

    provider_id = "openai"

    def __init__(
        self,
        *,
        config: Optional[Settings] = None,
        client: Optional[Any] = None,
    ) -> None:
        cfg = config or default_settings
        self._temperature = cfg.classifier_temperature
        self._max_tokens = cfg.classifier_max_tokens
        timeout = cfg.classifier_timeout_seconds

        if client is not None:
            self._client = client
            self._model = cfg.azure_openai_deployment or cfg.openai_model
            return

        if cfg.azure_openai_endpoint:
            if not cfg.azure_openai_api_key:
                raise ProviderMisconfiguredError("AZURE_OPENAI_API_KEY is not configured.")
            if not cfg.azure_openai_deployment:
                raise ProviderMisconfiguredError("AZURE_OPENAI_DEPLOYMENT is not configured.")
            self._model = cfg.azure_openai_deployment
            # The chain owns fallback, so SDK retries are disabled.
            self._client = AsyncAzureOpenAI(
                api_key=cfg.azure_openai_api_key,
                api_version=cfg.azure_openai_api_version,
                azure_endpoint=cfg.azure_openai_endpoint,
                timeout=timeout,
                max_retries=0,
            )
        else:
            if not cfg.openai_api_key:
                raise ProviderMisconfiguredError("OPENAI_API_KEY is not configured.")
            self._model = cfg.openai_model
            self._client = AsyncOpenAI(
                api_key=cfg.openai_api_key,
                timeout=timeout,
                max_retries=0,
            )

    async def classify(
        self,
        system_prompt: str,
        user_text: str,
        context: ConversationContext,
    ) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_text},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except asyncio.CancelledError:
            raise
        except OpenAIError as exc:
            raise ProviderTransportError(
                f"OpenAI request failed: {exc}", self.provider_id, exc
            ) from exc

        choices = getattr(completion, "choices", None)
        if not choices:
            raise ParseError("OpenAI returned no choices.", self.provider_id)
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) or ""
        usage = getattr(completion, "usage", None)
        logger.debug(
            "openai classification received",
            extra={
                "provider": self.provider_id,
                "tokens": getattr(usage, "total_tokens", None),
            },
        )
        return content.strip()
