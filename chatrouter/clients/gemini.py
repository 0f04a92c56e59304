from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from chatrouter.core.config import Settings, settings as default_settings
from chatrouter.errors import ParseError, ProviderMisconfiguredError, ProviderTransportError
from chatrouter.schemas.inbound import ConversationContext

logger = logging.getLogger(__name__)


class GeminiClassifier:
    """Classifier backed by the Gemini ``generateContent`` REST endpoint."""

    provider_id = "gemini"

    def __init__(
        self,
        *,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = config or default_settings
        if not cfg.gemini_api_key:
            raise ProviderMisconfiguredError("GOOGLE_AI_API_KEY is not configured.")

        self._api_key = cfg.gemini_api_key
        self._model = cfg.gemini_model
        self._temperature = cfg.classifier_temperature
        self._max_tokens = cfg.classifier_max_tokens
        self._client = httpx.AsyncClient(
            base_url=cfg.gemini_base_url.rstrip("/"),
            timeout=httpx.Timeout(cfg.classifier_timeout_seconds),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def classify(
        self,
        system_prompt: str,
        user_text: str,
        context: ConversationContext,
    ) -> str:
        body: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_text}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_tokens,
                "responseMimeType": "application/json",
            },
        }
        try:
            response = await self._client.post(
                f"/models/{self._model}:generateContent",
                params={"key": self._api_key},
                json=body,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderTransportError(
                f"Gemini returned HTTP {exc.response.status_code}", self.provider_id, exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                f"Gemini request failed: {exc}", self.provider_id, exc
            ) from exc
        except ValueError as exc:
            raise ParseError("Gemini response body is not JSON.", self.provider_id, exc) from exc

        text = self._extract_text(payload)
        if not text:
            raise ParseError("Gemini returned no candidate text.", self.provider_id)
        return text

    @staticmethod
    def _extract_text(payload: Any) -> str:
        if not isinstance(payload, dict):
            return ""
        candidates = payload.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content") or {}
        collected: List[str] = []
        for part in content.get("parts") or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                collected.append(part["text"])
        return "".join(collected).strip()
