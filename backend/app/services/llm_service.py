import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from app.core.config import Settings
from app.core.errors import (
    LLMEmptyResponse,
    LLMMalformedJSON,
    LLMUnconfigured,
    LLMUpstreamError,
)

logger = logging.getLogger(__name__)

FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def _as_payload(messages) -> List[Dict[str, str]]:
    payload = []
    for m in messages:
        if isinstance(m, dict):
            payload.append({"role": m["role"], "content": m["content"]})
        else:
            payload.append({"role": m.role, "content": m.content})
    return payload


def strip_code_fence(text: str) -> str:
    return FENCE.sub("", text.strip()).strip()


class LLMClient:
    """Thin wrapper over the chat-completions endpoint.

    The client never retries: one call, one answer or one typed error.
    """

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self.model = settings.llm_model
        self._client = client
        if self._client is None and settings.llm_enabled:
            self._client = OpenAI(
                api_key=settings.llm_api_key,
                base_url=settings.llm_base_url or None,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def complete(
        self,
        messages,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> str:
        if not self.is_configured:
            raise LLMUnconfigured()

        limit = self.settings.llm_timeout_seconds
        if timeout is not None:
            limit = max(0.1, min(limit, timeout))

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=_as_payload(messages),
                max_tokens=max_tokens or self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature if temperature is None else temperature,
                timeout=limit,
            )
        except APIStatusError as exc:
            body = exc.response.text if exc.response is not None else ""
            logger.warning("LLM endpoint returned %s: %s", exc.status_code, body[:500])
            raise LLMUpstreamError(status_code=exc.status_code, body=body) from exc
        except APITimeoutError as exc:
            logger.warning("LLM call timed out after %.1fs", limit)
            raise LLMUpstreamError("LLM call timed out", body=str(exc)) from exc
        except APIConnectionError as exc:
            logger.warning("LLM endpoint unreachable: %s", exc)
            raise LLMUpstreamError("LLM endpoint unreachable", body=str(exc)) from exc

        if not response.choices:
            raise LLMEmptyResponse()
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise LLMEmptyResponse("LLM returned an empty message")
        return content.strip()

    def complete_json(self, messages, **params) -> Any:
        raw = self.complete(messages, **params)
        try:
            return json.loads(strip_code_fence(raw))
        except ValueError as exc:
            logger.info("Discarding malformed LLM JSON: %s", raw[:200])
            raise LLMMalformedJSON(raw=raw) from exc
