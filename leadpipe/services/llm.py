# leadpipe/services/llm.py
"""
Thin wrapper over the OpenAI chat completions API.

Used twice in the pipeline: structured extraction of company fields from OCR
text (json_mode=True) and free-text drafting of outreach messages.
"""

from __future__ import annotations

import logging

from openai import APIError, OpenAI

from leadpipe.config import LLMConfig
from leadpipe.exceptions import ConfigError, DataError, LLMError

log = logging.getLogger(__name__)


class LLMClient:
    def __init__(self, cfg: LLMConfig, client: OpenAI | None = None) -> None:
        self.cfg = cfg
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.cfg.api_key:
                raise ConfigError("OPENAI_API_KEY is not set")
            self._client = OpenAI(
                api_key=self.cfg.api_key,
                base_url=self.cfg.api_base or None,
                timeout=self.cfg.timeout_seconds,
            )
        return self._client

    def complete(
        self,
        prompt: str,
        *,
        model: str,
        system: str | None = None,
        json_mode: bool = False,
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.cfg.max_tokens,
                **kwargs,
            )
        except APIError as exc:
            raise LLMError(f"completion request failed: {exc}") from exc

        if not completion.choices:
            raise DataError("completion returned no choices")
        content = (completion.choices[0].message.content or "").strip()
        if not content:
            raise DataError("completion returned empty content")
        log.debug("llm %s returned %d chars", model, len(content))
        return content


__all__ = ["LLMClient"]
