"""
LLM Service - Handles interactions with different LLM providers
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from models.analysis import TokenUsage

from .exceptions import CollaboratorError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 503)


@dataclass
class LLMReply:
    """Raw text returned by a provider plus optional token accounting"""

    text: str
    usage: TokenUsage | None = None


class ProviderHTTPError(Exception):
    """Non-200 response from a provider"""

    def __init__(self, provider: str, status: int, body: str):
        super().__init__(f"{provider} API error ({status}): {body[:500]}")
        self.provider = provider
        self.status = status


class LLMService:
    """Service for interacting with various LLM providers"""

    def __init__(self, config: dict[str, Any], timeout_seconds: int = 120, max_retries: int = 3):
        self.config = config
        self.provider = config.get("provider", "gemini")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    # ========== Config Helpers ==========

    def _get_gemini_config(self) -> tuple[str, str]:
        """Get Gemini config: (url, model). Raises if api_key missing."""
        cfg = self.config.get("gemini", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise CollaboratorError("Gemini API key not configured")
        model = cfg.get("model", "gemini-2.5-flash")
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={api_key}"
        return url, model

    def _get_openai_config(self) -> tuple[str, str, dict[str, str]]:
        """Get OpenAI config: (model, url, headers). Raises if api_key missing."""
        cfg = self.config.get("openai", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise CollaboratorError("OpenAI API key not configured")
        model = cfg.get("model", "gpt-4o-mini")
        url = "https://api.openai.com/v1/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return model, url, headers

    def _get_vllm_config(self) -> tuple[str, str, dict[str, str]]:
        """Get vLLM config: (model, url, headers)."""
        cfg = self.config.get("vllm", {})
        endpoint = cfg.get("endpoint", "http://localhost:8000")
        model = cfg.get("model", "default")
        url = f"{endpoint.rstrip('/')}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        if cfg.get("apiKey"):
            headers["Authorization"] = f"Bearer {cfg['apiKey']}"
        return model, url, headers

    # ========== Payload Builders ==========

    def _build_gemini_payload(
        self,
        prompt: str,
        temperature: float,
        response_schema: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """Build Gemini API request payload"""
        generation_config: dict[str, Any] = {"temperature": temperature}
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    def _build_openai_payload(
        self,
        model: str,
        prompt: str,
        temperature: float,
        json_mode: bool,
        max_tokens: int = 8192,
    ) -> dict[str, Any]:
        """Build OpenAI-compatible request payload"""
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    # ========== Response Parsers ==========

    def _parse_gemini_response(self, data: dict[str, Any]) -> LLMReply:
        """Parse Gemini API response format"""
        candidates = data.get("candidates") or []
        parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise CollaboratorError("No valid response from Gemini API")

        usage = None
        meta = data.get("usageMetadata")
        if meta:
            usage = TokenUsage(
                prompt_tokens=meta.get("promptTokenCount", 0),
                output_tokens=meta.get("candidatesTokenCount", 0),
                total_tokens=meta.get("totalTokenCount", 0),
            )
        return LLMReply(text=text, usage=usage)

    def _parse_openai_response(self, data: dict[str, Any]) -> LLMReply:
        """Parse OpenAI-compatible response format"""
        choices = data.get("choices") or []
        text = None
        if choices:
            choice = choices[0]
            text = choice.get("message", {}).get("content") or choice.get("text")
        if not text:
            raise CollaboratorError("No valid response from API")

        usage = None
        meta = data.get("usage")
        if meta:
            usage = TokenUsage(
                prompt_tokens=meta.get("prompt_tokens", 0),
                output_tokens=meta.get("completion_tokens", 0),
                total_tokens=meta.get("total_tokens", 0),
            )
        return LLMReply(text=text, usage=usage)

    # ========== Transport ==========

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None,
        provider: str,
    ) -> dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body"""
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    raise ProviderHTTPError(provider, response.status, await response.text())
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise CollaboratorError(f"{provider} returned a non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise CollaboratorError(f"{provider} returned an unexpected body")
        return data

    async def _retry_with_backoff(self, operation, provider: str):
        """Execute operation with exponential backoff on timeouts, 429 and 503"""
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                return await operation()
            except asyncio.TimeoutError as e:
                if last_attempt:
                    raise CollaboratorError(f"{provider} request timeout after {self.max_retries} attempts") from e
                wait_time = (2**attempt) * 3
                logger.warning("%s request timeout, retrying in %ss (attempt %d)", provider, wait_time, attempt + 1)
            except ProviderHTTPError as e:
                if e.status not in RETRYABLE_STATUSES or last_attempt:
                    raise CollaboratorError(str(e)) from e
                wait_time = 40 + attempt * 20 if e.status == 429 else (2**attempt) * 5
                logger.warning("%s returned %d, retrying in %ss (attempt %d)", provider, e.status, wait_time, attempt + 1)
            except aiohttp.ClientError as e:
                if last_attempt:
                    raise CollaboratorError(f"{provider} network error: {e}") from e
                wait_time = (2**attempt) * 2
                logger.warning("%s network error: %s, retrying in %ss", provider, e, wait_time)
            await asyncio.sleep(wait_time)
        raise CollaboratorError(f"{provider} request failed")

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.2,
        response_schema: dict[str, Any] | None = None,
    ) -> LLMReply:
        """Generate a reply; a response schema requests JSON output"""
        if self.provider == "gemini":
            url, model = self._get_gemini_config()
            payload = self._build_gemini_payload(prompt, temperature, response_schema)
            logger.info("Calling Gemini model %s", model)
            data = await self._retry_with_backoff(lambda: self._post_json(url, payload, None, "Gemini"), "Gemini")
            return self._parse_gemini_response(data)

        if self.provider in ("openai", "vllm"):
            if self.provider == "openai":
                model, url, headers = self._get_openai_config()
            else:
                model, url, headers = self._get_vllm_config()
            provider = "OpenAI" if self.provider == "openai" else "vLLM"
            payload = self._build_openai_payload(model, prompt, temperature, response_schema is not None)
            logger.info("Calling %s model %s", provider, model)
            data = await self._retry_with_backoff(lambda: self._post_json(url, payload, headers, provider), provider)
            return self._parse_openai_response(data)

        raise CollaboratorError(f"Unsupported provider: {self.provider}")

    async def generate_response(self, prompt: str) -> str:
        """Plain-text reply"""
        reply = await self.generate(prompt)
        return reply.text
