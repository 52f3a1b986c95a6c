"""
llm_client.py — The two model backends behind one async interface.

  GeminiClient     google-genai async surface, structured JSON output
  LocalLLMClient   OpenAI-compatible /chat/completions (LM Studio & co.)

Both return the raw reply text; repair and normalization happen in the
orchestrator. Errors propagate untouched so the retry policy can see
rate limits (HTTP 429 / RESOURCE_EXHAUSTED).

Per-backend differences (token budgets, image size, prompt style) live in
BackendProfile so the orchestrator never branches on the backend name.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Type

import requests
from google import genai
from google.genai import types
from pydantic import BaseModel

from .config import GEMINI_MODELS, LOCAL_MODEL, LOCAL_TIMEOUT, Settings
from .errors import is_rate_limit_error

logger = logging.getLogger(__name__)

JSON_SYSTEM_PROMPT = (
    "Você é um especialista em pintura de miniaturas. "
    "Responda APENAS com JSON válido, sem markdown nem explicações."
)


@dataclass
class CompletionOptions:
    temperature: float = 0.4
    max_output_tokens: int = 8192
    json_mode: bool = True
    response_schema: Optional[Type[BaseModel]] = None
    system_instruction: Optional[str] = None


@dataclass(frozen=True)
class BackendProfile:
    name: str
    colors_tokens: int
    parts_tokens: int
    steps_tokens: int
    max_image_dim: Optional[int]   # None = send the original image
    parts_image_dim: int
    hex_tokens: int
    jpeg_quality: int
    compact_prompts: bool
    substitute_fallback_plan: bool
    parse_inventory_locally: bool


GEMINI_PROFILE = BackendProfile(
    name="gemini",
    colors_tokens=8192,
    parts_tokens=4096,
    steps_tokens=16384,
    max_image_dim=None,
    parts_image_dim=1024,
    hex_tokens=1024,
    jpeg_quality=85,
    compact_prompts=False,
    substitute_fallback_plan=False,
    parse_inventory_locally=False,
)

LOCAL_PROFILE = BackendProfile(
    name="local",
    colors_tokens=2048,
    parts_tokens=1536,
    steps_tokens=4096,
    max_image_dim=768,
    parts_image_dim=512,
    hex_tokens=12,
    jpeg_quality=80,
    compact_prompts=True,
    substitute_fallback_plan=True,
    parse_inventory_locally=True,
)


class LLMClient(ABC):
    profile: BackendProfile

    @abstractmethod
    async def complete_text(self, prompt: str, options: CompletionOptions) -> str:
        ...

    @abstractmethod
    async def complete_vision(
        self, prompt: str, image_bytes: bytes, mime_type: str, options: CompletionOptions
    ) -> str:
        ...


# ── Gemini ────────────────────────────────────────────────────────────────────

def _finish_reason_name(response: Any) -> str:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    reason = getattr(candidates[0], "finish_reason", None)
    return str(getattr(reason, "name", reason) or "")


class GeminiClient(LLMClient):
    profile = GEMINI_PROFILE

    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[Sequence[str]] = None,
        client: Optional[genai.Client] = None,
    ):
        self.models: List[str] = list(models or GEMINI_MODELS)
        if not self.models:
            raise ValueError("No Gemini models configured; set PAINTPLAN_GEMINI_MODELS")
        self._client = client or genai.Client(api_key=api_key or os.environ["GEMINI_API_KEY"])

    def _config(self, options: CompletionOptions) -> types.GenerateContentConfig:
        kwargs: Dict[str, Any] = {
            "temperature": options.temperature,
            "max_output_tokens": options.max_output_tokens,
        }
        if options.system_instruction:
            kwargs["system_instruction"] = options.system_instruction
        if options.json_mode:
            kwargs["response_mime_type"] = "application/json"
            if options.response_schema is not None:
                kwargs["response_schema"] = options.response_schema
        return types.GenerateContentConfig(**kwargs)

    async def _generate(self, contents: Any, options: CompletionOptions) -> str:
        config = self._config(options)
        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                response = await self._client.aio.models.generate_content(
                    model=model, contents=contents, config=config,
                )
            except Exception as e:
                if not is_rate_limit_error(e):
                    raise
                logger.warning(f"{model} is rate-limited, trying the next model")
                last_error = e
                continue
            if _finish_reason_name(response) == "MAX_TOKENS":
                logger.warning(f"{model} hit MAX_TOKENS ({options.max_output_tokens}); reply is truncated")
            return response.text or ""
        # every model was rate-limited
        raise last_error

    async def complete_text(self, prompt: str, options: CompletionOptions) -> str:
        return await self._generate(prompt, options)

    async def complete_vision(
        self, prompt: str, image_bytes: bytes, mime_type: str, options: CompletionOptions
    ) -> str:
        contents = [
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            types.Part.from_text(text=prompt),
        ]
        return await self._generate(contents, options)


# ── Local OpenAI-compatible server ────────────────────────────────────────────

class LocalLLMClient(LLMClient):
    profile = LOCAL_PROFILE

    top_p = 0.9
    repeat_penalty = 1.1

    def __init__(
        self,
        endpoint: str,
        model: str = LOCAL_MODEL,
        timeout: float = LOCAL_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.endpoint}/chat/completions"

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._session.post(self.url, json={"model": self.model, **payload}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    async def _complete(self, user_content: Any, options: CompletionOptions) -> str:
        system = options.system_instruction or (JSON_SYSTEM_PROMPT if options.json_mode else None)
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user_content})
        payload = {
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_output_tokens,
            "top_p": self.top_p,
            "repeat_penalty": self.repeat_penalty,
        }

        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._post, payload)

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ValueError("Empty response from local LLM")
        choice = choices[0]
        if choice.get("finish_reason") == "length":
            logger.warning(f"Local model hit max_tokens ({options.max_output_tokens}); reply is truncated")
        return (choice.get("message") or {}).get("content") or ""

    async def complete_text(self, prompt: str, options: CompletionOptions) -> str:
        return await self._complete(prompt, options)

    async def complete_vision(
        self, prompt: str, image_bytes: bytes, mime_type: str, options: CompletionOptions
    ) -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        content = [
            {"type": "image_url", "image_url": {"url": data_url}},
            {"type": "text", "text": prompt},
        ]
        return await self._complete(content, options)


def build_llm_client(settings: Settings) -> LLMClient:
    if settings.provider == "local":
        return LocalLLMClient(settings.local_endpoint)
    return GeminiClient()
