from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx
from openai import AsyncOpenAI, OpenAIError

from .errors import ConfigurationError, UpstreamServiceError
from .types import Citation, is_absolute_url

logger = logging.getLogger(__name__)


@dataclass
class LLMMessage:
    role: str
    content: str


@dataclass
class LLMResponse:
    content: str
    usage: Dict[str, Any]
    citations: List[Citation] = field(default_factory=list)


class LLMClient(Protocol):
    """Minimal client interface for generative models."""

    name: str

    async def generate(self, messages: Iterable[LLMMessage], **kwargs: Any) -> LLMResponse:
        ...


def _wants_json(kwargs: Dict[str, Any]) -> bool:
    response_format = kwargs.get("response_format") or {}
    return response_format.get("type") == "json_object"


def _parse_citations(raw: Any) -> List[Citation]:
    """Accept bare URLs or {title, url, snippet} objects; drop unusable entries."""

    citations: List[Citation] = []
    for item in raw or []:
        if isinstance(item, str):
            url, title, snippet = item, item, None
        elif isinstance(item, dict):
            url = item.get("url") or ""
            title = item.get("title") or "External Source"
            snippet = item.get("snippet")
        else:
            continue
        if not is_absolute_url(url):
            logger.debug("Dropping citation with non-absolute url %r", url)
            continue
        citations.append(Citation(title=title, url=url, snippet=snippet))
    return citations


class OpenAIClient:
    """Wrapper over the official OpenAI client."""

    def __init__(self, model: str, api_key: str, timeout: float = 30.0, name: str = "openai"):
        self._client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.timeout = timeout
        self.name = name

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **kwargs: Any,
    ) -> LLMResponse:
        messages_payload = [{"role": m.role, "content": m.content} for m in messages]
        try:
            response = await self._client.chat.completions.create(
                model=self.model, messages=messages_payload, timeout=self.timeout, **kwargs
            )
        except OpenAIError as exc:
            raise UpstreamServiceError(self.name, str(exc)) from exc
        choice = response.choices[0]
        content = choice.message.content or ""
        usage = response.usage.model_dump() if hasattr(response.usage, "model_dump") else {}
        return LLMResponse(content=content, usage=usage)


class OpenRouterClient:
    """HTTP client for OpenRouter chat completions."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: float = 40.0,
        name: str = "openrouter",
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.name = name

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **kwargs: Any,
    ) -> LLMResponse:
        payload = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        payload.update(kwargs)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "dashgen",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
            choice = data["choices"][0]
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            raise UpstreamServiceError(self.name, str(exc)) from exc
        content = choice.get("message", {}).get("content", "") or ""
        usage = data.get("usage", {})
        return LLMResponse(content=content, usage=usage)


class PerplexityClient:
    """Perplexity chat completions; the online models return citations."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://api.perplexity.ai/chat/completions",
        timeout: float = 40.0,
        name: str = "perplexity",
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.name = name

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **kwargs: Any,
    ) -> LLMResponse:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": kwargs.get("temperature", 0.2),
            "max_tokens": kwargs.get("max_tokens", 2000),
            "return_citations": True,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
            choice = data["choices"][0]
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            raise UpstreamServiceError(self.name, str(exc)) from exc
        content = choice.get("message", {}).get("content", "") or ""
        return LLMResponse(
            content=content,
            usage=data.get("usage", {}),
            citations=_parse_citations(data.get("citations")),
        )


class GeminiClient:
    """Google Generative Language API (generateContent)."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models",
        timeout: float = 40.0,
        name: str = "gemini",
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.name = name

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **kwargs: Any,
    ) -> LLMResponse:
        messages = list(messages)
        system_text = "\n".join(m.content for m in messages if m.role == "system")
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        generation_config: Dict[str, Any] = {
            "temperature": kwargs.get("temperature", 0.4),
            "maxOutputTokens": kwargs.get("max_tokens", 4096),
        }
        if _wants_json(kwargs):
            generation_config["responseMimeType"] = "application/json"
        payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}

        url = f"{self.endpoint}/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamServiceError(self.name, str(exc)) from exc
        candidates = data.get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)
        return LLMResponse(content=content, usage=data.get("usageMetadata", {}))


class HuggingFaceClient:
    """Hugging Face hosted inference (text generation)."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://api-inference.huggingface.co/models",
        timeout: float = 40.0,
        name: str = "huggingface",
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.name = name

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **kwargs: Any,
    ) -> LLMResponse:
        prompt = "\n\n".join(m.content for m in messages)
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": kwargs.get("max_tokens", 1000),
                "temperature": kwargs.get("temperature", 0.7),
                "return_full_text": False,
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.endpoint}/{self.model}", json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamServiceError(self.name, str(exc)) from exc
        content = ""
        if isinstance(data, list) and data and isinstance(data[0], dict):
            content = data[0].get("generated_text", "") or ""
        elif isinstance(data, dict):
            content = data.get("generated_text", "") or ""
        return LLMResponse(content=content, usage={})


class EchoClient:
    """Fallback LLM client for offline development."""

    def __init__(self, tag: str = "echo"):
        self.tag = tag
        self.name = tag

    async def generate(
        self,
        messages: Iterable[LLMMessage],
        **_: Any,
    ) -> LLMResponse:
        collected = "\n\n".join(f"[{m.role}] {m.content}" for m in messages)
        logger.warning("EchoClient returning request payload because no LLM is configured.")
        return LLMResponse(
            content=f"[{self.tag} mock response]\n{collected}",
            usage={"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        )


_HTTP_PROVIDERS = {
    "openrouter": OpenRouterClient,
    "perplexity": PerplexityClient,
    "gemini": GeminiClient,
    "huggingface": HuggingFaceClient,
}


class LLMClientFactory:
    """Builds clients from configuration sections, once per section.

    Clients only hold endpoint and credentials, so one handle per section is
    shared by every request.
    """

    def __init__(self, config: Dict[str, Any], timeout: float = 40.0):
        self.config = config
        self.timeout = timeout
        self._clients: Dict[str, LLMClient] = {}

    def build(self, section: str) -> LLMClient:
        client = self._clients.get(section)
        if client is None:
            client = self._create(section)
            self._clients[section] = client
        return client

    def _create(self, section: str) -> LLMClient:
        section_cfg = self.config.get(section) or {}
        provider = section_cfg.get("provider", "echo")
        if provider == "echo":
            return EchoClient(tag=section)

        model = section_cfg.get("model")
        api_key = section_cfg.get("api_key")
        if not model:
            raise ConfigurationError(f"Missing model for {section} LLM configuration.")
        if not api_key:
            raise ConfigurationError(f"Missing api_key for {section} LLM configuration ({provider}).")
        timeout = float(section_cfg.get("timeout", self.timeout))

        if provider == "openai":
            return OpenAIClient(model=model, api_key=api_key, timeout=timeout, name=section)
        client_cls = _HTTP_PROVIDERS.get(provider)
        if client_cls is None:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}")
        kwargs: Dict[str, Any] = {"model": model, "api_key": api_key, "timeout": timeout, "name": section}
        if section_cfg.get("endpoint"):
            kwargs["endpoint"] = section_cfg["endpoint"]
        return client_cls(**kwargs)

    def provider(self, section: str) -> Optional[str]:
        section_cfg = self.config.get(section)
        if not section_cfg:
            return None
        return section_cfg.get("provider", "echo")
