"""
Provider-agnostic LLM client for memvid agent memory.

One capability, ``generate(messages) -> GenerationResult``, over a closed set
of backends: OpenAI-compatible APIs, Azure OpenAI, a local Ollama daemon,
Anthropic, Google Gemini, and host-integrated models reached through the
loopback bridge. The backend is chosen by ``create_provider`` from the
provider id; adapters never retry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import LLMConfig, validate_llm_config
from .errors import ProviderError
from .prompts import build_rewrite_messages
from .schemas import GenerationResult

logger = logging.getLogger("memvid.common.llm_client")

Messages = Sequence[Dict[str, str]]

EMPTY_ANSWER = "No response generated."


class LLMProvider(ABC):
    """Uniform text generation over one language-model backend."""

    name: str = ""

    def __init__(
        self,
        model: str,
        *,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    @abstractmethod
    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        """Generate a completion for role-tagged chat messages."""

    async def rewrite_query(self, question: str, tried_keywords: Sequence[str]) -> GenerationResult:
        """Ask the model for alternative search terms (raw text answer)."""
        return await self.generate(build_rewrite_messages(question, tried_keywords))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


def _malformed(provider: str, exc: Exception) -> ProviderError:
    return ProviderError(provider, f"malformed response ({type(exc).__name__}: {exc})")


class OpenAIProvider(LLMProvider):
    """OpenAI (or any OpenAI-compatible) chat completions endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        client: Any = None,
        **kwargs,
    ) -> None:
        super().__init__(model, **kwargs)
        if client is None:
            import openai

            client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=self.timeout)
        self._client = client

    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        import openai

        model = model_hint or self.model
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=list(messages),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.APIStatusError as e:
            raise ProviderError(self.name, e.message, e.status_code) from e
        except openai.OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        try:
            answer = response.choices[0].message.content or EMPTY_ANSWER
            usage = getattr(response, "usage", None)
            tokens = getattr(usage, "total_tokens", None) if usage is not None else None
        except (AttributeError, IndexError, TypeError) as e:
            raise _malformed(self.name, e) from e

        return GenerationResult(answer=answer, model=model, provider=self.name, tokens_used=tokens)


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI deployment; the deployment name doubles as the model id."""

    name = "azureOpenai"

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        deployment: str,
        api_version: str = "2024-02-01",
        client: Any = None,
        **kwargs,
    ) -> None:
        if client is None:
            import openai

            client = openai.AsyncAzureOpenAI(
                azure_endpoint=endpoint,
                api_key=api_key,
                api_version=api_version,
                timeout=kwargs.get("timeout", 60.0),
            )
        super().__init__(api_key=api_key, model=deployment, client=client, **kwargs)


class OllamaProvider(LLMProvider):
    """Local Ollama chat daemon (no auth)."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> None:
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}/api/chat"
        if self._client is not None:
            return await self._client.post(url, json=payload)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=payload)

    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        model = model_hint or self.model
        payload = {
            "model": model,
            "messages": list(messages),
            "stream": False,
            "options": {
                "num_predict": self.max_tokens,
                "temperature": self.temperature,
            },
        }
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise ProviderError(self.name, response.text, response.status_code)

        try:
            data = response.json()
            answer = (data.get("message") or {}).get("content") or EMPTY_ANSWER
        except (ValueError, AttributeError) as e:
            raise _malformed(self.name, e) from e

        return GenerationResult(
            answer=answer,
            model=model,
            provider=self.name,
            tokens_used=data.get("eval_count"),
        )


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API; system messages go to the ``system`` field."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        client: Any = None,
        **kwargs,
    ) -> None:
        super().__init__(model, **kwargs)
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self.timeout)
        self._client = client

    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        import anthropic

        model = model_hint or self.model
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]

        kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": chat,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise ProviderError(self.name, e.message, e.status_code) from e
        except anthropic.AnthropicError as e:
            raise ProviderError(self.name, str(e)) from e

        try:
            answer = "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            ).strip()
            usage = getattr(response, "usage", None)
            tokens = None
            if usage is not None:
                tokens = (usage.input_tokens or 0) + (usage.output_tokens or 0)
        except (AttributeError, TypeError) as e:
            raise _malformed(self.name, e) from e

        return GenerationResult(
            answer=answer or EMPTY_ANSWER,
            model=model,
            provider=self.name,
            tokens_used=tokens,
        )


class GoogleProvider(LLMProvider):
    """Google Gemini via google-generativeai."""

    name = "google"

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", genai_module: Any = None, **kwargs) -> None:
        super().__init__(model, **kwargs)
        if genai_module is None:
            import google.generativeai as genai_module

            genai_module.configure(api_key=api_key)
        self._genai = genai_module
        self._models: Dict[tuple, Any] = {}  # Cache models by (name, system prompt)

    def _get_model(self, model: str, system: str):
        key = (model, system)
        if key not in self._models:
            kwargs = {"model_name": model}
            if system:
                kwargs["system_instruction"] = system
            self._models[key] = self._genai.GenerativeModel(**kwargs)
        return self._models[key]

    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        model_name = model_hint or self.model
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in messages
            if m["role"] != "system"
        ]

        try:
            response = await self._get_model(model_name, system).generate_content_async(
                contents,
                generation_config={
                    "max_output_tokens": self.max_tokens,
                    "temperature": self.temperature,
                },
                request_options={"timeout": self.timeout},
            )
            answer = response.text
        except Exception as e:
            # google-api-core errors and blocked responses (ValueError on .text)
            raise ProviderError(self.name, str(e)) from e

        usage = getattr(response, "usage_metadata", None)
        return GenerationResult(
            answer=(answer or "").strip() or EMPTY_ANSWER,
            model=model_name,
            provider=self.name,
            tokens_used=getattr(usage, "total_token_count", None),
        )


class BridgeProvider(LLMProvider):
    """Host-integrated models reached through the loopback bridge."""

    name = "copilot"

    def __init__(
        self,
        port: int,
        model_family: str = "gpt-4o",
        host: str = "127.0.0.1",
        client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> None:
        super().__init__(model_family, **kwargs)
        self.base_url = f"http://{host}:{port}"
        self._client = client

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"bridge unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = data.get("error") if isinstance(data, dict) else None
            raise ProviderError(self.name, message or response.reason_phrase, response.status_code)
        if not isinstance(data, dict) or "answer" not in data:
            raise ProviderError(self.name, "malformed bridge response")
        return data

    async def generate(self, messages: Messages, model_hint: Optional[str] = None) -> GenerationResult:
        data = await self._post(
            "/llm/generate",
            {"messages": list(messages), "modelFamily": model_hint or self.model},
        )
        return GenerationResult(
            answer=data["answer"] or EMPTY_ANSWER,
            model=data.get("model", ""),
            provider=self.name,
            tokens_used=data.get("tokensUsed"),
        )

    async def rewrite_query(self, question: str, tried_keywords: Sequence[str]) -> GenerationResult:
        data = await self._post(
            "/llm/rewrite",
            {"question": question, "failedKeywords": list(tried_keywords), "modelFamily": self.model},
        )
        return GenerationResult(answer=data["answer"], model=data.get("model", ""), provider=self.name)


def create_provider(llm: LLMConfig) -> Optional[LLMProvider]:
    """Select the backend for the configured provider identity.

    Returns None when no provider is configured, the configuration is
    incomplete, or the client library fails to initialize.
    """
    valid, message = validate_llm_config(llm)
    if llm.provider == "none":
        logger.info("LLM provider not configured, answers will be context only")
        return None
    if not valid:
        logger.warning("LLM provider unavailable: %s", message)
        return None

    common = {"max_tokens": llm.max_tokens, "temperature": llm.temperature, "timeout": llm.timeout}
    try:
        if llm.provider == "openai":
            return OpenAIProvider(
                api_key=llm.openai_api_key,
                model=llm.openai_model,
                base_url=llm.openai_base_url,
                **common,
            )
        if llm.provider == "azureOpenai":
            return AzureOpenAIProvider(
                endpoint=llm.azure_endpoint,
                api_key=llm.azure_api_key,
                deployment=llm.azure_deployment,
                api_version=llm.azure_api_version,
                **common,
            )
        if llm.provider == "ollama":
            return OllamaProvider(base_url=llm.ollama_base_url, model=llm.ollama_model, **common)
        if llm.provider == "anthropic":
            return AnthropicProvider(api_key=llm.anthropic_api_key, model=llm.anthropic_model, **common)
        if llm.provider == "google":
            return GoogleProvider(api_key=llm.google_api_key, model=llm.google_model, **common)
        if llm.provider == "copilot":
            return BridgeProvider(port=llm.bridge_port, model_family=llm.copilot_model_family, **common)
    except ImportError as e:
        logger.warning("Client library for %s not installed: %s", llm.provider, e)
    except Exception as e:
        logger.warning("Failed to initialize %s client: %s", llm.provider, e)
    return None

