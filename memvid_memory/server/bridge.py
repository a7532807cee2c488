"""
Host Model Bridge

Loopback-only FastAPI server that lets the MCP server process reach
language models only the host process can select (e.g. editor-integrated
chat models).

Endpoints:
- GET /health: Health check
- GET /llm/available: Whether any host model can be selected
- GET /llm/models: Selectable models as "family (id)"
- POST /llm/generate: Chat completion over role-tagged messages
- POST /llm/rewrite: Alternative search terms for a failed query
"""

import argparse
import asyncio
import contextlib
import ipaddress
import logging
import sys
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..common.config import load_config
from ..common.llm_client import LLMProvider, create_provider
from ..common.prompts import build_rewrite_messages

logger = logging.getLogger("memvid.server.bridge")

PROVIDER_NAME = "copilot"
DISCONNECT_POLL_SECONDS = 0.25


class RequestCancelled(Exception):
    """The caller went away before generation finished."""


def is_loopback(host: Optional[str]) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def check_loopback_host(host: str) -> str:
    """Reject bind addresses other than loopback."""
    if not is_loopback(host):
        raise ValueError(f"Bridge must bind to a loopback address, got {host!r}")
    return host


# =============================================================================
# Host models
# =============================================================================

class HostChatModel(ABC):
    """A chat model selectable in the host process; responses stream as text."""

    family: str = ""
    vendor: str = ""
    id: str = ""

    @abstractmethod
    def send_request(
        self,
        messages: Sequence[Dict[str, str]],
        cancel_event: asyncio.Event,
    ) -> AsyncIterator[str]:
        """Yield response text chunks."""

    @property
    def display_name(self) -> str:
        return f"{self.family} ({self.vendor})"


class ModelSelector(ABC):
    @abstractmethod
    async def select(self, family: Optional[str] = None) -> List[HostChatModel]:
        """Models matching a family, or all models when family is None."""


async def select_model(selector: ModelSelector, family: Optional[str]) -> Optional[HostChatModel]:
    """Preferred family first, then any available family."""
    models: List[HostChatModel] = []
    if family:
        models = await selector.select(family)
    if not models:
        if family:
            logger.info("No host model for family %r, falling back to any family", family)
        models = await selector.select(None)
    return models[0] if models else None


async def collect_text(
    model: HostChatModel,
    messages: Sequence[Dict[str, str]],
    cancel_event: asyncio.Event,
) -> str:
    chunks = []
    async for chunk in model.send_request(messages, cancel_event):
        if cancel_event.is_set():
            raise RequestCancelled()
        chunks.append(chunk)
    if cancel_event.is_set():
        raise RequestCancelled()
    return "".join(chunks)


class ProviderChatModel(HostChatModel):
    """Exposes a configured LLMProvider as a host model (single chunk)."""

    def __init__(self, provider: LLMProvider):
        self._provider = provider
        self.family = provider.model
        self.vendor = provider.name
        self.id = f"{provider.name}:{provider.model}"

    async def send_request(self, messages, cancel_event):
        result = await self._provider.generate(messages)
        if not cancel_event.is_set():
            yield result.answer


class ProviderModelSelector(ModelSelector):
    """Selects among configured providers by model name."""

    def __init__(self, providers: Sequence[LLMProvider]):
        self._models = [ProviderChatModel(p) for p in providers]

    async def select(self, family: Optional[str] = None) -> List[HostChatModel]:
        if family is None:
            return list(self._models)
        return [m for m in self._models if m.family == family]


# =============================================================================
# Request Models
# =============================================================================

class ChatMessage(BaseModel):
    role: str = "user"
    content: str


class GenerateRequest(BaseModel):
    messages: List[ChatMessage]
    modelFamily: Optional[str] = None


class RewriteRequest(BaseModel):
    question: str
    failedKeywords: List[str] = Field(default_factory=list)
    modelFamily: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def require_loopback_client(request: Request) -> None:
    client_host = request.client.host if request.client else None
    if not is_loopback(client_host):
        logger.warning("Rejected non-loopback client %s", client_host)
        raise HTTPException(status_code=403, detail="Forbidden")


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling generation")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# =============================================================================
# App
# =============================================================================

def create_bridge_app(selector: ModelSelector, port: Optional[int] = None) -> FastAPI:
    """Build the bridge app around a host model selector."""
    app = FastAPI(
        title="memvid Host Model Bridge",
        description="Loopback bridge to host-selectable language models",
        version="0.1.0",
        dependencies=[Depends(require_loopback_client)],
    )

    async def _run(request: Request, messages: List[Dict[str, str]], family: Optional[str]):
        model = await select_model(selector, family)
        if model is None:
            return None, _error(503, "Host model not available")

        cancel_event = asyncio.Event()
        watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
        try:
            text = await collect_text(model, messages, cancel_event)
        except RequestCancelled:
            return None, _error(499, "Request cancelled")
        except Exception as e:
            logger.error("Host model generation failed: %s", e)
            return None, _error(500, str(e) or type(e).__name__)
        finally:
            cancel_event.set()
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
        return (model, text), None

    @app.get("/health")
    async def health():
        return {"status": "ok", "port": port}

    @app.get("/llm/available")
    async def llm_available():
        return {"available": bool(await selector.select(None))}

    @app.get("/llm/models")
    async def llm_models():
        models = await selector.select(None)
        return {"models": [f"{m.family} ({m.id})" for m in models]}

    @app.post("/llm/generate")
    async def llm_generate(body: GenerateRequest, request: Request):
        messages = [m.model_dump() for m in body.messages]
        result, error = await _run(request, messages, body.modelFamily)
        if error is not None:
            return error
        model, text = result
        return {"answer": text, "model": model.display_name, "provider": PROVIDER_NAME}

    @app.post("/llm/rewrite")
    async def llm_rewrite(body: RewriteRequest, request: Request):
        messages = build_rewrite_messages(body.question, body.failedKeywords)
        result, error = await _run(request, messages, body.modelFamily)
        if error is not None:
            return error
        model, text = result
        return {"answer": text, "model": model.display_name}

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> None:
    """Run the bridge standalone over the configured LLM provider."""
    import uvicorn

    load_dotenv()
    config = load_config()

    parser = argparse.ArgumentParser(description="Run the memvid host model bridge (loopback only).")
    parser.add_argument("--host", default=config.bridge.host, help="Loopback bind address.")
    parser.add_argument("--port", type=int, default=config.bridge.port, help="Port (0 = any free port).")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    host = check_loopback_host(args.host)
    if config.llm.provider == PROVIDER_NAME:
        parser.error("the bridge cannot serve the copilot provider to itself; configure another LLM provider")

    provider = create_provider(config.llm)
    providers = [provider] if provider is not None else []
    if not providers:
        logger.warning("No LLM provider configured; /llm/generate will answer 503")

    app = create_bridge_app(ProviderModelSelector(providers), port=args.port or None)
    logger.info("Starting bridge on %s:%s", host, args.port)
    uvicorn.run(app, host=host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
