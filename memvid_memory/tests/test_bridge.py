"""Tests for the loopback host model bridge."""

import asyncio
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from memvid_memory.server.bridge import (
    HostChatModel,
    ModelSelector,
    ProviderModelSelector,
    RequestCancelled,
    check_loopback_host,
    collect_text,
    create_bridge_app,
    select_model,
)
from memvid_memory.tests.fakes import FakeProvider

LOOPBACK = ("127.0.0.1", 50000)


class FakeHostModel(HostChatModel):
    def __init__(self, family="gpt-4o", chunks=("Hello", ", world"), error: Optional[Exception] = None):
        self.family = family
        self.vendor = "copilot"
        self.id = f"{family}-id"
        self.chunks = list(chunks)
        self.error = error
        self.requests: List[list] = []

    async def send_request(self, messages, cancel_event):
        self.requests.append(list(messages))
        if self.error:
            raise self.error
        for chunk in self.chunks:
            yield chunk


class ListSelector(ModelSelector):
    def __init__(self, models):
        self.models = models

    async def select(self, family=None):
        if family is None:
            return list(self.models)
        return [m for m in self.models if m.family == family]


def _client(models, port=1234, client=LOOPBACK):
    return TestClient(create_bridge_app(ListSelector(models), port=port), client=client)


class TestEndpoints:
    def test_health(self):
        response = _client([]).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "port": 1234}

    def test_available(self):
        assert _client([FakeHostModel()]).get("/llm/available").json() == {"available": True}
        assert _client([]).get("/llm/available").json() == {"available": False}

    def test_models(self):
        models = [FakeHostModel("gpt-4o"), FakeHostModel("gpt-4o-mini")]
        assert _client(models).get("/llm/models").json() == {
            "models": ["gpt-4o (gpt-4o-id)", "gpt-4o-mini (gpt-4o-mini-id)"],
        }

    def test_generate(self):
        model = FakeHostModel()
        response = _client([model]).post("/llm/generate", json={
            "messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
            "modelFamily": "gpt-4o",
        })

        assert response.status_code == 200
        assert response.json() == {"answer": "Hello, world", "model": "gpt-4o (copilot)", "provider": "copilot"}
        assert model.requests[0] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]

    def test_generate_falls_back_to_any_family(self):
        mini = FakeHostModel("gpt-4o-mini", chunks=["mini"])
        response = _client([mini]).post("/llm/generate", json={
            "messages": [{"role": "user", "content": "hi"}],
            "modelFamily": "claude-3.5",
        })
        assert response.status_code == 200
        assert response.json()["model"] == "gpt-4o-mini (copilot)"

    def test_generate_unavailable(self):
        response = _client([]).post("/llm/generate", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.status_code == 503
        assert response.json() == {"error": "Host model not available"}

    def test_generate_failure(self):
        model = FakeHostModel(error=RuntimeError("rate limited"))
        response = _client([model]).post("/llm/generate", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.status_code == 500
        assert response.json() == {"error": "rate limited"}

    def test_rewrite(self):
        model = FakeHostModel(chunks=['["postgres", ', '"sql"]'])
        response = _client([model]).post("/llm/rewrite", json={
            "question": "Which DB?",
            "failedKeywords": ["database"],
        })

        assert response.status_code == 200
        assert response.json() == {"answer": '["postgres", "sql"]', "model": "gpt-4o (copilot)"}
        system, user = model.requests[0]
        assert "search query optimizer" in system["content"]
        assert "database" in user["content"]

    def test_rejects_non_loopback_clients(self):
        response = _client([FakeHostModel()], client=("10.1.2.3", 40000)).get("/health")
        assert response.status_code == 403


class TestLoopbackHost:
    @pytest.mark.parametrize("host", ["127.0.0.1", "localhost", "::1", "127.0.0.2"])
    def test_loopback_accepted(self, host):
        assert check_loopback_host(host) == host

    @pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.10", "example.com", ""])
    def test_other_hosts_rejected(self, host):
        with pytest.raises(ValueError):
            check_loopback_host(host)


class TestModelSelection:
    @pytest.mark.asyncio
    async def test_preferred_family(self):
        preferred = FakeHostModel("gpt-4o")
        selector = ListSelector([FakeHostModel("gpt-4o-mini"), preferred])
        assert await select_model(selector, "gpt-4o") is preferred

    @pytest.mark.asyncio
    async def test_none_available(self):
        assert await select_model(ListSelector([]), "gpt-4o") is None

    @pytest.mark.asyncio
    async def test_collect_text_honours_cancellation(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        with pytest.raises(RequestCancelled):
            await collect_text(FakeHostModel(), [{"role": "user", "content": "hi"}], cancel_event)


class TestProviderModelSelector:
    @pytest.mark.asyncio
    async def test_select_by_model_name(self):
        selector = ProviderModelSelector([FakeProvider()])
        assert len(await selector.select(None)) == 1
        assert len(await selector.select("fake-model")) == 1
        assert await selector.select("other") == []

    def test_generate_through_provider(self):
        provider = FakeProvider(answer="from provider")
        client = TestClient(create_bridge_app(ProviderModelSelector([provider])), client=LOOPBACK)
        response = client.post("/llm/generate", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        assert response.json() == {"answer": "from provider", "model": "fake-model (fake)", "provider": "copilot"}
        assert provider.generate_calls == [[{"role": "user", "content": "hi"}]]
