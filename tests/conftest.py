from __future__ import annotations

import io
import json
from typing import Any, Callable, Union

import httpx
import pytest
from PIL import Image

from content_studio.clients.gemini import GeminiClient
from content_studio.config import GeminiConfig
from content_studio.store import MemoryBackend, PersistedStore

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

Reply = Union[dict, httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeGemini:
    """Test double for the Gemini REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, list[Reply]]] = []

    def on(self, method: str, path_suffix: str, *replies: Reply) -> "FakeGemini":
        """Queue replies for requests whose path ends with ``path_suffix``; the last one repeats."""
        self._routes.append((method.upper(), path_suffix, list(replies)))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, suffix, replies in self._routes:
            if request.method == method and request.url.path.endswith(suffix):
                reply = replies.pop(0) if len(replies) > 1 else replies[0]
                if isinstance(reply, Exception):
                    raise reply
                if isinstance(reply, httpx.Response):
                    return reply
                if callable(reply):
                    return reply(request)
                return httpx.Response(200, json=reply)
        return httpx.Response(404, json={"error": {"message": f"no route for {request.url.path}"}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


def text_response(text: str, **candidate_extra: Any) -> dict[str, Any]:
    candidate = {"content": {"role": "model", "parts": [{"text": text}]}}
    candidate.update(candidate_extra)
    return {"candidates": [candidate]}


def png_bytes(size: tuple[int, int] = (8, 8), color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def gemini_config() -> GeminiConfig:
    return GeminiConfig(api_key="test-key", base_url=BASE_URL, poll_interval_seconds=0.0)


@pytest.fixture
def fake_service() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def client(gemini_config: GeminiConfig, fake_service: FakeGemini) -> GeminiClient:
    return GeminiClient(gemini_config, transport=fake_service.transport)


@pytest.fixture
def store() -> PersistedStore:
    return PersistedStore(MemoryBackend())
