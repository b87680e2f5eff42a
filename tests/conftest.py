from __future__ import annotations

from typing import Any, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import BaseMessage

from app.main import create_app
from config.settings import Settings
from relay.upstream import ChatSession, FragmentStream, GenerativeBackend, open_fragment_stream


async def _generate(fragments: Sequence[Any], error: Optional[BaseException]):
    for fragment in fragments:
        yield fragment
    if error is not None:
        raise error


class StubChatSession(ChatSession):
    def __init__(self, backend: "StubBackend", history: Sequence[BaseMessage]):
        self.backend = backend
        self.history = list(history)
        self.messages: List[str] = []

    async def send_message_stream(self, message: str) -> FragmentStream:
        self.messages.append(message)
        self.backend.calls += 1
        return await open_fragment_stream(self.backend.generate())


class StubBackend(GenerativeBackend):
    """Backend double that records calls and replays canned fragments.

    ``start_error`` is raised before the first fragment, ``stream_error``
    after all fragments have been yielded.
    """

    def __init__(
        self,
        fragments: Sequence[Any] = (),
        start_error: Optional[BaseException] = None,
        stream_error: Optional[BaseException] = None,
    ):
        self.fragments = list(fragments)
        self.start_error = start_error
        self.stream_error = stream_error
        self.calls = 0
        self.prompts: List[str] = []
        self.sessions: List[StubChatSession] = []
        self.streams: List[FragmentStream] = []

    async def generate(self):
        if self.start_error is not None:
            raise self.start_error
        async for fragment in _generate(self.fragments, self.stream_error):
            yield fragment

    async def stream_completion(self, prompt: str) -> FragmentStream:
        self.prompts.append(prompt)
        self.calls += 1
        stream = await open_fragment_stream(self.generate())
        self.streams.append(stream)
        return stream

    def start_chat(self, history: Sequence[BaseMessage]) -> StubChatSession:
        session = StubChatSession(self, history)
        self.sessions.append(session)
        return session


class RecordingSend:
    """Collects the ASGI messages a response sends."""

    def __init__(self, fail_after: Optional[int] = None):
        self.messages: List[dict] = []
        self.fail_after = fail_after

    async def __call__(self, message: dict) -> None:
        if self.fail_after is not None and len(self.messages) >= self.fail_after:
            raise OSError("connection reset by peer")
        self.messages.append(message)

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")

    @property
    def final_messages(self) -> List[dict]:
        return [
            m for m in self.messages
            if m["type"] == "http.response.body" and not m.get("more_body", False)
        ]

    @property
    def headers(self) -> dict:
        start = next(m for m in self.messages if m["type"] == "http.response.start")
        return {k.decode(): v.decode() for k, v in start["headers"]}


@pytest.fixture()
def settings() -> Settings:
    return Settings(google_api_key="test-key", app_env="test", static_dir=None)


@pytest.fixture()
def backend() -> StubBackend:
    return StubBackend()


@pytest.fixture()
def client(settings: Settings, backend: StubBackend):
    with TestClient(create_app(settings, backend=backend)) as test_client:
        yield test_client
