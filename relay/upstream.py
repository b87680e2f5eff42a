"""Access to the generative model backend.

Handlers depend only on :class:`GenerativeBackend`; :class:`GeminiBackend`
implements it on top of ``langchain_google_genai``.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI, HarmBlockThreshold, HarmCategory

from config.settings import Settings


logger = logging.getLogger(__name__)


SAFETY_CATEGORIES = (
    HarmCategory.HARM_CATEGORY_HARASSMENT,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


class FragmentStream:
    """One in-flight generation: an async iterator of raw upstream chunks.

    Chunks already pulled while opening the stream are replayed first. The
    stream can be consumed once and must be closed by whoever owns it.
    """

    def __init__(self, chunks: AsyncIterator[Any], primed: Sequence[Any] = ()):
        self._chunks = chunks
        self._primed = list(primed)
        self.closed = False

    def __aiter__(self) -> "FragmentStream":
        return self

    async def __anext__(self) -> Any:
        if self._primed:
            return self._primed.pop(0)
        if self.closed:
            raise StopAsyncIteration
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._primed.clear()
        close = getattr(self._chunks, "aclose", None)
        if close is not None:
            await close()


async def open_fragment_stream(chunks: AsyncIterator[Any]) -> FragmentStream:
    """Start ``chunks`` and wait for the first one.

    Errors raised by the upstream before it produces anything surface here,
    while the handler can still answer with an error status.
    """
    iterator = chunks.__aiter__()
    try:
        first = await iterator.__anext__()
    except StopAsyncIteration:
        return FragmentStream(iterator)
    except BaseException:
        close = getattr(iterator, "aclose", None)
        if close is not None:
            await close()
        raise
    return FragmentStream(iterator, primed=[first])


class ChatSession(ABC):
    @abstractmethod
    async def send_message_stream(self, message: str) -> FragmentStream:
        """Send ``message`` on top of the session history and stream the reply."""


class GenerativeBackend(ABC):
    @abstractmethod
    async def stream_completion(self, prompt: str) -> FragmentStream:
        """Stream a completion for a single prompt."""

    @abstractmethod
    def start_chat(self, history: Sequence[BaseMessage]) -> ChatSession:
        """Open a new conversational session seeded with ``history``."""


class GeminiChatSession(ChatSession):
    def __init__(self, llm: BaseChatModel, history: Sequence[BaseMessage]):
        self._llm = llm
        self.history: List[BaseMessage] = list(history)

    async def send_message_stream(self, message: str) -> FragmentStream:
        messages = [*self.history, HumanMessage(content=message)]
        return await open_fragment_stream(self._llm.astream(messages))


class GeminiBackend(GenerativeBackend):
    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiBackend":
        if not settings.google_api_key:
            raise RuntimeError(
                "GOOGLE_API_KEY not set. Please configure it in environment or .env"
            )

        options: Dict[str, Any] = {}
        if settings.temperature is not None:
            options["temperature"] = settings.temperature
        if settings.top_p is not None:
            options["top_p"] = settings.top_p

        llm = ChatGoogleGenerativeAI(
            model=settings.gemini_model,
            google_api_key=settings.google_api_key,
            safety_settings=build_safety_settings(settings.safety_threshold),
            **options,
        )
        logger.info(
            "Gemini backend ready: model=%s safety_threshold=%s",
            settings.gemini_model,
            settings.safety_threshold,
        )
        return cls(llm)

    async def stream_completion(self, prompt: str) -> FragmentStream:
        return await open_fragment_stream(self.llm.astream(prompt))

    def start_chat(self, history: Sequence[BaseMessage]) -> GeminiChatSession:
        return GeminiChatSession(self.llm, history)


def build_safety_settings(threshold: Optional[str]) -> Dict[HarmCategory, HarmBlockThreshold]:
    name = (threshold or "BLOCK_MEDIUM_AND_ABOVE").strip().upper()
    try:
        level = HarmBlockThreshold[name]
    except KeyError:
        raise ValueError(f"Unknown safety threshold: {threshold!r}") from None
    return {category: level for category in SAFETY_CATEGORIES}
