from fastapi import Depends, Request

from relay.chat import ChatSessionAdapter
from relay.prompt import PromptBuilder
from relay.upstream import GenerativeBackend


def get_backend(request: Request) -> GenerativeBackend:
    return request.app.state.backend


def prompt_builder() -> PromptBuilder:
    return PromptBuilder()


def chat_adapter(backend: GenerativeBackend = Depends(get_backend)) -> ChatSessionAdapter:
    return ChatSessionAdapter(backend)
