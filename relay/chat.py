from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from relay.errors import InvalidHistory
from relay.models import ConversationTurn
from relay.upstream import FragmentStream, GenerativeBackend


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedChat:
    prior_context: List[BaseMessage] = field(default_factory=list)
    message: str = ""


def to_upstream_turn(turn: ConversationTurn) -> BaseMessage:
    # Gemini only knows "user" and "model"; every non-user turn is the model's.
    if turn.is_user:
        return HumanMessage(content=turn.text)
    return AIMessage(content=turn.text)


class ChatSessionAdapter:
    """Turns a client-held conversation into a fresh upstream chat session.

    The server keeps no conversation state: clients resend the whole history
    on every request and each request gets its own session.
    """

    def __init__(self, backend: GenerativeBackend):
        self.backend = backend

    def prepare(self, history: Sequence[ConversationTurn]) -> PreparedChat:
        """Split ``history`` into prior context and the message to send now.

        Raises:
            InvalidHistory: if the history is empty or its last turn has no text.
        """
        if not history:
            raise InvalidHistory("Chat history is required.")
        last = history[-1]
        if not last.text:
            raise InvalidHistory("The last message in the chat history is empty.")
        prior = [to_upstream_turn(turn) for turn in history[:-1]]
        return PreparedChat(prior_context=prior, message=last.text)

    async def stream_reply(self, prepared: PreparedChat) -> FragmentStream:
        logger.info(
            "Starting chat session: prior_turns=%s message_len=%s",
            len(prepared.prior_context),
            len(prepared.message),
        )
        session = self.backend.start_chat(prepared.prior_context)
        return await session.send_message_stream(prepared.message)
