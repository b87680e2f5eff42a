"""Prompt construction for article summaries."""
from __future__ import annotations

from textwrap import dedent
from typing import Optional


SUMMARY_INSTRUCTIONS = dedent(
    """
    You are an editing assistant for Wikipedia. Read the opening section of the
    article below and summarize the content of the whole article concisely and
    accurately in 3 to 4 sentences.
    """
).strip()

DELIMITER = "---"


class PromptBuilder:
    """Embeds article context into the summary instruction template.

    The context is inserted verbatim between delimiter lines. It is never
    escaped, so a context that itself contains the delimiter is passed through
    unchanged and left for the model to cope with.
    """

    def __init__(self, instructions: Optional[str] = None):
        self._instructions = instructions or SUMMARY_INSTRUCTIONS

    @property
    def instructions(self) -> str:
        return self._instructions

    def build(self, context: str) -> str:
        return f"{self._instructions}\n\n{DELIMITER}\n{context}\n{DELIMITER}"
