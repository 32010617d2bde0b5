import os
from abc import ABC, abstractmethod

import httpx
from langsmith import traceable
from langsmith.wrappers import wrap_openai
from openai import APIError, APIStatusError, AsyncOpenAI
from pydantic import BaseModel

from corpgpt.config import settings
from corpgpt.errors import GenerationError
from corpgpt.models.messages import HistoryEntry

os.environ["LANGSMITH_TRACING"] = settings.langsmith_tracing
os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project

FALLBACK_REPLY = "Sorry, I couldn't get a response."

TITLE_INSTRUCTION = (
    'Create a very short, concise chat title (4 words max) for this user prompt: "{prompt}". '
    "Do NOT include any formatting, quotes, punctuation, emojis, or special characters like **. "
    "Only return the plain title text."
)

# Gemini calls the assistant role "model"; the OpenAI-compatible endpoint expects "assistant"
_ROLE_MAP = {"user": "user", "model": "assistant"}


class GeneratorConfig(BaseModel):
    endpoint: str
    api_key: str
    model: str
    instruction_text: str = ""

    @classmethod
    def from_settings(cls, instruction_text: str = "") -> "GeneratorConfig":
        return cls(
            endpoint=settings.gemini_base_url,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            instruction_text=instruction_text,
        )


class ReplyGenerator(ABC):
    @abstractmethod
    async def generate(self, history: list[HistoryEntry], instruction: str | None = None) -> str:
        """Return reply text for ``history`` or raise GenerationError."""


class GeminiReplyGenerator(ReplyGenerator):
    """Reply generator backed by Gemini's OpenAI-compatible chat endpoint."""

    def __init__(self, config: GeneratorConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        raw_client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint,
            http_client=http_client,
            max_retries=0,
        )
        self._client = wrap_openai(raw_client)

    def _build_messages(self, history: list[HistoryEntry], instruction: str) -> list[dict]:
        messages = []
        if instruction:
            messages.append({"role": "system", "content": instruction})
        for entry in history:
            messages.append({"role": _ROLE_MAP[entry.role], "content": entry.text})
        return messages

    @traceable(name="generate_reply")
    async def generate(self, history: list[HistoryEntry], instruction: str | None = None) -> str:
        instruction = self.config.instruction_text if instruction is None else instruction
        try:
            response = await self._client.chat.completions.create(
                model=self.config.model,
                messages=self._build_messages(history, instruction),
            )
        except APIStatusError as e:
            raise GenerationError(f"API request failed: {e.message}", status=e.status_code) from e
        except APIError as e:
            raise GenerationError(f"API request failed: {e.message}") from e

        if not response.choices:
            raise GenerationError("API request failed: response contained no candidates")
        return response.choices[0].message.content or FALLBACK_REPLY


def error_reply_text(error: GenerationError) -> str:
    """Render a generation failure as the text stored in place of a reply."""
    return f"An error occurred: {error.message.rstrip('.')}."


def title_instruction(prompt: str) -> str:
    return TITLE_INSTRUCTION.format(prompt=prompt)


def clean_title(raw: str) -> str:
    """Strip whitespace, surrounding quotes and one trailing period from a generated title."""
    title = raw.strip()
    while len(title) >= 2 and title[0] == title[-1] and title[0] in "\"'":
        title = title[1:-1].strip()
    title = title.replace('"', "")
    if title.endswith("."):
        title = title[:-1]
    return title.strip()
