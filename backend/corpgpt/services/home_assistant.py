import logging
import re

from corpgpt.composers import COMPOSERS
from corpgpt.errors import GenerationError
from corpgpt.models.messages import HistoryEntry
from corpgpt.services.gemini_service import ReplyGenerator
from corpgpt.services.preferences import (
    HOME_CONVERSATION_KEY,
    HOME_HAS_CONVERSATION_KEY,
    PreferenceStore,
)

logger = logging.getLogger(__name__)

HOME_ERROR_REPLY = "Sorry, I encountered an error. Please try again."

HOME_INSTRUCTION = """Your name is CorpGPT. You are an AI assistant for a workplace productivity application.

You have access to 6 specialized composer tools:

1. **Teams Composer** - For drafting Microsoft Teams messages
2. **Email Composer** - For writing professional emails
3. **Writing Editor** - For grammar, spelling, and writing improvement
4. **Document Summariser** - For summarizing PDFs and documents
5. **Career Advisor** - For career advice, job search, and professional growth
6. **Wellbeing Assistant** - For mental health and workplace wellbeing support

If a user asks about or wants to use any of these tools, respond with a helpful message and include a special link format: [COMPOSER:tool_name]. For example:
- If they want to write a Teams message: "I can help you draft a Teams message! (next line) [COMPOSER:teams]"
- If they want email help: "I'd be happy to help you write a professional email! (next line) [COMPOSER:email]"
- If they want writing help: "I can help improve your writing! (next line) [COMPOSER:grammar]"

Always be helpful and guide users to the appropriate tool when relevant."""

_COMPOSER_LINK = re.compile(r"\[COMPOSER:(\w+)\]")


def parse_composer_links(text: str) -> list[str]:
    """Return the known composer keys linked from ``text``, in order of appearance."""
    links = []
    for key in _COMPOSER_LINK.findall(text):
        if key in COMPOSERS and key not in links:
            links.append(key)
    return links


class HomeAssistant:
    """Home page helper whose conversation survives in the user's preferences."""

    def __init__(self, generator: ReplyGenerator, prefs: PreferenceStore):
        self.generator = generator
        self.prefs = prefs

    @property
    def conversation(self) -> list[HistoryEntry]:
        raw = self.prefs.get(HOME_CONVERSATION_KEY, []) or []
        return [HistoryEntry(**entry) for entry in raw]

    def _save(self, conversation: list[HistoryEntry]) -> None:
        self.prefs.set(HOME_CONVERSATION_KEY, [entry.model_dump() for entry in conversation])

    async def ask(self, text: str) -> str | None:
        message = text.strip()
        if not message:
            return None

        conversation = self.conversation + [HistoryEntry(role="user", text=message)]
        self._save(conversation)
        try:
            reply = await self.generator.generate(conversation, HOME_INSTRUCTION)
        except GenerationError as e:
            logger.warning(f"Home assistant reply failed: {e.message}")
            return HOME_ERROR_REPLY

        conversation.append(HistoryEntry(role="model", text=reply))
        self._save(conversation)
        self.prefs.set(HOME_HAS_CONVERSATION_KEY, True)
        return reply

    def clear(self) -> None:
        self.prefs.clear(HOME_CONVERSATION_KEY)
        self.prefs.clear(HOME_HAS_CONVERSATION_KEY)
