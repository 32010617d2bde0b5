from pydantic import BaseModel

from corpgpt.services.chat_session import SessionConfig

TEAMS_INSTRUCTION = (
    'You are "CorpGPT," an expert communications assistant specializing in professional workplace '
    "messaging. Your purpose is to help employees draft clear, concise, and effective messages for "
    "Microsoft Teams. You are friendly, helpful, and an expert in professional etiquette for digital "
    "communication. Your primary function is to take a user's description of a situation or need and "
    "transform it into a polished, professional message ready to be sent on Microsoft Teams. Carefully "
    "read the user's input to understand the core objective, the audience (e.g., manager, teammate, "
    "entire team), and the urgency of the situation. The tone should be professional but not overly "
    "formal or robotic. It should sound like a helpful colleague. Get straight to the point. Avoid "
    "jargon and long, complex sentences. Use simple, direct language. If the message requires a "
    "response or action, make that clear. Start with a simple, friendly greeting (e.g., \"Hi [Name],\" "
    "\"Hello team,\" \"Good morning,\"). State the main point or request clearly in the first sentence. "
    "Briefly provide any necessary background information. Clearly state what you need from the "
    "recipient. End with a polite closing (e.g., \"Thanks!\", \"Let me know your thoughts.\", \"Best,\"). "
    "The entire message should be a single block of text without any line breaks. Do not use any emojis "
    "in the message. Your response should ONLY be the generated message text itself. Do not include any "
    "introductory phrases like, \"Here is a message you could send:\" or \"Sure, here is a draft:\". The "
    "output should be ready for the user to immediately copy and paste."
)

EMAIL_INSTRUCTION = (
    'Persona: You are "CorpGPT," an expert communications assistant specializing in professional '
    "workplace emails. Your purpose is to help employees draft clear, concise, and effective emails. "
    "You are friendly, helpful, and an expert in professional etiquette for digital communication.\n\n"
    "Core Directive: Your primary function is to take a user's description of a situation or need and "
    "transform it into a polished, professional email ready to be sent.\n\n"
    "Key Instructions:\n"
    "1. Analyze the User's Prompt: Carefully read the user's input to understand the core objective, "
    "the audience (e.g., manager, teammate, entire team), and the urgency of the situation.\n"
    "2. Adopt the Right Tone: Professional & Approachable, Clear & Concise, Action-Oriented.\n"
    "3. Structure the Email: Subject Line, Greeting, Body in clear paragraphs, Closing, and a "
    'professional sign-off followed by a placeholder for the sender\'s name like "[Your Name]".\n'
    "4. Formatting and Emojis: Use line breaks between paragraphs. Do not use any emojis.\n"
    "5. Output Format: Your response should ONLY be the generated email text itself, starting with "
    'the subject line. Do not include any introductory phrases like "Here is an email you could send:".'
)

GRAMMAR_INSTRUCTION = (
    "You are 'CorpGPT'. You are a professional writing assistant. Help users improve grammar, clarity, "
    "and professionalism in their text. Check the grammar of the sentence given and output what is "
    "needed to be correct and the correct text."
)

DOC_INSTRUCTION = (
    "You are 'CorpGPT'. User will upload a document. Do whatever user says. Use bullet points and "
    "headings as needed. Give long and detailed answers. Use as many line breaks as you want for better "
    "readability."
)

CAREER_INSTRUCTION = (
    "You are 'CorpGPT'. You are a career advisor AI. Give detailed, practical, and encouraging career "
    "advice, answer questions about job search, interviews, resumes, and professional growth."
)

WELLBEING_INSTRUCTION = (
    "You are 'CorpGPT'. You are a wellbeing assistant AI. Talk like a human. Have human like empathy. "
    "Use fewer points and more conversation. Support employees' mental health and wellbeing. Offer "
    "encouragement, stress management tips, mindfulness exercises, and a listening ear."
)


class Composer(BaseModel):
    key: str
    title: str
    description: str
    category: str
    collection: str
    instruction: str

    def session_config(self) -> SessionConfig:
        return SessionConfig(collection=self.collection, instruction_text=self.instruction)


class ComposerSummary(BaseModel):
    key: str
    title: str
    description: str


class ComposerCategory(BaseModel):
    name: str
    composers: list[ComposerSummary]


COMPOSERS: dict[str, Composer] = {
    c.key: c
    for c in [
        Composer(
            key="teams",
            title="Teams Composer",
            description="Draft clear, professional messages for Microsoft Teams.",
            category="Communication",
            collection="chats",
            instruction=TEAMS_INSTRUCTION,
        ),
        Composer(
            key="email",
            title="Email Composer",
            description="Write effective, polished emails for any workplace scenario.",
            category="Communication",
            collection="email_chats",
            instruction=EMAIL_INSTRUCTION,
        ),
        Composer(
            key="grammar",
            title="Writing Editor",
            description="Fix grammar, spelling, and clarity in your writing instantly.",
            category="Productivity",
            collection="grammar_chats",
            instruction=GRAMMAR_INSTRUCTION,
        ),
        Composer(
            key="doc",
            title="Document Summariser",
            description="Summarise and extract key points from PDF and Word documents.",
            category="Productivity",
            collection="doc_chats",
            instruction=DOC_INSTRUCTION,
        ),
        Composer(
            key="career",
            title="Career Advisor",
            description="Get expert advice on job search, interviews, and professional growth.",
            category="Wellbeing",
            collection="career_chats",
            instruction=CAREER_INSTRUCTION,
        ),
        Composer(
            key="wellbeing",
            title="Wellbeing Assistant",
            description="Support your mental health and wellbeing at work.",
            category="Wellbeing",
            collection="wellbeing_chats",
            instruction=WELLBEING_INSTRUCTION,
        ),
    ]
}


def get_composer(key: str) -> Composer | None:
    return COMPOSERS.get(key)


def search_composers(query: str = "") -> list[ComposerCategory]:
    """Group composers by category, keeping those whose category, title or description match."""
    needle = query.strip().lower()
    categories: dict[str, list[ComposerSummary]] = {}
    for composer in COMPOSERS.values():
        haystacks = (composer.category, composer.title, composer.description)
        if needle and not any(needle in h.lower() for h in haystacks):
            continue
        categories.setdefault(composer.category, []).append(
            ComposerSummary(key=composer.key, title=composer.title, description=composer.description)
        )
    return [ComposerCategory(name=name, composers=items) for name, items in categories.items()]
