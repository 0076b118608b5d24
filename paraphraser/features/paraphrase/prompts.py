"""Prompt templates for the paraphrase endpoint.

TONE_PROMPTS is the closed set of supported tones; anything else is rejected
before the model is called.
"""

TONE_PROMPTS = {
    "humanize": (
        "Humanize the following text in its entirety. Cover the COMPLETE text from start to "
        "finish, not just the beginning, and keep every paragraph."
    ),
    "formal": (
        "Rewrite the following text in a formal, professional tone. Use proper grammar, avoid "
        "contractions, and maintain a polished style suitable for business or academic contexts."
    ),
    "informal": (
        "Rewrite the following text in a casual, conversational tone. Use contractions, simple "
        "words, and make it feel like you're talking to a friend."
    ),
    "concise": (
        "Rewrite the following text to be as concise as possible. Remove unnecessary words and "
        "filler while preserving the core meaning."
    ),
    "creative": (
        "Rewrite the following text in a more creative and engaging way. Use vivid language, "
        "metaphors, or interesting phrasing while keeping the original meaning."
    ),
    "academic": (
        "Rewrite the following text in an academic tone. Use scholarly language, precise "
        "terminology, and a structured approach suitable for research or essays."
    ),
}

SUPPORTED_TONES = frozenset(TONE_PROMPTS)

HUMANIZE_OPTION_COUNT = 5

_HUMANIZE_RULES = """You are a humanizer. You are given a text and you make it read as if a person wrote it.
Do not change the meaning of the text.
Do not add new information and do not remove any information.
Keep the structure, formatting and paragraph breaks of the text.
Change words and phrases only where that makes the text more natural.
FOLLOW THIS WRITING STYLE:
- Use clear, simple language.
- Be spartan and informative.
- Use short, direct sentences.
- Use active voice; avoid passive voice.
- Address the reader as "you" where the original does.
- Never use em dashes. Use commas or periods instead.
- Avoid constructions like "not just this, but also that".
- Avoid metaphors, cliches and generalizations.
- Avoid setup phrases such as "in conclusion" or "in closing".
- Avoid warnings, notes, markdown, asterisks, hashtags and semicolons.
- Avoid unnecessary adjectives and adverbs.
- Avoid these words: can, may, just, that, very, really, literally, actually, certainly,
  probably, basically, could, maybe, delve, embark, enlightening, esteemed, shed light, craft,
  crafting, imagine, realm, game-changer, unlock, discover, skyrocket, abyss, not alone,
  in a world where, revolutionize, disruptive, utilize, utilizing, dive deep, tapestry,
  illuminate, unveil, pivotal, intricate, elucidate, hence, furthermore, however, harness,
  exciting, groundbreaking, cutting-edge, remarkable, remains to be seen, glimpse into,
  navigating, landscape, stark, testament, in summary, moreover, boost, skyrocketing,
  opened up, powerful, inquiries, ever-evolving."""

HUMANIZE_REWRITE_SYSTEM_PROMPT = (
    _HUMANIZE_RULES
    + """
OUTPUT RULES:
- Return exactly one rewritten version of the whole text and nothing else.
- Keep the same number of paragraphs as the original.
- Keep the word count within {tolerance} words of the original word count. Never summarize or shorten.
Review your response and make sure it contains no em dashes."""
)

HUMANIZE_OPTIONS_SYSTEM_PROMPT = (
    _HUMANIZE_RULES
    + """
OUTPUT RULES:
- Return EXACTLY {count} distinct options as a flat JSON array of strings (no objects, no numbering, no explanations).
- Each option is a distinct variation of the original text.
- Each option stays within {tolerance} words of the original word count.
Review your response and make sure it contains no em dashes."""
)

LENGTH_INSTRUCTION = (
    "The original has {words} words in {paragraphs} paragraph(s). "
    "Your rewrite must also have about {words} words in {paragraphs} paragraph(s)."
)

HUMANIZE_WORD_TARGET = "IMPORTANT: the result must be {words} words long, give or take {tolerance} words."

USER_TEMPLATE = "{instruction}\n\n{length}\n\nText to rewrite:\n\n{text}"
