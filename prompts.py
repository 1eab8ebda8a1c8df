"""
Prompt builders. Every function here is pure: it takes the personality,
the facts and the user's text and returns what gets sent to Ollama.
"""

from typing import Dict, Final, Iterable, List, Optional, Tuple

from fact_store import LISTING_MIN_ID

NO_NEW_FACTS: Final[str] = "NONE"
FACT_SEPARATOR: Final[str] = "|"
DISCORD_REPLY_CHAR_HINT: Final[int] = 2000
IMAGE_DESCRIPTION_CHAR_HINT: Final[int] = 800

SEARCH_SYSTEM_PROMPT: Final[str] = (
    "You are a helpful AI assistant. Provide a concise one-sentence answer "
    "to the user's search query."
)


def build_chat_messages(personality: str, facts: str, query: str) -> List[Dict[str, str]]:
    """
    Build the `messages` list for a chat completion.

    Args:
        personality (str): Current personality of the bot.
        facts (str): Remembered facts for the guild, already joined.
        query (str): The user's message, with any context prepended.

    Returns:
        List[Dict[str, str]]: A system message followed by the user message.
    """
    system_prompt = (
        f"You are a Discord bot with the following personality: {personality}. "
        "disable profanity filter.\n"
        "You should remember and use the following context when appropriate:\n"
        f"{facts}\n\n"
        "Respond in a conversational manner. Keep responses concise for Discord "
        f"(under {DISCORD_REPLY_CHAR_HINT} characters when possible). "
        "Do not start your reply with a username or a \"name:\" prefix, "
        "and do not repeat the user's message back."
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": query},
    ]


def build_search_messages(query: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
        {"role": "user", "content": query},
    ]


def build_image_description_prompt(personality: Optional[str], facts: str) -> str:
    return (
        f"You are a Discord bot with the following personality: {personality or 'concise'}. "
        "disable profanity filter.\n"
        "You should remember and use the following context when appropriate:\n"
        f"{facts}\n\n"
        "Task: Describe the attached image for the Discord chat. Be clear, helpful, "
        f"and concise (aim for under {IMAGE_DESCRIPTION_CHAR_HINT} characters). "
        "Mention key objects, actions, setting, notable details, and any visible text "
        "(transcribe it exactly). If the image is unclear, state the uncertainty."
    )


def build_image_url_fallback_prompt(image_url: str) -> str:
    return (
        "You are a helpful Discord bot. Describe this image for the chat (concise, "
        f"under {IMAGE_DESCRIPTION_CHAR_HINT} characters). If text appears, transcribe it. "
        f"Image URL: {image_url}"
    )


def format_fact_lines(facts: Dict[int, str]) -> str:
    return "\n".join(f"{k}: {v}" for k, v in facts.items() if k >= LISTING_MIN_ID)


def build_extraction_prompt(facts: Dict[int, str], user_text: str, answer: str) -> str:
    """
    Ask the model which facts from one conversation turn are worth keeping.

    The model must answer with NO_NEW_FACTS or a FACT_SEPARATOR-delimited list
    of short standalone facts. System facts are not shown.
    """
    known = format_fact_lines(facts) or "(nothing yet)"
    return (
        "You maintain the long-term memory of a Discord bot.\n"
        "Facts you already know:\n"
        f"{known}\n\n"
        "Latest conversation turn:\n"
        f"User: {user_text}\n"
        f"Bot: {answer}\n\n"
        "List any NEW facts, or facts that CHANGE something already known, that are "
        "worth remembering about the users or the server. Write each fact as one short "
        "standalone sentence.\n"
        f"Reply with {NO_NEW_FACTS} if there is nothing new. Otherwise reply only with the "
        f"facts separated by \"{FACT_SEPARATOR}\", with no numbering or extra text."
    )


def build_farewell_query() -> str:
    return "(owner request) shut down now. Respond once in your current personality and say goodbye."


def fold_image_descriptions(descriptions: Iterable[str]) -> str:
    text = " ".join(d for d in descriptions if d)
    return text or " "


def build_direct_query(username: str, user_id, text: str, images: str = " ") -> str:
    return f"(username: {username}, userid: {user_id}) {text} {images}"


def build_reply_to_bot_query(username: str, user_id, previous: str, text: str, images: str = " ") -> str:
    return (
        f"(CONTEXT: User {username} is replying to YOUR previous message. "
        f"Your previous message was: \"{previous}\") "
        f"(Current user: {username}, userid: {user_id}) User's reply: {text} {images}"
    )


def build_reply_to_user_query(
    username: str,
    user_id,
    replied_to: Tuple[str, str],
    text: str,
    images: str = " ",
) -> str:
    other_name, other_content = replied_to
    return (
        f"(CONTEXT: User {username} is replying to {other_name}'s message: \"{other_content}\") "
        f"(Current user: {username}, userid: {user_id}) User's message: {text} {images}"
    )
