"""
Decide what an inbound message is asking for.

Only the free-form commands live here (owner commands, the describe-image
phrase, the chat trigger). Prefixed commands such as `!remember` are
regular `discord.ext.commands` commands registered on the bot.
"""

import enum
from dataclasses import dataclass
from typing import Final

# Owner identity is fixed; it is not read from the environment.
OWNER_ID: Final[int] = 548050617889980426


class Route(enum.Enum):
    SHUTDOWN = "shutdown"
    MOOD = "mood"
    DESCRIBE_IMAGE = "describe_image"
    CHAT = "chat"
    COMMAND = "command"
    IGNORE = "ignore"


@dataclass(frozen=True)
class Classified:
    route: Route
    text: str = ""


def is_owner(user_id) -> bool:
    return int(user_id) == OWNER_ID


def strip_trigger(content: str, trigger: str) -> str:
    """Remove a leading trigger word (any case) and the whitespace after it."""
    if content[:len(trigger)].lower() == trigger.lower():
        return content[len(trigger):].lstrip()
    return content


def starts_with_trigger(content: str, trigger: str) -> bool:
    return bool(trigger) and content.lower().startswith(trigger.lower())


def wants_image_description(content: str) -> bool:
    lowered = content.lower()
    return "describe" in lowered and "image" in lowered


def classify(
    content: str,
    author_id,
    trigger: str,
    command_prefix: str,
    is_reply: bool = False,
) -> Classified:
    """
    Classify a message. Checks run in priority order: owner commands, the
    describe-image phrase, prefixed commands, then the chat trigger and
    replies.

    Replies are routed to CHAT; whether a reply without the trigger is
    answered depends on who it replies to, which the bot checks once it
    has fetched the referenced message.
    """
    normalized = content.strip().lower()

    if is_owner(author_id):
        if normalized == "shut down":
            return Classified(Route.SHUTDOWN)
        if normalized.startswith("mood"):
            return Classified(Route.MOOD, content.strip()[4:].strip())

    if wants_image_description(content):
        return Classified(Route.DESCRIBE_IMAGE)

    if command_prefix and content.startswith(command_prefix):
        return Classified(Route.COMMAND, content)

    if is_reply or starts_with_trigger(content.strip(), trigger):
        return Classified(Route.CHAT, strip_trigger(content.strip(), trigger))

    return Classified(Route.IGNORE)


def forget_id_rejected(argument: str) -> bool:
    """True for numeric ids that can never be forgotten (0, 1 and negatives)."""
    try:
        return int(argument.strip()) <= 1
    except ValueError:
        return False
