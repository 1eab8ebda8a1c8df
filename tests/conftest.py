"""Shared fixtures and fakes."""

from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

import pytest

from config import OllamaConfig
from fact_store import FactStore


class FakeTyping:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeChannel:
    def __init__(self) -> None:
        self.sent: List[str] = []

    def typing(self) -> FakeTyping:
        return FakeTyping()

    async def send(self, content=None, **kwargs):
        self.sent.append(content)


class FakeMessage:
    """Just enough of discord.Message for the bot's handlers."""

    def __init__(
        self,
        content: str = "",
        author_id: int = 42,
        author_name: str = "alice",
        guild_id: int = 1000,
        guild_name: str = "Test Server",
        attachments: Optional[list] = None,
        reference=None,
    ) -> None:
        self.content = content
        self.author = SimpleNamespace(id=author_id, name=author_name, bot=False)
        self.guild = SimpleNamespace(id=guild_id, name=guild_name)
        self.channel = FakeChannel()
        self.attachments = attachments or []
        self.reference = reference
        self.replies: List[str] = []

    async def reply(self, content=None, **kwargs):
        self.replies.append(content)


@pytest.fixture
def store(tmp_path: Path) -> FactStore:
    return FactStore(str(tmp_path))


@pytest.fixture
def ollama_config() -> OllamaConfig:
    return OllamaConfig(
        base_url="http://ollama.test/api",
        chat_model="chat-model",
        vision_model="vision-model",
        image_gen_model="image-model",
    )
