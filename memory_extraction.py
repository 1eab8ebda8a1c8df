import asyncio
import logging
from typing import Final, List, Set

from fact_store import FactStore
from ollama_client import OllamaClient
from prompts import FACT_SEPARATOR, NO_NEW_FACTS, build_extraction_prompt

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)


def parse_extraction(text: str) -> List[str]:
    """
    Split the model's extraction answer into facts.

    "NONE" (in any case, with or without trailing punctuation) and blank
    answers mean nothing to remember.
    """
    cleaned = text.strip()
    if not cleaned or cleaned.rstrip(".!").upper() == NO_NEW_FACTS:
        return []
    facts = []
    for item in cleaned.split(FACT_SEPARATOR):
        item = item.strip().strip('"').strip()
        if not item or item.rstrip(".!").upper() == NO_NEW_FACTS:
            continue
        facts.append(item)
    return facts


class MemoryExtractor:
    """
    Mines each finished chat turn for facts worth keeping.

    Runs after the reply has already been sent; nothing here may affect
    the chat answer, so `run` swallows and logs its own failures.
    """

    def __init__(self, client: OllamaClient, fact_store: FactStore) -> None:
        self.client: Final[OllamaClient] = client
        self.fact_store: Final[FactStore] = fact_store
        self._tasks: Set["asyncio.Task[None]"] = set()

    def extract(self, guild_id, user_text: str, answer: str) -> List[int]:
        """
        Ask the model for new or changed facts and store them.

        Each returned fact evicts the first existing fact it conflicts with,
        then is added as a new fact.

        Returns:
            List[int]: Ids of the facts added, in order.

        Raises:
            OllamaError: If the extraction call fails.
        """
        facts = self.fact_store.read(guild_id)
        prompt = build_extraction_prompt(facts, user_text, answer)
        items = parse_extraction(self.client.generate(prompt))
        if not items:
            LOGGER.debug("No new facts for guild %s", guild_id)
            return []

        added = []
        for item in items:
            evicted, new_id = self.fact_store.replace_conflicting(guild_id, item)
            if evicted is not None:
                LOGGER.info("Fact #%d superseded by #%d in guild %s", evicted, new_id, guild_id)
            added.append(new_id)
        LOGGER.info("Extracted %d fact(s) for guild %s: %s", len(added), guild_id, items)
        return added

    async def run(self, guild_id, user_text: str, answer: str) -> None:
        try:
            await asyncio.to_thread(self.extract, guild_id, user_text, answer)
        except Exception:
            LOGGER.exception("Memory extraction failed for guild %s", guild_id)

    def schedule(self, guild_id, user_text: str, answer: str) -> "asyncio.Task[None]":
        """Start `run` in the background and keep a reference until it finishes."""
        task = asyncio.create_task(self.run(guild_id, user_text, answer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def close(self) -> None:
        """Wait for extractions still in flight."""
        if self._tasks:
            LOGGER.info("Waiting for %d memory extraction(s)", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
