"""
Serialized reply delivery.

Each `DispatchQueue` owns a bounded `asyncio.Queue` and a single worker
task. The worker takes one task at a time, runs the handler, waits the
cool-down and moves on, so a queue never has two tasks in flight and
always processes them in the order they were enqueued.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Final, Generic, List, Optional, TypeVar

import discord

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

GENERAL_COOLDOWN_SECONDS: Final[float] = 3.0
IMAGE_COOLDOWN_SECONDS: Final[float] = 1.0
MAX_MESSAGE_LENGTH: Final[int] = 1900
REQUEST_FAILED: Final[str] = "Failed to process request. Please try again."
EMPTY_RESPONSE: Final[str] = "There was an error generating a response. Please try again."

T = TypeVar("T")


@dataclass
class ChatTask:
    """A chat or search request waiting on the general queue."""
    message: Any
    query: str
    search: bool = False


@dataclass
class ImageTask:
    """One message's image attachments waiting to be described."""
    message: Any
    image_urls: List[str] = field(default_factory=list)


class DispatchQueue(Generic[T]):
    """
    A FIFO queue with exactly one consumer.

    Attributes:
        name (str): Used in log lines.
        handler: Coroutine function run once per task.
        cooldown (float): Seconds to wait after each task.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[T], Awaitable[None]],
        cooldown: float,
        maxsize: int = 100,
    ) -> None:
        self.name: Final[str] = name
        self.handler = handler
        self.cooldown = cooldown
        self._queue: "asyncio.Queue[T]" = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional["asyncio.Task[None]"] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, task: T) -> bool:
        """
        Append a task and make sure the worker is running.

        Returns:
            bool: False if the queue is full and the task was dropped.
        """
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull:
            LOGGER.warning("[%s] queue full (%d), dropping task", self.name, self._queue.maxsize)
            return False
        if not self.running:
            self._worker = asyncio.create_task(self._drain(), name=f"dispatch-{self.name}")
        return True

    async def _drain(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self.handler(task)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("[%s] task failed", self.name)
            finally:
                self._queue.task_done()
            if self.cooldown > 0:
                await asyncio.sleep(self.cooldown)

    async def join(self) -> None:
        """Wait until every enqueued task has been handled."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker. Tasks still queued are dropped."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None


def split_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split text into chunks that fit in one Discord message, breaking on spaces.

    A single word longer than `max_length` is hard-split.
    """
    chunks: List[str] = []
    current = ""
    for word in message.split(" "):
        while len(word) > max_length:
            if current:
                chunks.append(current.strip())
                current = ""
            chunks.append(word[:max_length])
            word = word[max_length:]
        if len(current) + len(word) + 1 > max_length:
            chunks.append(current.strip())
            current = word
        else:
            current += (" " if current else "") + word
    if current.strip():
        chunks.append(current.strip())
    return [c for c in chunks if c]


async def deliver_reply(message: Any, text: str) -> None:
    """
    Reply to `message` with `text`, chunked. If a chunk can't be sent as a
    reply, the error text is posted to the channel instead.
    """
    for chunk in split_message(text or EMPTY_RESPONSE):
        try:
            await message.reply(chunk)
        except discord.HTTPException as exc:
            LOGGER.error("Reply failed, posting error to channel: %s", exc)
            await message.channel.send(str(exc))
