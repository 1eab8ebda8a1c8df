"""Tests for dispatch queues and reply delivery."""

import asyncio
from unittest import mock

import discord
import pytest

from dispatch import EMPTY_RESPONSE, DispatchQueue, deliver_reply, split_message

from conftest import FakeMessage


class TestDispatchQueue:
    @pytest.mark.asyncio
    async def test_tasks_run_one_at_a_time_in_order(self):
        in_flight = 0
        max_in_flight = 0
        done = []

        async def handler(task):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            done.append(task)
            in_flight -= 1

        queue = DispatchQueue("test", handler, cooldown=0)
        for n in range(3):
            assert queue.enqueue(n)
        await queue.join()

        assert done == [0, 1, 2]
        assert max_in_flight == 1
        await queue.close()

    @pytest.mark.asyncio
    async def test_enqueue_while_draining_does_not_start_second_worker(self):
        release = asyncio.Event()
        seen = []

        async def handler(task):
            seen.append(task)
            await release.wait()

        queue = DispatchQueue("test", handler, cooldown=0)
        queue.enqueue("first")
        await asyncio.sleep(0)
        worker = queue._worker
        queue.enqueue("second")

        assert queue._worker is worker
        assert queue.pending == 1
        release.set()
        await queue.join()
        assert seen == ["first", "second"]
        await queue.close()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_loop(self):
        done = []

        async def handler(task):
            if task == "bad":
                raise RuntimeError("boom")
            done.append(task)

        queue = DispatchQueue("test", handler, cooldown=0)
        for task in ("a", "bad", "b"):
            queue.enqueue(task)
        await queue.join()

        assert done == ["a", "b"]
        await queue.close()

    @pytest.mark.asyncio
    async def test_cooldown_between_tasks(self):
        async def handler(task):
            return None

        queue = DispatchQueue("test", handler, cooldown=3.0)
        with mock.patch("dispatch.asyncio.sleep", new=mock.AsyncMock()) as sleep:
            queue.enqueue("a")
            queue.enqueue("b")
            await queue.join()
        assert mock.call(3.0) in sleep.await_args_list
        await queue.close()

    @pytest.mark.asyncio
    async def test_full_queue_rejects(self):
        release = asyncio.Event()

        async def handler(task):
            await release.wait()

        queue = DispatchQueue("test", handler, cooldown=0, maxsize=1)
        assert queue.enqueue("a")
        await asyncio.sleep(0)
        assert queue.enqueue("b")
        assert not queue.enqueue("c")
        release.set()
        await queue.join()
        await queue.close()


class TestSplitMessage:
    def test_short_message_is_one_chunk(self):
        assert split_message("hello world") == ["hello world"]

    def test_breaks_on_spaces_under_limit(self):
        text = " ".join(["word"] * 1000)
        chunks = split_message(text)
        assert len(chunks) > 1
        assert all(len(c) <= 1900 for c in chunks)
        assert " ".join(chunks) == text

    def test_hard_splits_giant_words(self):
        chunks = split_message("x" * 4000)
        assert [len(c) for c in chunks] == [1900, 1900, 200]


class TestDeliverReply:
    @pytest.mark.asyncio
    async def test_replies_in_chunks(self):
        message = FakeMessage()
        await deliver_reply(message, " ".join(["word"] * 1000))
        assert len(message.replies) > 1

    @pytest.mark.asyncio
    async def test_empty_result_gets_error_text(self):
        message = FakeMessage()
        await deliver_reply(message, "")
        assert message.replies == [EMPTY_RESPONSE]

    @pytest.mark.asyncio
    async def test_failed_reply_falls_back_to_channel(self):
        message = FakeMessage()
        error = discord.HTTPException(mock.Mock(status=400, reason="Bad Request"), "Unknown Message")
        message.reply = mock.AsyncMock(side_effect=error)

        await deliver_reply(message, "hello")

        assert message.channel.sent == [str(error)]
