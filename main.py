# pyre-strict

"""
A Discord bot backed by a local Ollama instance that can:
  1) Chat when a message starts with the trigger word (default `map`), or
     when someone replies to it, folding in descriptions of attached images
  2) Answer search-style questions in one sentence via `!search`
  3) Generate images via `!img`
  4) Describe attached images when asked to "describe the image"
  5) Remember facts per server via `!remember`, `!forget` and `!list`,
     and learn new facts from conversations on its own
  6) Report host diagnostics via `!info`

Replies go through two dispatch queues (chat/search and image description)
so that only one response per queue is being produced at a time.

Usage:
    1. Install:
       pip install -e .

    2. Environment Setup:
       - Create a .env file with at least:
         DISCORD_TOKEN=your_token
         OLLAMA_API_URL=http://localhost:11434/api

    3. Service Requirements:
       - Ollama running locally with the chat, vision and image models pulled

    4. Run:
       python main.py --model="your-ollama-chat-model"
       Optional: Use --no-img to disable image generation

Owner-only messages (no prefix):
    mood <text>   - Change the bot's personality
    shut down     - Say goodbye and stop the bot
"""

import argparse
import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Final, List, Optional

import discord
from discord.ext import commands

from config import (
    BotConfig,
    DiscordConfig,
    load_bot_config,
    load_discord_config,
    load_env_file,
    load_ollama_config,
)
from diagnostics import build_info_embed, take_snapshot
from dispatch import (
    GENERAL_COOLDOWN_SECONDS,
    IMAGE_COOLDOWN_SECONDS,
    REQUEST_FAILED,
    ChatTask,
    DispatchQueue,
    ImageTask,
    deliver_reply,
)
from fact_list_view import FactListView
from fact_store import FactStore
from memory_extraction import MemoryExtractor
from ollama_client import DESCRIPTION_FAILED, OllamaClient, OllamaError
from prompts import (
    build_direct_query,
    build_farewell_query,
    build_reply_to_bot_query,
    build_reply_to_user_query,
    fold_image_descriptions,
)
from routing import Route, classify, forget_id_rejected, starts_with_trigger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

SHUTDOWN_DELAY_SECONDS: Final[float] = 2.0
QUEUE_BUSY: Final[str] = "I'm a bit overwhelmed right now, please try again in a moment."

# ---------------------------------------------------------------------------
# Argument Parsing
# ---------------------------------------------------------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description=(
            "Discord bot for chat, image description and image generation "
            "through a local Ollama instance, with per-server memory."
        )
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Which Ollama model to chat with (overrides OLLAMA_CHAT_MODEL)."
    )
    parser.add_argument("--no-img", action="store_true", help="Disable image generation.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the per-server memory files (overrides FACT_DATA_DIR)."
    )
    return parser.parse_args(argv)

# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------
@dataclass
class BotSession:
    """
    State that lives as long as the running bot and is passed into every
    prompt. Only the owner can change it; nothing here is persisted.
    """
    personality: str


def image_attachment_urls(message: discord.Message) -> List[str]:
    return [
        attachment.url
        for attachment in message.attachments
        if attachment.content_type and attachment.content_type.startswith("image/")
    ]

# ---------------------------------------------------------------------------
# Discord Bot
# ---------------------------------------------------------------------------
class DiscordLLMBot(commands.Bot):
    """
    A Discord Bot that chats through Ollama and remembers facts per server.

    Attributes:
        discord_config (DiscordConfig): Configuration for Discord connection and behavior.
        bot_config (BotConfig): Name, trigger word, memory location and greeting target.
        llm_client (OllamaClient): Client for interacting with Ollama.
        fact_store (FactStore): Per-server remembered facts.
        session (BotSession): Current personality.
        chat_queue (DispatchQueue): Serializes chat and search replies.
        image_queue (DispatchQueue): Serializes image descriptions.
    """

    def __init__(
        self,
        discord_config: DiscordConfig,
        bot_config: BotConfig,
        llm_client: OllamaClient,
        fact_store: FactStore,
    ) -> None:
        """
        Initialize the Discord bot with the given configuration.

        Args:
            discord_config (DiscordConfig): Configuration for Discord connection and behavior.
            bot_config (BotConfig): Bot behaviour settings.
            llm_client (OllamaClient): Client for interacting with Ollama.
            fact_store (FactStore): Where remembered facts are kept.
        """
        intents = discord.Intents.default()
        if discord_config.enable_message_content_intent:
            intents.message_content = True
        intents.guilds = True
        intents.messages = True

        super().__init__(
            command_prefix=discord_config.command_prefix,
            intents=intents,
            case_insensitive=True,
        )
        self.discord_config: Final[DiscordConfig] = discord_config
        self.bot_config: Final[BotConfig] = bot_config
        self.llm_client: Final[OllamaClient] = llm_client
        self.fact_store: Final[FactStore] = fact_store
        self.session: Final[BotSession] = BotSession(bot_config.default_personality)
        self.extractor: Final[MemoryExtractor] = MemoryExtractor(llm_client, fact_store)
        self.chat_queue: Final[DispatchQueue[ChatTask]] = DispatchQueue(
            "general", self.process_chat_task, GENERAL_COOLDOWN_SECONDS, bot_config.queue_size
        )
        self.image_queue: Final[DispatchQueue[ImageTask]] = DispatchQueue(
            "image", self.process_image_task, IMAGE_COOLDOWN_SECONDS, bot_config.queue_size
        )
        self.image_cooldown: float = IMAGE_COOLDOWN_SECONDS
        self._greeted = False

    async def on_ready(self) -> None:
        """
        Event handler called when the bot has successfully connected to Discord.
        Checks Ollama and greets the home channel once.
        """
        LOGGER.info("[Bot] Logged in as: %s", self.user)
        await asyncio.to_thread(self.llm_client.check_connection)
        if not self._greeted:
            self._greeted = True
            await self.greet_home_channel()

    async def greet_home_channel(self) -> None:
        channel_id = self.bot_config.home_channel_id
        if channel_id is None:
            return
        channel = self.get_channel(channel_id)
        if channel is None:
            LOGGER.warning("Home channel %s not found. Check HOME_CHANNEL_ID.", channel_id)
            return
        home_guild = self.bot_config.home_guild_id
        if home_guild is not None and getattr(channel, "guild", None) and channel.guild.id != home_guild:
            LOGGER.warning("Home channel %s is not in home guild %s", channel_id, home_guild)
            return
        try:
            await channel.send(f"{self.bot_config.bot_name} is online!")
        except discord.HTTPException as exc:
            LOGGER.warning("Could not greet home channel: %s", exc)

    async def setup_hook(self) -> None:
        """
        Set up all prefixed bot commands.
        This is called automatically by discord.py during bot initialization.
        """
        @commands.command(
            name="search",
            brief="Get a one-sentence answer to a question.",
            help=(
                "Ask a quick question and get a concise one-sentence answer.\n\n"
                "Usage: !search <question>\n"
                "Example: !search why is the sky blue"
            ),
        )
        async def search_cmd(
            ctx: commands.Context,
            *,
            query: str = commands.parameter(default="", description="The question to answer"),
        ) -> None:
            if not query.strip():
                await ctx.reply("What should I search for?")
                return
            if not self.chat_queue.enqueue(ChatTask(ctx.message, query.strip(), search=True)):
                await ctx.reply(QUEUE_BUSY)

        self.add_command(search_cmd)

        @commands.command(
            name="img",
            brief="Generate an image from a text description.",
            help=(
                "Generate an image with the configured Ollama image model.\n\n"
                "Usage: !img <your image description>\n"
                "Example: !img a sunset over mountains"
            ),
        )
        async def img_cmd(
            ctx: commands.Context,
            *,
            prompt: str = commands.parameter(default="", description="What the image should show"),
        ) -> None:
            if not self.bot_config.image_generation_enabled:
                await ctx.reply("Image generation is disabled presently.")
                return
            if not prompt.strip():
                await ctx.reply("Provide a prompt, e.g., !img a sunset over mountains")
                return

            async with ctx.typing():
                result = await asyncio.to_thread(self.llm_client.generate_image, prompt.strip())
            if isinstance(result, str):
                await ctx.reply(result)
                return

            try:
                await ctx.send(file=discord.File(io.BytesIO(result.data), filename=result.filename))
            except discord.HTTPException as exc:
                LOGGER.error("Image send error: %s", exc)
                await ctx.reply("Failed to send generated image.")

        self.add_command(img_cmd)

        @commands.command(
            name="remember",
            brief="Remember something about this server.",
            help="Usage: !remember <fact>\nExample: !remember Bob's favorite color is blue",
        )
        async def remember_cmd(
            ctx: commands.Context,
            *,
            text: str = commands.parameter(default="", description="The fact to remember"),
        ) -> None:
            if not text.strip():
                await ctx.reply("What should I remember?")
                return
            new_id = self.fact_store.add(ctx.guild.id, text.strip())
            await ctx.send(f"Okay. Item ID is {new_id}. Please remember that!")

        self.add_command(remember_cmd)

        @commands.command(
            name="forget",
            brief="Forget a remembered fact by its ID.",
            help="Usage: !forget <id>\nUse !list to see the IDs.",
        )
        async def forget_cmd(
            ctx: commands.Context,
            *,
            fact_id: str = commands.parameter(default="", description="ID shown by !list"),
        ) -> None:
            if not fact_id.strip():
                await ctx.reply("What should I forget? You need to give the ID though!")
                return
            if forget_id_rejected(fact_id):
                await ctx.reply("Cannot determine ID.")
                return
            await ctx.send(self.fact_store.remove(ctx.guild.id, fact_id.strip()))

        self.add_command(forget_cmd)

        @commands.command(
            name="list",
            brief="List what the bot remembers about this server.",
            help="Shows remembered facts 10 at a time. Use the buttons to turn pages.",
        )
        async def list_cmd(ctx: commands.Context) -> None:
            items = self.fact_store.listable(ctx.guild.id)
            view = FactListView(items, ctx.author.id)
            view.message = await ctx.send(embed=view.current_embed(), view=view)

        self.add_command(list_cmd)

        @commands.command(
            name="info",
            brief="Show host diagnostics.",
            help="Shows CPU, memory, uptime, queue depth and model information.",
        )
        async def info_cmd(ctx: commands.Context) -> None:
            snapshot = await asyncio.to_thread(take_snapshot)
            available = await asyncio.to_thread(self.llm_client.check_connection)
            config = self.llm_client.config
            embed = build_info_embed(
                snapshot,
                bot_name=self.bot_config.bot_name,
                models={
                    "chat": config.chat_model,
                    "vision": config.vision_model,
                    "image": config.image_gen_model,
                },
                resource_options=self.llm_client.resource_options(),
                queue_depths={"chat": self.chat_queue.pending, "image": self.image_queue.pending},
                available_models=available,
                latency_ms=self.latency * 1000,
            )
            await ctx.send(embed=embed)

        self.add_command(info_cmd)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CommandNotFound):
            return
        LOGGER.error("Command %s failed: %s", ctx.command, error, exc_info=error)
        await ctx.reply(REQUEST_FAILED)

    async def on_message(self, message: discord.Message) -> None:
        """
        Route every guild message: owner commands, image descriptions,
        trigger chat and replies go through here; prefixed commands are
        handed to discord.py.
        """
        if message.author.bot or message.guild is None:
            return

        guild = message.guild
        self.fact_store.ensure_seeded(guild.id, guild.name)

        classified = classify(
            message.content,
            message.author.id,
            self.bot_config.prompt_trigger,
            self.discord_config.command_prefix,
            is_reply=message.reference is not None,
        )

        if classified.route is Route.SHUTDOWN:
            await self.shut_down(message)
        elif classified.route is Route.MOOD:
            self.session.personality = classified.text
            LOGGER.info("Personality changed to: %s", classified.text)
            await message.reply(f"change mood to {self.session.personality}")
        elif classified.route is Route.DESCRIBE_IMAGE:
            urls = image_attachment_urls(message)
            if not urls:
                await message.reply("Please attach an image to describe.")
            elif not self.image_queue.enqueue(ImageTask(message, urls)):
                await message.reply(QUEUE_BUSY)
        elif classified.route is Route.COMMAND:
            await self.process_commands(message)
        elif classified.route is Route.CHAT:
            query = await self.build_chat_query(message, classified.text)
            if query and not self.chat_queue.enqueue(ChatTask(message, query)):
                await message.reply(QUEUE_BUSY)

    async def build_chat_query(self, message: discord.Message, text: str) -> Optional[str]:
        """
        Turn a chat message into the query sent to the model, or None if the
        message shouldn't be answered (a reply to someone else without the
        trigger word).
        """
        author = message.author
        if message.reference is None:
            images = await self.describe_attachments(message)
            return build_direct_query(author.name, author.id, text, images)

        try:
            original = await self.fetch_referenced(message)
        except discord.HTTPException as exc:
            LOGGER.error("Fetch of replied-to message failed: %s", exc)
            return None

        if self.user is not None and original.author.id == self.user.id:
            images = await self.describe_attachments(message)
            return build_reply_to_bot_query(author.name, author.id, original.content, text, images)

        if starts_with_trigger(message.content.strip(), self.bot_config.prompt_trigger):
            images = await self.describe_attachments(message)
            return build_reply_to_user_query(
                author.name, author.id, (original.author.name, original.content), text, images
            )
        return None

    async def fetch_referenced(self, message: discord.Message) -> discord.Message:
        resolved = message.reference.resolved
        if isinstance(resolved, discord.Message):
            return resolved
        return await message.channel.fetch_message(message.reference.message_id)

    async def describe_attachments(self, message: discord.Message) -> str:
        """
        Describe each attached image, post each description, and return
        them joined for inclusion in the chat query.
        """
        descriptions = []
        for url in image_attachment_urls(message):
            description = await asyncio.to_thread(
                self.llm_client.describe_image, url, message.guild.id, self.session.personality
            )
            if not description:
                continue
            descriptions.append(description)
            try:
                await message.reply(description)
            except discord.HTTPException as exc:
                LOGGER.warning("Could not post image description: %s", exc)
        return fold_image_descriptions(descriptions)

    async def process_chat_task(self, task: ChatTask) -> None:
        """
        Handle one task from the general queue: ask the model, reply, and
        (for chat, not search) schedule memory extraction for the turn.
        """
        message = task.message
        try:
            async with message.channel.typing():
                if task.search:
                    result = await asyncio.to_thread(self.llm_client.search, task.query)
                else:
                    result = await asyncio.to_thread(
                        self.llm_client.chat, task.query, message.guild.id, self.session.personality
                    )
        except Exception:
            LOGGER.exception("Error processing queue")
            await message.reply(REQUEST_FAILED)
            return

        await deliver_reply(message, result)

        if not task.search and result:
            self.extractor.schedule(message.guild.id, task.query, result)

    async def process_image_task(self, task: ImageTask) -> None:
        """
        Describe each image of one message in order, pausing between them.
        A failure on one image doesn't stop the others.
        """
        message = task.message
        for url in task.image_urls:
            try:
                async with message.channel.typing():
                    description = await asyncio.to_thread(
                        self.llm_client.describe_image, url, message.guild.id, self.session.personality
                    )
            except Exception:
                LOGGER.exception("Image description failed for %s", url)
                description = DESCRIPTION_FAILED
            await deliver_reply(message, description or DESCRIPTION_FAILED)
            await asyncio.sleep(self.image_cooldown)

    async def shut_down(self, message: discord.Message) -> None:
        """Say goodbye in the current personality, then close the bot."""
        try:
            async with message.channel.typing():
                farewell = await asyncio.to_thread(
                    self.llm_client.chat, build_farewell_query(), message.guild.id, self.session.personality
                )
            if farewell:
                await deliver_reply(message, farewell)
        except (OllamaError, discord.HTTPException) as exc:
            LOGGER.error("Shutdown response error: %s", exc)
        finally:
            await asyncio.sleep(SHUTDOWN_DELAY_SECONDS)
            LOGGER.info("Owner-triggered shutdown.")
            await self.close()

    async def close(self) -> None:
        await self.chat_queue.close()
        await self.image_queue.close()
        await self.extractor.close()
        await super().close()

    def run_bot(self) -> None:
        super().run(self.discord_config.bot_token, reconnect=True)

# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main() -> None:
    load_env_file()
    args = parse_args()

    ollama_config = load_ollama_config(chat_model=args.model)
    bot_config = load_bot_config(data_dir=args.data_dir, no_img=args.no_img)
    discord_config = load_discord_config()

    LOGGER.info("Configuration:")
    LOGGER.info("  OLLAMA_API_URL: %s", ollama_config.base_url)
    LOGGER.info("  Chat model: %s", ollama_config.chat_model)
    LOGGER.info("  Vision model: %s", ollama_config.vision_model)
    LOGGER.info("  Image model: %s", ollama_config.image_gen_model)
    LOGGER.info(
        "  GPU enabled: %s (layers=%s, threads=%s, gpus=%s)",
        ollama_config.gpu_enabled,
        ollama_config.gpu_layers,
        ollama_config.num_threads,
        ollama_config.num_gpu,
    )
    LOGGER.info("  Memory directory: %s", bot_config.data_dir)

    fact_store = FactStore(bot_config.data_dir)
    llm_client = OllamaClient(ollama_config, fact_store)

    bot = DiscordLLMBot(discord_config, bot_config, llm_client, fact_store)
    bot.run_bot()

if __name__ == "__main__":
    main()
