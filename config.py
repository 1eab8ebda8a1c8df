"""
Configuration for the bot, read from the environment (and `.env`).

Everything is collected into frozen dataclasses at startup so that the rest
of the code never touches `os.environ` directly.
"""

import logging
import os
from dataclasses import dataclass
from typing import Final, Mapping, Optional

from dotenv import load_dotenv

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

DEFAULT_OLLAMA_API_URL: Final[str] = "http://localhost:11434/api"
DEFAULT_PERSONALITY: Final[str] = "cheerful, witty and helpful"


@dataclass(frozen=True)
class DiscordConfig:
    """
    Holds all Discord-related configuration, including Bot Token.
    """
    bot_token: str
    command_prefix: str
    enable_message_content_intent: bool


@dataclass(frozen=True)
class OllamaConfig:
    """
    Ollama endpoint, model names and the resource options sent with every
    generation request.
    """
    base_url: str
    chat_model: str
    vision_model: str
    image_gen_model: str
    gpu_enabled: bool = True
    gpu_layers: int = -1
    num_threads: int = 0
    num_gpu: int = 1
    timeout: int = 300


@dataclass(frozen=True)
class BotConfig:
    """
    Behaviour of the bot itself: its name, triggers, memory location and
    where to say hello on startup.
    """
    bot_name: str
    prompt_trigger: str
    default_personality: str
    data_dir: str
    queue_size: int = 100
    home_guild_id: Optional[int] = None
    home_channel_id: Optional[int] = None
    image_generation_enabled: bool = True


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("%s invalid: %r, using %d", name, raw, default)
        return default


def _env_optional_id(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        LOGGER.warning("%s invalid: %r", name, raw)
        return None
    return int(raw)


def load_env_file(path: str = ".env") -> None:
    # Load only the main .env file, not .env.example
    load_dotenv(dotenv_path=path, override=True)


def load_discord_config(env: Optional[Mapping[str, str]] = None) -> DiscordConfig:
    """
    Build the Discord configuration.

    Raises:
        ValueError: If DISCORD_TOKEN is missing.
    """
    env = os.environ if env is None else env
    token = env.get("DISCORD_TOKEN")
    if not token:
        raise ValueError("DISCORD_TOKEN environment variable is required")
    return DiscordConfig(
        bot_token=token,
        command_prefix=env.get("PREFIX", "!"),
        enable_message_content_intent=True,
    )


def load_ollama_config(
    env: Optional[Mapping[str, str]] = None,
    chat_model: Optional[str] = None,
) -> OllamaConfig:
    """
    Build the Ollama configuration.

    Args:
        env: Mapping to read from, defaults to the process environment.
        chat_model: Overrides OLLAMA_CHAT_MODEL when given (the --model flag).
    """
    env = os.environ if env is None else env
    return OllamaConfig(
        base_url=env.get("OLLAMA_API_URL", DEFAULT_OLLAMA_API_URL).rstrip("/"),
        chat_model=chat_model or env.get("OLLAMA_CHAT_MODEL", "phi"),
        vision_model=env.get("OLLAMA_IMAGE_MODEL", "llava"),
        image_gen_model=env.get("OLLAMA_IMAGE_GEN_MODEL", "flux"),
        gpu_enabled=env.get("OLLAMA_GPU_ENABLED", "true").strip().lower() != "false",
        gpu_layers=_env_int(env, "OLLAMA_GPU_LAYERS", -1),
        num_threads=_env_int(env, "OLLAMA_NUM_THREADS", 0),
        num_gpu=_env_int(env, "OLLAMA_NUM_GPU", 1),
    )


def load_bot_config(
    env: Optional[Mapping[str, str]] = None,
    data_dir: Optional[str] = None,
    no_img: bool = False,
) -> BotConfig:
    env = os.environ if env is None else env
    return BotConfig(
        bot_name=env.get("BOT_NAME", "Jasmine 🌼"),
        prompt_trigger=env.get("PROMPT_TRIGGER", "map").strip().lower(),
        default_personality=env.get("BOT_PERSONALITY", DEFAULT_PERSONALITY),
        data_dir=data_dir or env.get("FACT_DATA_DIR", "."),
        queue_size=max(1, _env_int(env, "DISPATCH_QUEUE_SIZE", 100)),
        home_guild_id=_env_optional_id(env, "HOME_GUILD_ID"),
        home_channel_id=_env_optional_id(env, "HOME_CHANNEL_ID"),
        image_generation_enabled=not no_img,
    )
