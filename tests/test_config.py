"""Tests for configuration loading."""

import pytest

from config import DEFAULT_OLLAMA_API_URL, load_bot_config, load_discord_config, load_ollama_config


def test_ollama_defaults():
    config = load_ollama_config({})
    assert config.base_url == DEFAULT_OLLAMA_API_URL
    assert (config.chat_model, config.vision_model, config.image_gen_model) == ("phi", "llava", "flux")
    assert config.gpu_enabled is True
    assert config.gpu_layers == -1
    assert config.num_threads == 0
    assert config.num_gpu == 1


def test_ollama_from_env():
    env = {
        "OLLAMA_API_URL": "http://gpu-box:11434/api/",
        "OLLAMA_CHAT_MODEL": "llama3",
        "OLLAMA_GPU_ENABLED": "false",
        "OLLAMA_GPU_LAYERS": "24",
        "OLLAMA_NUM_THREADS": "not-a-number",
    }
    config = load_ollama_config(env, chat_model="override")
    assert config.base_url == "http://gpu-box:11434/api"
    assert config.chat_model == "override"
    assert config.gpu_enabled is False
    assert config.gpu_layers == 24
    assert config.num_threads == 0


def test_discord_token_required():
    with pytest.raises(ValueError):
        load_discord_config({})
    assert load_discord_config({"DISCORD_TOKEN": "t"}).command_prefix == "!"


def test_bot_config():
    config = load_bot_config(
        {"PROMPT_TRIGGER": " Jas ", "HOME_CHANNEL_ID": "123", "HOME_GUILD_ID": "oops"},
        data_dir="/tmp/memory",
        no_img=True,
    )
    assert config.prompt_trigger == "jas"
    assert config.home_channel_id == 123
    assert config.home_guild_id is None
    assert config.data_dir == "/tmp/memory"
    assert config.image_generation_enabled is False
