import os
import platform
import time
from dataclasses import dataclass
from typing import Dict, Final, List

import discord
import psutil

START_TIME: Final[float] = time.time()
EMBED_FIELD_LIMIT: Final[int] = 1024


@dataclass(frozen=True)
class HostSnapshot:
    hostname: str
    system: str
    python_version: str
    cpu_count: int
    cpu_percent: float
    memory_percent: float
    memory_used_mb: float
    memory_total_mb: float
    process_rss_mb: float
    uptime_seconds: float


def take_snapshot() -> HostSnapshot:
    """
    Current host and process resource usage.

    `cpu_percent` blocks for a short sampling interval, so call this from a thread.
    """
    memory = psutil.virtual_memory()
    process = psutil.Process(os.getpid())
    return HostSnapshot(
        hostname=platform.node(),
        system=f"{platform.system()} {platform.release()}",
        python_version=platform.python_version(),
        cpu_count=psutil.cpu_count() or 0,
        cpu_percent=psutil.cpu_percent(interval=0.5),
        memory_percent=memory.percent,
        memory_used_mb=memory.used / (1024 * 1024),
        memory_total_mb=memory.total / (1024 * 1024),
        process_rss_mb=process.memory_info().rss / (1024 * 1024),
        uptime_seconds=time.time() - START_TIME,
    )


def format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def build_info_embed(
    snapshot: HostSnapshot,
    bot_name: str,
    models: Dict[str, str],
    resource_options: Dict[str, int],
    queue_depths: Dict[str, int],
    available_models: List[str],
    latency_ms: float,
) -> discord.Embed:
    embed = discord.Embed(title=f"{bot_name} diagnostics", color=0x0099FF)
    embed.add_field(name="Host", value=f"{snapshot.hostname}\n{snapshot.system}", inline=True)
    embed.add_field(name="Python", value=snapshot.python_version, inline=True)
    embed.add_field(name="Uptime", value=format_uptime(snapshot.uptime_seconds), inline=True)
    embed.add_field(
        name="CPU",
        value=f"{snapshot.cpu_percent:.0f}% of {snapshot.cpu_count} cores",
        inline=True,
    )
    embed.add_field(
        name="Memory",
        value=(
            f"{snapshot.memory_used_mb:.0f} / {snapshot.memory_total_mb:.0f} MB "
            f"({snapshot.memory_percent:.0f}%)\nBot: {snapshot.process_rss_mb:.0f} MB"
        ),
        inline=True,
    )
    embed.add_field(name="Gateway latency", value=f"{latency_ms:.0f} ms", inline=True)
    embed.add_field(
        name="Models",
        value="\n".join(f"{role}: {name}" for role, name in models.items()),
        inline=False,
    )
    embed.add_field(
        name="Resources",
        value=", ".join(f"{k}={v}" for k, v in resource_options.items()) or "defaults",
        inline=True,
    )
    embed.add_field(
        name="Queues",
        value=", ".join(f"{k}: {v}" for k, v in queue_depths.items()),
        inline=True,
    )
    embed.add_field(
        name="Ollama",
        value=(", ".join(available_models) if available_models else "unreachable")[:EMBED_FIELD_LIMIT],
        inline=False,
    )
    return embed
