import logging
import math
from typing import Final, List, Optional, Sequence, Tuple

import discord

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

ITEMS_PER_PAGE: Final[int] = 10
LIST_TIMEOUT_SECONDS: Final[float] = 60.0
EMBED_COLOR: Final[int] = 0x0099FF

Fact = Tuple[int, str]


def page_count(total: int, per_page: int = ITEMS_PER_PAGE) -> int:
    return max(1, math.ceil(total / per_page))


def page_slice(items: Sequence[Fact], page: int, per_page: int = ITEMS_PER_PAGE) -> Sequence[Fact]:
    start = page * per_page
    return items[start:start + per_page]


def build_fact_embed(items: Sequence[Fact], page: int, per_page: int = ITEMS_PER_PAGE) -> discord.Embed:
    description = "\n".join(f"{key}: {value}" for key, value in page_slice(items, page, per_page))
    embed = discord.Embed(
        title="List of Items",
        color=EMBED_COLOR,
        description=description or "Nothing remembered yet.",
    )
    embed.set_footer(text=f"Page {page + 1} of {page_count(len(items), per_page)}")
    return embed


class FactListView(discord.ui.View):
    """
    Previous/Next pagination over a guild's remembered facts.

    Only the user who ran !list can turn pages. After the timeout the
    buttons are removed from the message.
    """

    def __init__(
        self,
        items: List[Fact],
        author_id: int,
        per_page: int = ITEMS_PER_PAGE,
        timeout: float = LIST_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout=timeout)
        self.items_list = items
        self.author_id = author_id
        self.per_page = per_page
        self.page = 0
        self.message: Optional[discord.Message] = None
        self._sync_buttons()

    @property
    def pages(self) -> int:
        return page_count(len(self.items_list), self.per_page)

    def _sync_buttons(self) -> None:
        self.previous_button.disabled = self.page == 0
        self.next_button.disabled = self.page >= self.pages - 1

    def current_embed(self) -> discord.Embed:
        return build_fact_embed(self.items_list, self.page, self.per_page)

    def go_to(self, page: int) -> None:
        self.page = min(max(page, 0), self.pages - 1)
        self._sync_buttons()

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        return interaction.user.id == self.author_id

    async def on_timeout(self) -> None:
        if self.message is None:
            return
        try:
            await self.message.edit(view=None)
        except discord.HTTPException as exc:
            LOGGER.warning("Could not remove list controls: %s", exc)

    @discord.ui.button(label="Previous", style=discord.ButtonStyle.secondary)
    async def previous_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.go_to(self.page - 1)
        await interaction.response.edit_message(embed=self.current_embed(), view=self)

    @discord.ui.button(label="Next", style=discord.ButtonStyle.secondary)
    async def next_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.go_to(self.page + 1)
        await interaction.response.edit_message(embed=self.current_embed(), view=self)
