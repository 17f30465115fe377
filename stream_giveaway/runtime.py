"""Engine wiring and the Discord operator runtime."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import boto3
import discord
from discord import app_commands

from .accounts import ConnectedAccountStore
from .accumulator import EntryAccumulator
from .config import EngineConfig
from .dedup import DedupLedger
from .draw import DrawEngine
from .errors import GiveawayError, NotFoundError
from .keyword_index import KeywordIndex
from .lifecycle import GiveawayLifecycle
from .models import DrawResult
from .notifier import (
    DiscordParticipantNotifier,
    LoggingNotifier,
    ParticipantNotifier,
)
from .platforms import DonationEventLedger, PlatformRouter, TwitchHelixClient
from .randomness import RandomnessProvider, RandomOrgProvider
from .storage import GiveawayStorage
from .tickets import TicketRuleResolver

log = logging.getLogger("giveaway-runtime")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(slots=True)
class GiveawayEngine:
    config: EngineConfig
    storage: GiveawayStorage
    dedup: DedupLedger
    index: KeywordIndex
    accounts: ConnectedAccountStore
    resolver: TicketRuleResolver
    donations: DonationEventLedger
    platforms: PlatformRouter
    lifecycle: GiveawayLifecycle
    accumulator: EntryAccumulator
    draws: DrawEngine


def build_engine(
    config: EngineConfig,
    table=None,
    *,
    randomness: RandomnessProvider | None = None,
    notifier: ParticipantNotifier | None = None,
) -> GiveawayEngine:
    """Assemble every engine component over one DynamoDB table."""
    if table is None:
        config.require("table_name")
        dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
        table = dynamodb.Table(config.table_name)

    storage = GiveawayStorage(table)
    dedup = DedupLedger(table, ttl_days=config.dedup_ttl_days)
    index = KeywordIndex(table, dedup)
    accounts = ConnectedAccountStore(table)
    resolver = TicketRuleResolver(storage)
    donations = DonationEventLedger(table, timezone=config.donation_timezone)
    twitch = None
    if config.twitch_client_id:
        twitch = TwitchHelixClient(
            config.twitch_client_id,
            accounts,
            timeout=config.http_timeout_seconds,
            timezone=config.donation_timezone,
        )
    platforms = PlatformRouter(donations, twitch)
    lifecycle = GiveawayLifecycle(storage, index, accounts)
    accumulator = EntryAccumulator(
        storage,
        index,
        dedup,
        resolver,
        platforms,
        notifier=notifier or LoggingNotifier(),
        donation_ledger=donations,
    )
    draws = DrawEngine(
        storage,
        randomness
        or RandomOrgProvider(
            config.random_org_api_key, timeout=config.http_timeout_seconds
        ),
        lifecycle,
        hash_algo=config.list_hash_algo,
        lock_seconds=config.draw_lock_seconds,
    )
    return GiveawayEngine(
        config=config,
        storage=storage,
        dedup=dedup,
        index=index,
        accounts=accounts,
        resolver=resolver,
        donations=donations,
        platforms=platforms,
        lifecycle=lifecycle,
        accumulator=accumulator,
        draws=draws,
    )


def draw_embed(result: DrawResult, giveaway_name: str) -> discord.Embed:
    title = "🔁 Winner repicked" if result.repick else "🏆 Winner drawn"
    embed = discord.Embed(
        title=f"{title}: {giveaway_name}",
        colour=discord.Color.gold() if result.verified else discord.Color.orange(),
    )
    embed.add_field(name="Winner", value=result.winner.display, inline=False)
    embed.add_field(
        name="Ticket",
        value=f"{result.drawn_number} of {result.total_tickets}",
        inline=True,
    )
    embed.add_field(
        name="Signature", value="✅ verified" if result.verified else "⚠️ not verified", inline=True
    )
    embed.add_field(
        name=f"List hash ({result.list_hash_algo})",
        value=f"`{result.list_hash}`",
        inline=False,
    )
    embed.add_field(name="Verify", value=result.verification_url[:1000], inline=False)
    embed.set_footer(text=f"Draw #{result.sequence} via {result.source}")
    return embed


class OperatorRuntime:
    def __init__(self, config: EngineConfig, engine: GiveawayEngine | None = None) -> None:
        intents = discord.Intents.default()
        intents.guilds = True

        self.config = config
        self.bot = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        self.notifier = DiscordParticipantNotifier(
            self.bot,
            config.participant_feed_channel_id,
            enabled=config.participant_feed_enabled,
        )
        self.engine = engine or build_engine(config, notifier=self.notifier)
        self.guild = (
            discord.Object(id=config.operator_guild_id)
            if config.operator_guild_id
            else None
        )
        self._register_commands()
        self.bot.event(self.on_ready)

    def _register_commands(self) -> None:
        @app_commands.describe(giveaway_id="Giveaway identifier")
        @app_commands.default_permissions(manage_guild=True)
        async def giveaway_draw(interaction: discord.Interaction, giveaway_id: str) -> None:
            await self.handle_draw(interaction, giveaway_id)

        @app_commands.describe(giveaway_id="Giveaway identifier")
        @app_commands.default_permissions(manage_guild=True)
        async def giveaway_status(
            interaction: discord.Interaction, giveaway_id: str
        ) -> None:
            await self.handle_status(interaction, giveaway_id)

        self.tree.command(
            name="giveaway-draw",
            description="Draw (or repick) the winner of a giveaway",
            guild=self.guild,
        )(giveaway_draw)
        self.tree.command(
            name="giveaway-status",
            description="Show entries, metrics and draws for a giveaway",
            guild=self.guild,
        )(giveaway_status)

    async def on_ready(self) -> None:
        if self.guild is not None:
            await self.tree.sync(guild=self.guild)
            log.info("Commands synced to guild %s", self.config.operator_guild_id)
        else:
            await self.tree.sync()
            log.info("Commands synced globally")
        log.info("Giveaway operator ready as %s", self.bot.user)

    async def handle_draw(self, interaction: discord.Interaction, giveaway_id: str) -> None:
        await interaction.response.defer(thinking=True)
        giveaway_id = giveaway_id.strip()
        try:
            result = await self.engine.draws.draw(giveaway_id)
        except GiveawayError as exc:
            log.warning("Draw for %s rejected: %s", giveaway_id, exc)
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return

        giveaway = self.engine.storage.get_giveaway(giveaway_id)
        name = giveaway.name if giveaway else giveaway_id
        await interaction.followup.send(embed=draw_embed(result, name))

    async def handle_status(
        self, interaction: discord.Interaction, giveaway_id: str
    ) -> None:
        giveaway_id = giveaway_id.strip()
        try:
            giveaway = self.engine.storage.get_giveaway(giveaway_id)
            if giveaway is None:
                raise NotFoundError(f"Giveaway {giveaway_id} not found")
            entries = self.engine.storage.list_entries(giveaway_id)
            metrics = self.engine.index.get_metrics(giveaway_id)
            records = self.engine.storage.list_draw_records(giveaway_id)
        except GiveawayError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"Giveaway: {giveaway.name}",
            description=f"Keyword `{giveaway.keyword}`",
            colour=discord.Color.blurple(),
        )
        embed.add_field(name="Status", value=giveaway.status.value, inline=True)
        embed.add_field(
            name="Platforms",
            value=", ".join(p.value for p in giveaway.platforms) or "-",
            inline=True,
        )
        embed.add_field(name="Entries", value=str(len(entries)), inline=True)
        embed.add_field(
            name="Tickets", value=str(sum(e.tickets for e in entries)), inline=True
        )
        embed.add_field(
            name="Messages processed",
            value=str(metrics["total_messages_processed"]),
            inline=True,
        )
        if records:
            lines = [
                f"#{r.sequence} {r.status.value}: {r.winner_range.display}"
                for r in records
            ]
            embed.add_field(name="Draws", value="\n".join(lines)[:1000], inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def run(self) -> None:
        async with self.bot:
            await self.bot.start(self.config.discord_token)  # type: ignore[arg-type]


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    config = EngineConfig.load()
    config.require("discord_token", "table_name")
    runtime = OperatorRuntime(config)
    await runtime.run()


def run_cli() -> None:
    asyncio.run(main())


__all__ = [
    "GiveawayEngine",
    "OperatorRuntime",
    "build_engine",
    "draw_embed",
    "main",
    "run_cli",
]
