"""Participant-added notifications."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import discord

from .models import Entry

log = logging.getLogger("giveaway-notifier")


@dataclass(slots=True, frozen=True)
class ParticipantAdded:
    giveaway_id: str
    entry_id: str
    platform: str
    username: str
    method: str
    tickets: int
    avatar_url: str | None = None

    @classmethod
    def from_entry(cls, entry: Entry) -> ParticipantAdded:
        return cls(
            giveaway_id=entry.giveaway_id,
            entry_id=entry.entry_id,
            platform=entry.platform.value,
            username=entry.username,
            method=entry.method.value,
            tickets=entry.tickets,
            avatar_url=entry.avatar_url,
        )

    def describe(self) -> str:
        return (
            f"🎟️ **{self.username}** joined giveaway `{self.giveaway_id}` "
            f"via {self.platform} {self.method} with {self.tickets} ticket(s)"
        )


class ParticipantNotifier(Protocol):
    def participant_added(self, event: ParticipantAdded) -> None: ...


class LoggingNotifier:
    def participant_added(self, event: ParticipantAdded) -> None:
        log.info(
            "Participant added to %s: %s (%s/%s) tickets=%s",
            event.giveaway_id,
            event.username,
            event.platform,
            event.method,
            event.tickets,
        )


class DiscordParticipantNotifier:
    """Post participant events to a feed channel without blocking the caller.

    Sends are scheduled on the client's event loop; Discord failures are logged
    and never reach the accumulator.
    """

    def __init__(
        self,
        bot: discord.Client,
        channel_id: int | None,
        *,
        enabled: bool = True,
    ) -> None:
        self._bot = bot
        self._channel_id = channel_id
        self._enabled = enabled
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def channel_id(self) -> int | None:
        return self._channel_id

    def participant_added(self, event: ParticipantAdded) -> None:
        if not self.enabled:
            return
        # Before login discord.py exposes a sentinel instead of a loop.
        loop = getattr(self._bot, "loop", None)
        if not isinstance(loop, asyncio.AbstractEventLoop) or loop.is_closed():
            log.info("[FEED] %s", event.describe())
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(self.report(event))
            self._pending.add(task)
            task.add_done_callback(self._report_done)
        else:
            asyncio.run_coroutine_threadsafe(self.report(event), loop)

    def _report_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Participant report failed", exc_info=exc)

    async def report(self, event: ParticipantAdded) -> None:
        if self.channel_id is None:
            log.info("[FEED] %s", event.describe())
            return

        channel = self._bot.get_channel(self.channel_id)
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(self.channel_id)
            except discord.DiscordException as exc:  # pragma: no cover - network failure
                log.warning("Unable to fetch feed channel %s: %s", self.channel_id, exc)
                channel = None

        if not isinstance(channel, discord.abc.Messageable):
            log.info("[FEED] %s", event.describe())
            return

        embed = discord.Embed(
            title="New participant",
            description=event.describe(),
            color=discord.Color.green(),
        )
        if event.avatar_url:
            embed.set_thumbnail(url=event.avatar_url)
        try:
            await channel.send(embed=embed)
        except discord.DiscordException as exc:
            log.warning(
                "Failed to post participant to channel %s: %s", self.channel_id, exc
            )


__all__ = [
    "ParticipantAdded",
    "ParticipantNotifier",
    "LoggingNotifier",
    "DiscordParticipantNotifier",
]
