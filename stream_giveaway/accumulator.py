"""Turn inbound chat and donation events into ticket entries."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Final

import requests

from .dedup import DedupLedger
from .errors import GiveawayNotOpenError, UpstreamDegradation
from .keyword_index import (
    METRIC_MESSAGES_PROCESSED,
    METRIC_PARTICIPANTS,
    IndexEntry,
    KeywordIndex,
)
from .models import DonationConfig, Entry, Giveaway, GiveawayStatus
from .notifier import LoggingNotifier, ParticipantAdded, ParticipantNotifier
from .platforms import DonationEventLedger, PlatformClient
from .roles import (
    DonationUnit,
    EntryMethod,
    Platform,
    Role,
    donation_entry_method,
    kick_role_for_badges,
    role_entry_method,
    twitch_role_for_tier,
    youtube_role,
)
from .storage import GiveawayStorage
from .tickets import TicketRuleResolver

log: Final = logging.getLogger("giveaway-accumulator")

_DEGRADED_ERRORS = (UpstreamDegradation, requests.RequestException)


@dataclass(slots=True, frozen=True)
class DonationSignal:
    unit: DonationUnit
    amount: int


@dataclass(slots=True, frozen=True)
class ChatEvent:
    platform: Platform
    channel_id: str
    text: str
    external_user_id: str
    username: str
    avatar_url: str | None = None
    badges: frozenset[str] = field(default_factory=frozenset)
    subscription_tier: str | None = None
    is_channel_owner: bool = False
    is_subscriber: bool = False
    donation: DonationSignal | None = None


def participant_role(event: ChatEvent) -> Role:
    """Derive the viewer's platform role from sender metadata."""
    if event.platform is Platform.TWITCH:
        return twitch_role_for_tier(event.subscription_tier)
    if event.platform is Platform.KICK:
        return kick_role_for_badges(event.badges)
    return youtube_role(
        is_channel_owner=event.is_channel_owner,
        is_subscriber=event.is_subscriber,
    )


def role_is_allowed(role: Role, allowed_roles: Iterable[Role]) -> bool:
    allowed = set(allowed_roles)
    if role in allowed:
        return True
    return role.is_non_sub and Role.NON_SUB in allowed


class EntryAccumulator:
    def __init__(
        self,
        storage: GiveawayStorage,
        index: KeywordIndex,
        dedup: DedupLedger,
        resolver: TicketRuleResolver,
        platforms: PlatformClient,
        *,
        notifier: ParticipantNotifier | None = None,
        donation_ledger: DonationEventLedger | None = None,
    ) -> None:
        self._storage = storage
        self._index = index
        self._dedup = dedup
        self._resolver = resolver
        self._platforms = platforms
        self._notifier = notifier or LoggingNotifier()
        self._donation_ledger = donation_ledger

    def accumulate_entry(self, event: ChatEvent) -> list[Entry]:
        """Process one chat event; returns the entries it created (possibly none)."""
        match = self._index.lookup(event.platform, event.channel_id, event.text)
        if match is None:
            return []
        self._index.increment_metric(match.giveaway_id, METRIC_MESSAGES_PROCESSED)

        giveaway = self._storage.get_giveaway(match.giveaway_id)
        if giveaway is None or giveaway.status is not GiveawayStatus.OPEN:
            raise GiveawayNotOpenError(
                f"Giveaway {match.giveaway_id} is not accepting entries"
            )

        role = participant_role(event)
        avatar_url = event.avatar_url or self._fetch_avatar(match.admin_id, event)
        created: list[Entry] = []

        if role_is_allowed(role, match.allowed_roles):
            entry = self._role_entry(giveaway, match, event, role, avatar_url)
            if entry is not None:
                created.append(entry)
        else:
            log.debug(
                "Role %s not allowed in giveaway %s; skipping role entry",
                role.value,
                giveaway.giveaway_id,
            )

        if event.donation is not None:
            self._record_donation(match, event)

        for config in match.donation_configs:
            if config.platform is not event.platform:
                continue
            entry = self._donation_entry(giveaway, match, event, config, avatar_url)
            if entry is not None:
                created.append(entry)

        return created

    def _role_entry(
        self,
        giveaway: Giveaway,
        match: IndexEntry,
        event: ChatEvent,
        role: Role,
        avatar_url: str | None,
    ) -> Entry | None:
        method = role_entry_method(role)
        if self._dedup.has_granted(
            giveaway.giveaway_id, event.platform, event.external_user_id, method
        ):
            return None
        tickets = self._resolver.resolve_role_tickets(
            giveaway.giveaway_id, match.admin_id, event.platform, role
        )
        if tickets <= 0:
            log.info(
                "No tickets for %s (%s) in giveaway %s",
                event.username,
                role.value,
                giveaway.giveaway_id,
            )
            return None
        return self._persist(
            giveaway,
            event,
            method,
            tickets,
            avatar_url,
            {"role": role.value, "baseTickets": tickets},
        )

    def _donation_entry(
        self,
        giveaway: Giveaway,
        match: IndexEntry,
        event: ChatEvent,
        config: DonationConfig,
        avatar_url: str | None,
    ) -> Entry | None:
        method = donation_entry_method(config.unit)
        if self._dedup.has_granted(
            giveaway.giveaway_id, event.platform, event.external_user_id, method
        ):
            return None
        try:
            total = self._platforms.donation_total(
                match.admin_id,
                event.platform,
                config.unit,
                event.external_user_id,
                config.window,
            )
        except _DEGRADED_ERRORS as exc:
            log.warning(
                "Donation lookup failed for %s (%s/%s); granting 0 tickets: %s",
                event.external_user_id,
                event.platform.value,
                config.unit.value,
                exc,
            )
            return None

        tickets = self._resolver.resolve_donation_tickets(
            giveaway.giveaway_id, match.admin_id, event.platform, config.unit, total
        )
        if tickets <= 0:
            return None
        return self._persist(
            giveaway,
            event,
            method,
            tickets,
            avatar_url,
            {
                "role": Role.NON_SUB.value,
                "unit": config.unit.value,
                "window": config.window.value,
                "donationTotal": int(total),
                "donationTickets": tickets,
            },
        )

    def _persist(
        self,
        giveaway: Giveaway,
        event: ChatEvent,
        method: EntryMethod,
        tickets: int,
        avatar_url: str | None,
        metadata: dict[str, object],
    ) -> Entry | None:
        entry = Entry(
            entry_id=uuid.uuid4().hex,
            giveaway_id=giveaway.giveaway_id,
            platform=event.platform,
            external_user_id=event.external_user_id,
            username=event.username,
            method=method,
            tickets=tickets,
            avatar_url=avatar_url,
            metadata=metadata,
        )
        if not self._storage.add_entry(entry):
            log.info(
                "Entry %s/%s for %s already exists; treating as duplicate",
                event.platform.value,
                method.value,
                event.external_user_id,
            )
            return None
        self._dedup.grant(
            giveaway.giveaway_id, event.platform, event.external_user_id, method
        )
        self._index.increment_metric(giveaway.giveaway_id, METRIC_PARTICIPANTS)
        log.info(
            "Added %s to giveaway %s via %s with %s ticket(s)",
            event.username,
            giveaway.giveaway_id,
            method.value,
            tickets,
        )
        self._notifier.participant_added(ParticipantAdded.from_entry(entry))
        return entry

    def _record_donation(self, match: IndexEntry, event: ChatEvent) -> None:
        signal = event.donation
        if signal is None or self._donation_ledger is None:
            return
        if event.platform not in signal.unit.platforms:
            log.warning(
                "Ignoring %s donation on %s", signal.unit.value, event.platform.value
            )
            return
        self._donation_ledger.record_donation(
            match.admin_id,
            event.platform,
            signal.unit,
            event.external_user_id,
            signal.amount,
        )

    def _fetch_avatar(self, admin_id: str, event: ChatEvent) -> str | None:
        try:
            return self._platforms.fetch_avatar(
                admin_id, event.platform, event.external_user_id
            )
        except _DEGRADED_ERRORS as exc:
            log.warning("Avatar lookup failed for %s: %s", event.external_user_id, exc)
            return None


__all__ = [
    "ChatEvent",
    "DonationSignal",
    "EntryAccumulator",
    "participant_role",
    "role_is_allowed",
]
