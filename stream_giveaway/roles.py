"""Platform, role and entry-method vocabulary.

Roles are a closed set per platform. Global ticket rules collapse every
platform-specific non-subscriber role onto ``Role.NON_SUB``; giveaway overrides
keep the platform-qualified role they were stored with.
"""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    TWITCH = "TWITCH"
    KICK = "KICK"
    YOUTUBE = "YOUTUBE"


class Role(StrEnum):
    NON_SUB = "NON_SUB"
    TWITCH_NON_SUB = "TWITCH_NON_SUB"
    TWITCH_TIER_1 = "TWITCH_TIER_1"
    TWITCH_TIER_2 = "TWITCH_TIER_2"
    TWITCH_TIER_3 = "TWITCH_TIER_3"
    KICK_NON_SUB = "KICK_NON_SUB"
    KICK_SUB = "KICK_SUB"
    YOUTUBE_NON_SUB = "YOUTUBE_NON_SUB"
    YOUTUBE_SUB = "YOUTUBE_SUB"

    @property
    def platform(self) -> Platform | None:
        """Platform the role belongs to; ``None`` for the canonical NON_SUB."""
        return _ROLE_PLATFORMS.get(self)

    @property
    def is_non_sub(self) -> bool:
        return self in _NON_SUB_ROLES


class DonationUnit(StrEnum):
    BITS = "BITS"
    GIFT_SUB = "GIFT_SUB"
    KICK_COINS = "KICK_COINS"
    SUPERCHAT = "SUPERCHAT"

    @property
    def platforms(self) -> frozenset[Platform]:
        return _UNIT_PLATFORMS[self]


class EntryMethod(StrEnum):
    TWITCH_NON_SUB = "TWITCH_NON_SUB"
    TWITCH_TIER_1 = "TWITCH_TIER_1"
    TWITCH_TIER_2 = "TWITCH_TIER_2"
    TWITCH_TIER_3 = "TWITCH_TIER_3"
    KICK_NON_SUB = "KICK_NON_SUB"
    KICK_SUB = "KICK_SUB"
    YOUTUBE_NON_SUB = "YOUTUBE_NON_SUB"
    YOUTUBE_SUB = "YOUTUBE_SUB"
    BITS = "BITS"
    GIFT_SUB = "GIFT_SUB"
    KICK_COINS = "KICK_COINS"
    SUPERCHAT = "SUPERCHAT"


_ROLE_PLATFORMS: dict[Role, Platform] = {
    Role.TWITCH_NON_SUB: Platform.TWITCH,
    Role.TWITCH_TIER_1: Platform.TWITCH,
    Role.TWITCH_TIER_2: Platform.TWITCH,
    Role.TWITCH_TIER_3: Platform.TWITCH,
    Role.KICK_NON_SUB: Platform.KICK,
    Role.KICK_SUB: Platform.KICK,
    Role.YOUTUBE_NON_SUB: Platform.YOUTUBE,
    Role.YOUTUBE_SUB: Platform.YOUTUBE,
}

_NON_SUB_ROLES = frozenset(
    {Role.NON_SUB, Role.TWITCH_NON_SUB, Role.KICK_NON_SUB, Role.YOUTUBE_NON_SUB}
)

_UNIT_PLATFORMS: dict[DonationUnit, frozenset[Platform]] = {
    DonationUnit.BITS: frozenset({Platform.TWITCH}),
    DonationUnit.GIFT_SUB: frozenset({Platform.TWITCH, Platform.KICK}),
    DonationUnit.KICK_COINS: frozenset({Platform.KICK}),
    DonationUnit.SUPERCHAT: frozenset({Platform.YOUTUBE}),
}

_TWITCH_TIERS: dict[str, Role] = {
    "1000": Role.TWITCH_TIER_1,
    "2000": Role.TWITCH_TIER_2,
    "3000": Role.TWITCH_TIER_3,
}

_KICK_SUB_BADGES = frozenset({"subscriber", "og", "founder"})


def normalize_role(role: Role) -> Role:
    """Return the key used for global role rules."""
    if role.is_non_sub:
        return Role.NON_SUB
    return role


def role_entry_method(role: Role) -> EntryMethod:
    if role is Role.NON_SUB:
        raise ValueError("Canonical NON_SUB has no entry method; use a platform role")
    return EntryMethod(role.value)


def donation_entry_method(unit: DonationUnit) -> EntryMethod:
    return EntryMethod(unit.value)


def twitch_role_for_tier(tier: str | None) -> Role:
    """Map a Twitch subscription tier to a role.

    Unknown non-empty tiers fall back to tier 1.
    """
    if not tier:
        return Role.TWITCH_NON_SUB
    return _TWITCH_TIERS.get(str(tier).strip(), Role.TWITCH_TIER_1)


def kick_role_for_badges(badges: frozenset[str] | set[str] | tuple[str, ...]) -> Role:
    lowered = {str(badge).strip().lower() for badge in badges}
    if lowered & _KICK_SUB_BADGES:
        return Role.KICK_SUB
    return Role.KICK_NON_SUB


def youtube_role(*, is_channel_owner: bool, is_subscriber: bool) -> Role:
    # Owners count as subscribed to their own channel.
    if is_channel_owner or is_subscriber:
        return Role.YOUTUBE_SUB
    return Role.YOUTUBE_NON_SUB


__all__ = [
    "Platform",
    "Role",
    "DonationUnit",
    "EntryMethod",
    "normalize_role",
    "role_entry_method",
    "donation_entry_method",
    "twitch_role_for_tier",
    "kick_role_for_badges",
    "youtube_role",
]
