"""Environment-driven configuration for the giveaway engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ConfigurationError, ValidationError
from .validation import validate_hash_algo

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_str(name: str, *, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class EngineConfig:
    table_name: str | None
    aws_region: str
    random_org_api_key: str | None
    list_hash_algo: str
    dedup_ttl_days: int
    draw_lock_seconds: int
    http_timeout_seconds: int
    donation_timezone: str
    twitch_client_id: str | None
    discord_token: str | None
    participant_feed_enabled: bool
    participant_feed_channel_id: int | None
    operator_guild_id: int | None

    @classmethod
    def load(cls) -> EngineConfig:
        try:
            list_hash_algo = validate_hash_algo(
                env_str("LIST_HASH_ALGO", default="SHA256") or "SHA256"
            )
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

        return cls(
            table_name=env_str("GIVEAWAY_TABLE_NAME"),
            aws_region=env_str("AWS_REGION", default="us-east-1") or "us-east-1",
            random_org_api_key=env_str("RANDOM_ORG_API_KEY"),
            list_hash_algo=list_hash_algo,
            dedup_ttl_days=max(env_int("DEDUP_TTL_DAYS", default=30) or 30, 1),
            draw_lock_seconds=max(env_int("DRAW_LOCK_SECONDS", default=120) or 120, 1),
            http_timeout_seconds=max(
                env_int("HTTP_TIMEOUT_SECONDS", default=10) or 10, 1
            ),
            donation_timezone=env_str("DONATION_TIMEZONE", default="America/Sao_Paulo")
            or "America/Sao_Paulo",
            twitch_client_id=env_str("TWITCH_CLIENT_ID"),
            discord_token=env_str("DISCORD_TOKEN"),
            participant_feed_enabled=env_bool("PARTICIPANT_FEED", default=True),
            participant_feed_channel_id=env_int("PARTICIPANT_FEED_CHANNEL_ID"),
            operator_guild_id=env_int("OPERATOR_GUILD_ID"),
        )

    def require(self, *names: str) -> None:
        """Raise when any of the named settings is empty."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                "Missing configuration: " + ", ".join(sorted(missing))
            )


__all__ = ["EngineConfig", "env_bool", "env_int", "env_str"]
