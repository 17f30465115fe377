from __future__ import annotations

from collections.abc import Iterable

from .errors import ValidationError
from .models import DonationConfig, DonationWindow
from .roles import DonationUnit, Platform, Role

SUPPORTED_HASH_ALGOS = ("SHA256", "MD5")

_MAX_KEYWORD_LENGTH = 100
_MAX_NAME_LENGTH = 120


def normalize_keyword(raw: str | None) -> str:
    keyword = (raw or "").strip().lower()
    if not keyword:
        raise ValidationError("Keyword cannot be empty")
    if len(keyword) > _MAX_KEYWORD_LENGTH:
        raise ValidationError(
            f"Keyword must be {_MAX_KEYWORD_LENGTH} characters or fewer"
        )
    return keyword


def normalize_message(raw: str | None) -> str:
    return (raw or "").strip().lower()


def validate_giveaway_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError("Giveaway name cannot be empty")
    if len(name) > _MAX_NAME_LENGTH:
        raise ValidationError(
            f"Giveaway name must be {_MAX_NAME_LENGTH} characters or fewer"
        )
    return name


def parse_platform(raw: str | Platform) -> Platform:
    try:
        return Platform(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid platform: {raw}") from exc


def parse_platforms(raw: Iterable[str | Platform]) -> list[Platform]:
    platforms: list[Platform] = []
    for value in raw:
        platform = parse_platform(value)
        if platform not in platforms:
            platforms.append(platform)
    if not platforms:
        raise ValidationError("At least one platform is required")
    return platforms


def parse_role(raw: str | Role) -> Role:
    try:
        return Role(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid role: {raw}") from exc


def parse_roles(
    raw: Iterable[str | Role], platforms: Iterable[Platform]
) -> list[Role]:
    allowed_platforms = set(platforms)
    roles: list[Role] = []
    for value in raw:
        role = parse_role(value)
        if role.platform is not None and role.platform not in allowed_platforms:
            raise ValidationError(
                f"Role {role.value} does not belong to the giveaway platforms"
            )
        if role not in roles:
            roles.append(role)
    return roles


def parse_donation_unit(raw: str | DonationUnit) -> DonationUnit:
    try:
        return DonationUnit(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid donation unit: {raw}") from exc


def parse_donation_window(raw: str | DonationWindow) -> DonationWindow:
    try:
        return DonationWindow(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(
            f"Invalid donation window: {raw} (use DAILY, WEEKLY or MONTHLY)"
        ) from exc


def validate_donation_pair(platform: Platform, unit: DonationUnit) -> None:
    if platform not in unit.platforms:
        raise ValidationError(
            f"Donation unit {unit.value} is not available on {platform.value}"
        )


def parse_donation_configs(
    raw: Iterable[DonationConfig | dict[str, object]],
    platforms: Iterable[Platform],
) -> list[DonationConfig]:
    allowed_platforms = set(platforms)
    configs: list[DonationConfig] = []
    seen: set[tuple[Platform, DonationUnit]] = set()
    for value in raw:
        if isinstance(value, DonationConfig):
            config = value
        else:
            if "window" not in value:
                raise ValidationError("Donation configs require a donation window")
            config = DonationConfig(
                platform=parse_platform(str(value.get("platform", ""))),
                unit=parse_donation_unit(str(value.get("unit", ""))),
                window=parse_donation_window(str(value["window"])),
            )
        if config.platform not in allowed_platforms:
            raise ValidationError(
                f"Donation config platform {config.platform.value} is not enabled"
            )
        validate_donation_pair(config.platform, config.unit)
        pair = (config.platform, config.unit)
        if pair in seen:
            raise ValidationError(
                f"Duplicate donation config for {config.platform.value}/{config.unit.value}"
            )
        seen.add(pair)
        configs.append(config)
    return configs


def validate_tickets_per_unit(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Tickets per unit must be a whole number")
    if value < 0:
        raise ValidationError("Tickets per unit cannot be negative")
    return value


def validate_unit_size(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Unit size must be a whole number")
    if value < 1:
        raise ValidationError("Unit size must be at least 1")
    return value


def validate_hash_algo(raw: str) -> str:
    algo = raw.strip().upper().replace("-", "")
    if algo not in SUPPORTED_HASH_ALGOS:
        raise ValidationError(
            f"Unsupported list hash algorithm {raw}; use SHA256 or MD5"
        )
    return algo


__all__ = [
    "SUPPORTED_HASH_ALGOS",
    "normalize_keyword",
    "normalize_message",
    "validate_giveaway_name",
    "parse_platform",
    "parse_platforms",
    "parse_role",
    "parse_roles",
    "parse_donation_unit",
    "parse_donation_window",
    "validate_donation_pair",
    "parse_donation_configs",
    "validate_tickets_per_unit",
    "validate_unit_size",
    "validate_hash_algo",
]
