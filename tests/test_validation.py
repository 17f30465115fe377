import pytest

from stream_giveaway.errors import ValidationError
from stream_giveaway.models import DonationConfig, DonationWindow
from stream_giveaway.roles import DonationUnit, Platform, Role
from stream_giveaway.validation import (
    normalize_keyword,
    parse_donation_configs,
    parse_platforms,
    parse_roles,
    validate_hash_algo,
    validate_tickets_per_unit,
    validate_unit_size,
)


def test_keyword_is_trimmed_and_lowercased():
    assert normalize_keyword("  !GiveAway  ") == "!giveaway"


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_empty_keyword_rejected(raw):
    with pytest.raises(ValidationError):
        normalize_keyword(raw)


def test_platforms_are_deduplicated_and_required():
    assert parse_platforms(["twitch", "TWITCH", Platform.KICK]) == [
        Platform.TWITCH,
        Platform.KICK,
    ]
    with pytest.raises(ValidationError):
        parse_platforms([])
    with pytest.raises(ValidationError):
        parse_platforms(["myspace"])


def test_roles_must_match_enabled_platforms():
    assert parse_roles(["kick_sub", "NON_SUB"], [Platform.KICK]) == [
        Role.KICK_SUB,
        Role.NON_SUB,
    ]
    with pytest.raises(ValidationError):
        parse_roles(["TWITCH_TIER_1"], [Platform.KICK])


def test_donation_configs_validate_platform_and_unit():
    configs = parse_donation_configs(
        [{"platform": "twitch", "unit": "bits", "window": "weekly"}],
        [Platform.TWITCH],
    )
    assert configs == [
        DonationConfig(Platform.TWITCH, DonationUnit.BITS, DonationWindow.WEEKLY)
    ]

    with pytest.raises(ValidationError, match="not available"):
        parse_donation_configs(
            [{"platform": "KICK", "unit": "BITS", "window": "DAILY"}], [Platform.KICK]
        )
    with pytest.raises(ValidationError, match="not enabled"):
        parse_donation_configs(
            [{"platform": "YOUTUBE", "unit": "SUPERCHAT", "window": "DAILY"}],
            [Platform.TWITCH],
        )
    with pytest.raises(ValidationError, match="window"):
        parse_donation_configs(
            [{"platform": "TWITCH", "unit": "BITS"}], [Platform.TWITCH]
        )


def test_duplicate_donation_configs_rejected():
    config = {"platform": "KICK", "unit": "GIFT_SUB", "window": "MONTHLY"}
    with pytest.raises(ValidationError, match="Duplicate"):
        parse_donation_configs([config, dict(config)], [Platform.KICK])


def test_numeric_rule_validation():
    assert validate_tickets_per_unit(0) == 0
    assert validate_unit_size(100) == 100
    with pytest.raises(ValidationError):
        validate_tickets_per_unit(-1)
    with pytest.raises(ValidationError):
        validate_unit_size(0)
    with pytest.raises(ValidationError):
        validate_tickets_per_unit(True)


def test_hash_algorithms():
    assert validate_hash_algo("sha-256") == "SHA256"
    assert validate_hash_algo("md5") == "MD5"
    with pytest.raises(ValidationError):
        validate_hash_algo("sha1")
