from decimal import Decimal

import pytest

from stream_giveaway.models import (
    DonationConfig,
    DonationTicketRule,
    DonationWindow,
    DrawRecord,
    DrawResult,
    Entry,
    Giveaway,
    GiveawayStatus,
    TicketRange,
    WinnerStatus,
)
from stream_giveaway.roles import (
    DonationUnit,
    EntryMethod,
    Platform,
    Role,
    donation_entry_method,
    kick_role_for_badges,
    normalize_role,
    role_entry_method,
    twitch_role_for_tier,
    youtube_role,
)


@pytest.mark.parametrize(
    ("tier", "expected"),
    [
        ("1000", Role.TWITCH_TIER_1),
        ("2000", Role.TWITCH_TIER_2),
        ("3000", Role.TWITCH_TIER_3),
        ("prime", Role.TWITCH_TIER_1),
        (None, Role.TWITCH_NON_SUB),
        ("", Role.TWITCH_NON_SUB),
    ],
)
def test_twitch_tier_mapping(tier, expected):
    assert twitch_role_for_tier(tier) is expected


def test_kick_badges_mark_subscribers():
    assert kick_role_for_badges({"Subscriber"}) is Role.KICK_SUB
    assert kick_role_for_badges(("og",)) is Role.KICK_SUB
    assert kick_role_for_badges(frozenset({"founder", "vip"})) is Role.KICK_SUB
    assert kick_role_for_badges({"moderator"}) is Role.KICK_NON_SUB
    assert kick_role_for_badges(set()) is Role.KICK_NON_SUB


def test_youtube_owner_counts_as_subscriber():
    assert youtube_role(is_channel_owner=True, is_subscriber=False) is Role.YOUTUBE_SUB
    assert youtube_role(is_channel_owner=False, is_subscriber=True) is Role.YOUTUBE_SUB
    assert (
        youtube_role(is_channel_owner=False, is_subscriber=False)
        is Role.YOUTUBE_NON_SUB
    )


def test_non_sub_roles_normalize_to_canonical_key():
    for role in (Role.TWITCH_NON_SUB, Role.KICK_NON_SUB, Role.YOUTUBE_NON_SUB):
        assert normalize_role(role) is Role.NON_SUB
    assert normalize_role(Role.TWITCH_TIER_2) is Role.TWITCH_TIER_2
    assert Role.KICK_SUB.platform is Platform.KICK
    assert Role.NON_SUB.platform is None


def test_entry_methods_follow_roles_and_units():
    assert role_entry_method(Role.KICK_SUB) is EntryMethod.KICK_SUB
    assert donation_entry_method(DonationUnit.BITS) is EntryMethod.BITS
    with pytest.raises(ValueError):
        role_entry_method(Role.NON_SUB)


def test_donation_units_know_their_platforms():
    assert DonationUnit.GIFT_SUB.platforms == {Platform.TWITCH, Platform.KICK}
    assert DonationUnit.SUPERCHAT.platforms == {Platform.YOUTUBE}


def test_giveaway_item_round_trip_keeps_configs():
    giveaway = Giveaway(
        giveaway_id="g1",
        admin_id="admin",
        name="Friday",
        keyword="!win",
        status=GiveawayStatus.OPEN,
        platforms=[Platform.TWITCH, Platform.KICK],
        allowed_roles=[Role.TWITCH_TIER_1, Role.NON_SUB],
        donation_configs=[
            DonationConfig(Platform.TWITCH, DonationUnit.BITS, DonationWindow.WEEKLY)
        ],
        created_at="2024-01-01T00:00:00.000000Z",
        updated_at="2024-01-01T00:00:00.000000Z",
    )

    item = giveaway.to_item()
    assert item["pk"] == "GIVEAWAY#g1"
    assert item["sk"] == "META"
    assert Giveaway.from_item(item) == giveaway
    assert giveaway.donation_configs_for(Platform.KICK) == []


def test_entry_from_item_handles_decimal_values():
    entry = Entry(
        entry_id="e1",
        giveaway_id="g1",
        platform=Platform.TWITCH,
        external_user_id="u1",
        username="alice",
        method=EntryMethod.BITS,
        tickets=3,
        metadata={"donationTotal": 300},
    )
    item = entry.to_item()
    item["tickets"] = Decimal("3")
    item["metadata"] = {"donationTotal": Decimal("300")}

    restored = Entry.from_item(item)
    assert restored.tickets == 3
    assert restored.metadata == {"donationTotal": 300}
    assert restored.display == "alice|BITS"
    assert item["sk"] == "ENTRY#TWITCH#u1#BITS"


def test_ticket_range_audit_line():
    ticket_range = TicketRange("e1", "alice|KICK_SUB", 0, 49)
    assert ticket_range.size == 50
    assert ticket_range.contains(49)
    assert not ticket_range.contains(50)
    assert ticket_range.audit_line() == "e1;alice|KICK_SUB;0;49"


def test_donation_rule_uses_floor_division():
    rule = DonationTicketRule("admin", Platform.TWITCH, DonationUnit.BITS, 100, 1)
    assert rule.tickets_for(250) == 2
    assert rule.tickets_for(99) == 0
    assert rule.tickets_for(0) == 0
    assert DonationTicketRule(
        "admin", Platform.TWITCH, DonationUnit.BITS, 0, 1
    ).tickets_for(500) == 0


def test_draw_record_round_trip_and_result_payload():
    ranges = [TicketRange("a", "alice|KICK_SUB", 0, 4), TicketRange("b", "bob|BITS", 5, 9)]
    record = DrawRecord(
        record_id="r1",
        giveaway_id="g1",
        sequence=2,
        winner_entry_id="b",
        status=WinnerStatus.WINNER,
        ranges=ranges,
        total_tickets=10,
        list_hash="abc",
        list_hash_algo="SHA256",
        random_payload={"data": [7], "completionTime": "2024-01-01 00:00:00Z"},
        signature="sig",
        verification_url="https://example/verify",
        drawn_number=7,
        verified=True,
        created_at="2024-01-01T00:00:00.000000Z",
    )
    item = record.to_item()
    assert item["sk"] == "DRAW#000002"
    assert isinstance(item["random_payload"], str)
    item["sequence"] = Decimal("2")

    restored = DrawRecord.from_item(item)
    assert restored == record

    payload = DrawResult.from_record(restored, source="random.org/signed").to_dict()
    assert payload["ticket"] == "g1"
    assert payload["totalTickets"] == 10
    assert payload["repick"] is True
    assert payload["draw"]["number"] == 7
    assert payload["draw"]["verified"] is True
    assert payload["winner"] == {
        "id": "b",
        "display": "bob|BITS",
        "start": 5,
        "end": 9,
        "index": 7,
    }
