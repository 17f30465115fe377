from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from stream_giveaway.models import (
    DonationTicketRule,
    Entry,
    Giveaway,
    GiveawayStatus,
    RoleTicketRule,
)
from stream_giveaway.roles import DonationUnit, EntryMethod, Platform, Role
from stream_giveaway.storage import GiveawayStorage, query_all


def sample_giveaway(giveaway_id: str = "g1", admin_id: str = "admin") -> Giveaway:
    return Giveaway(
        giveaway_id=giveaway_id,
        admin_id=admin_id,
        name="Weekend",
        keyword="!win",
        status=GiveawayStatus.DRAFT,
        platforms=[Platform.TWITCH],
        created_at="2024-01-01T00:00:00.000000Z",
        updated_at="2024-01-01T00:00:00.000000Z",
    )


def make_entry(entry_id: str, created_at: str, user: str = "u1") -> Entry:
    return Entry(
        entry_id=entry_id,
        giveaway_id="g1",
        platform=Platform.TWITCH,
        external_user_id=user,
        username=user,
        method=EntryMethod.TWITCH_TIER_1,
        tickets=1,
        created_at=created_at,
    )


def test_ensure_table_raises_when_missing():
    storage = GiveawayStorage(None)
    with pytest.raises(RuntimeError):
        storage.ensure_table()


def test_giveaway_round_trip_and_listing(storage):
    storage.save_giveaway(sample_giveaway("g1"))
    storage.save_giveaway(sample_giveaway("g2"))

    assert storage.get_giveaway("g1") == sample_giveaway("g1")
    assert storage.get_giveaway("missing") is None
    assert {ref.giveaway_id for ref in storage.list_giveaways("admin")} == {"g1", "g2"}
    assert storage.list_giveaways("someone-else") == []


def test_open_slot_is_exclusive(storage):
    assert storage.claim_open_slot("admin", "g1") is True
    # Re-claiming for the same giveaway is idempotent.
    assert storage.claim_open_slot("admin", "g1") is True
    assert storage.claim_open_slot("admin", "g2") is False
    assert storage.get_open_giveaway_id("admin") == "g1"

    storage.release_open_slot("admin", "g2")
    assert storage.get_open_giveaway_id("admin") == "g1"

    storage.release_open_slot("admin", "g1")
    assert storage.get_open_giveaway_id("admin") is None
    assert storage.claim_open_slot("admin", "g2") is True


def test_add_entry_enforces_uniqueness_key(storage):
    first = make_entry("e1", "2024-01-01T00:00:00.000000Z")
    duplicate = make_entry("e2", "2024-01-01T00:00:01.000000Z")

    assert storage.add_entry(first) is True
    assert storage.add_entry(duplicate) is False
    stored = storage.get_entry("g1", Platform.TWITCH, "u1", EntryMethod.TWITCH_TIER_1)
    assert stored is not None
    assert stored.entry_id == "e1"


def test_list_entries_orders_by_creation_then_id(storage):
    storage.add_entry(make_entry("b", "2024-01-01T00:00:01.000000Z", user="u1"))
    storage.add_entry(make_entry("c", "2024-01-01T00:00:00.000000Z", user="u2"))
    storage.add_entry(make_entry("a", "2024-01-01T00:00:01.000000Z", user="u3"))

    assert [e.entry_id for e in storage.list_entries("g1")] == ["c", "a", "b"]


def test_draw_lock_blocks_until_released_or_expired(storage, table):
    token = storage.acquire_draw_lock("g1", 60)
    assert token is not None
    assert storage.acquire_draw_lock("g1", 60) is None

    storage.release_draw_lock("g1", "not-the-token")
    assert storage.acquire_draw_lock("g1", 60) is None

    storage.release_draw_lock("g1", token)
    second = storage.acquire_draw_lock("g1", 60)
    assert second is not None

    table.items[("GIVEAWAY#g1", "DRAW_LOCK")]["expires_at"] = 0
    assert storage.acquire_draw_lock("g1", 60) is not None


def test_rules_round_trip(storage):
    override = RoleTicketRule("admin", Platform.KICK, Role.KICK_SUB, 5, giveaway_id="g1")
    global_rule = RoleTicketRule("admin", Platform.KICK, Role.NON_SUB, 1)
    donation = DonationTicketRule("admin", Platform.KICK, DonationUnit.KICK_COINS, 100, 2)
    storage.save_role_rule(override)
    storage.save_role_rule(global_rule)
    storage.save_donation_rule(donation)

    assert storage.get_role_override("g1", Role.KICK_SUB) == override
    assert storage.get_global_role_rule("admin", Platform.KICK, Role.NON_SUB) == global_rule
    assert storage.get_global_role_rule("admin", Platform.TWITCH, Role.NON_SUB) is None
    assert storage.list_role_rules("admin") == [global_rule]
    assert storage.list_role_overrides("g1") == [override]
    assert storage.list_donation_rules("admin") == [donation]

    storage.delete_role_override("g1", Role.KICK_SUB)
    assert storage.get_role_override("g1", Role.KICK_SUB) is None


def test_delete_giveaway_cascades_partition(storage, table):
    giveaway = sample_giveaway()
    storage.save_giveaway(giveaway)
    storage.claim_open_slot("admin", "g1")
    storage.add_entry(make_entry("e1", "2024-01-01T00:00:00.000000Z"))
    storage.save_role_rule(
        RoleTicketRule("admin", Platform.TWITCH, Role.TWITCH_TIER_1, 2, giveaway_id="g1")
    )

    removed = storage.delete_giveaway(giveaway)

    assert removed == 2
    assert table.items == {}


def test_conditional_helpers_reraise_other_errors():
    table = MagicMock()
    table.put_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}},
        "PutItem",
    )
    storage = GiveawayStorage(table)

    with pytest.raises(ClientError):
        storage.claim_open_slot("admin", "g1")
    with pytest.raises(ClientError):
        storage.add_entry(make_entry("e1", "2024-01-01T00:00:00.000000Z"))


def test_query_all_follows_pagination():
    table = MagicMock()
    table.query.side_effect = [
        {"Items": [{"n": 1}], "LastEvaluatedKey": {"pk": "x", "sk": "1"}},
        {"Items": [{"n": 2}]},
    ]

    items = query_all(table, KeyConditionExpression="ignored")

    assert items == [{"n": 1}, {"n": 2}]
    second_call = table.query.call_args_list[1]
    assert second_call.kwargs["ExclusiveStartKey"] == {"pk": "x", "sk": "1"}
