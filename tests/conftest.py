from __future__ import annotations

import copy
import re

import pytest
from botocore.exceptions import ClientError

from stream_giveaway.accounts import ConnectedAccount, ConnectedAccountStore
from stream_giveaway.config import EngineConfig
from stream_giveaway.dedup import DedupLedger
from stream_giveaway.keyword_index import KeywordIndex
from stream_giveaway.lifecycle import GiveawayLifecycle
from stream_giveaway.randomness import SignedRandom, build_verification_url
from stream_giveaway.roles import Platform
from stream_giveaway.storage import GiveawayStorage
from stream_giveaway.tickets import TicketRuleResolver

_COMPARISON = re.compile(r"^(#?\w+)\s*(=|<)\s*(:\w+)$")


def _conditional_failure(operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {
                "Code": "ConditionalCheckFailedException",
                "Message": "The conditional request failed",
            }
        },
        operation,
    )


def _key_conditions(expression) -> dict[str, tuple[str, object]]:
    if expression.expression_operator == "AND":
        merged: dict[str, tuple[str, object]] = {}
        for part in expression._values:  # type: ignore[attr-defined]
            merged.update(_key_conditions(part))
        return merged
    key, value = expression._values  # type: ignore[attr-defined]
    return {key.name: (expression.expression_operator, value)}


class FakeTable:
    """In-memory subset of the DynamoDB Table API used by the engine."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}

    # ----- helpers -----
    def _check(
        self,
        existing: dict[str, object] | None,
        condition: str | None,
        values: dict[str, object] | None,
        names: dict[str, str] | None,
        operation: str,
    ) -> None:
        if not condition:
            return
        values = values or {}
        names = names or {}
        for clause in condition.split(" OR "):
            clause = clause.strip()
            if clause.startswith("attribute_not_exists("):
                attr = clause[len("attribute_not_exists(") : -1]
                if existing is None or attr not in existing:
                    return
                continue
            match = _COMPARISON.match(clause)
            if match is None:  # pragma: no cover - helper guard
                raise AssertionError(f"Unsupported condition: {clause}")
            attr, op, placeholder = match.groups()
            attr = names.get(attr, attr)
            if existing is None or attr not in existing:
                continue
            actual = existing[attr]
            expected = values[placeholder]
            if op == "=" and actual == expected:
                return
            if op == "<" and actual < expected:  # type: ignore[operator]
                return
        raise _conditional_failure(operation)

    # ----- Table API -----
    def get_item(self, *, Key):
        item = self.items.get((Key["pk"], Key["sk"]))
        if item is None:
            return {}
        return {"Item": copy.deepcopy(item)}

    def put_item(
        self,
        *,
        Item,
        ConditionExpression=None,
        ExpressionAttributeValues=None,
        ExpressionAttributeNames=None,
    ):
        key = (Item["pk"], Item["sk"])
        self._check(
            self.items.get(key),
            ConditionExpression,
            ExpressionAttributeValues,
            ExpressionAttributeNames,
            "PutItem",
        )
        self.items[key] = copy.deepcopy(Item)
        return {}

    def delete_item(
        self,
        *,
        Key,
        ConditionExpression=None,
        ExpressionAttributeValues=None,
        ExpressionAttributeNames=None,
    ):
        key = (Key["pk"], Key["sk"])
        self._check(
            self.items.get(key),
            ConditionExpression,
            ExpressionAttributeValues,
            ExpressionAttributeNames,
            "DeleteItem",
        )
        self.items.pop(key, None)
        return {}

    def update_item(
        self,
        *,
        Key,
        UpdateExpression,
        ExpressionAttributeValues=None,
        ExpressionAttributeNames=None,
        ReturnValues="NONE",
        ConditionExpression=None,
    ):
        key = (Key["pk"], Key["sk"])
        values = ExpressionAttributeValues or {}
        names = ExpressionAttributeNames or {}
        existing = self.items.get(key)
        self._check(existing, ConditionExpression, values, names, "UpdateItem")

        item = copy.deepcopy(existing) if existing else {"pk": Key["pk"], "sk": Key["sk"]}
        old: dict[str, object] = {}
        parts = re.split(r"\b(SET|ADD)\b", UpdateExpression)
        for action, body in zip(parts[1::2], parts[2::2], strict=True):
            for clause in body.split(","):
                clause = clause.strip()
                if not clause:
                    continue
                if action == "SET":
                    raw_name, placeholder = (p.strip() for p in clause.split("="))
                else:
                    raw_name, placeholder = clause.split()
                name = names.get(raw_name, raw_name)
                if name in item:
                    old[name] = copy.deepcopy(item[name])
                value = values[placeholder]
                if action == "SET":
                    item[name] = copy.deepcopy(value)
                elif isinstance(value, set):
                    item[name] = set(item.get(name, set())) | value
                else:
                    item[name] = item.get(name, 0) + value
        self.items[key] = item

        if ReturnValues == "UPDATED_OLD":
            return {"Attributes": old}
        if ReturnValues == "ALL_NEW":
            return {"Attributes": copy.deepcopy(item)}
        return {}

    def query(self, *, KeyConditionExpression, Select="ALL_ATTRIBUTES", **_kwargs):
        conditions = _key_conditions(KeyConditionExpression)
        _, pk_value = conditions["pk"]
        sk_condition = conditions.get("sk")
        matching = []
        for pk, sk in sorted(self.items):
            if pk != pk_value:
                continue
            if sk_condition is not None:
                op, value = sk_condition
                if op == "begins_with" and not sk.startswith(str(value)):
                    continue
                if op == "=" and sk != value:
                    continue
            matching.append(copy.deepcopy(self.items[(pk, sk)]))
        if Select == "COUNT":
            return {"Count": len(matching)}
        return {"Items": matching, "Count": len(matching)}

    def keys_with_prefix(self, pk_prefix: str) -> list[tuple[str, str]]:
        return [key for key in sorted(self.items) if key[0].startswith(pk_prefix)]


class FakeRandomness:
    """Deterministic signed-randomness provider."""

    source = "fake/signed"

    def __init__(self, numbers: list[int] | None = None, *, authentic: bool = True) -> None:
        self.numbers = list(numbers or [])
        self.authentic = authentic
        self.calls: list[tuple[int, str]] = []

    def generate(self, max_value: int, user_data: str) -> SignedRandom:
        self.calls.append((max_value, user_data))
        value = self.numbers.pop(0)
        serial = len(self.calls)
        return SignedRandom(
            random={
                "method": "generateSignedIntegers",
                "n": 1,
                "min": 0,
                "max": max_value - 1,
                "data": [value],
                "userData": user_data,
                "serialNumber": serial,
            },
            signature=f"signature-{serial}",
        )

    def verify(self, random, signature) -> bool:
        return self.authentic

    def verification_url(self, random, signature) -> str:
        return build_verification_url(random, signature)


ADMIN_ID = "admin-1"
TWITCH_CHANNEL = "tw-100"
KICK_CHANNEL = "kick-200"
YOUTUBE_CHANNEL = "yt-300"


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def storage(table) -> GiveawayStorage:
    return GiveawayStorage(table)


@pytest.fixture
def dedup(table) -> DedupLedger:
    return DedupLedger(table)


@pytest.fixture
def index(table, dedup) -> KeywordIndex:
    return KeywordIndex(table, dedup)


@pytest.fixture
def accounts(table) -> ConnectedAccountStore:
    store = ConnectedAccountStore(table)
    store.save(ConnectedAccount(ADMIN_ID, Platform.TWITCH, TWITCH_CHANNEL, "tw-token"))
    store.save(ConnectedAccount(ADMIN_ID, Platform.KICK, KICK_CHANNEL))
    store.save(ConnectedAccount(ADMIN_ID, Platform.YOUTUBE, YOUTUBE_CHANNEL))
    return store


@pytest.fixture
def lifecycle(storage, index, accounts) -> GiveawayLifecycle:
    return GiveawayLifecycle(storage, index, accounts)


@pytest.fixture
def resolver(storage) -> TicketRuleResolver:
    return TicketRuleResolver(storage)


@pytest.fixture
def randomness() -> FakeRandomness:
    return FakeRandomness()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        table_name="giveaways",
        aws_region="us-east-1",
        random_org_api_key="test-key",
        list_hash_algo="SHA256",
        dedup_ttl_days=30,
        draw_lock_seconds=120,
        http_timeout_seconds=5,
        donation_timezone="America/Sao_Paulo",
        twitch_client_id=None,
        discord_token="discord-token",
        participant_feed_enabled=True,
        participant_feed_channel_id=None,
        operator_guild_id=None,
    )
