from __future__ import annotations

import time
import uuid

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .models import (
    AdminGiveawayRef,
    DonationTicketRule,
    DrawRecord,
    Entry,
    Giveaway,
    RoleTicketRule,
    WinnerStatus,
)
from .roles import DonationUnit, EntryMethod, Platform, Role

OPEN_SLOT_PK = "ADMIN#%s"
OPEN_SLOT_SK = "OPEN_GIVEAWAY"
DRAW_LOCK_SK = "DRAW_LOCK"


def is_conditional_failure(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code")
    return code == "ConditionalCheckFailedException"


def query_all(table, **kwargs) -> list[dict[str, object]]:
    """Run a query and follow ``LastEvaluatedKey`` until exhausted."""
    items: list[dict[str, object]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class GiveawayStorage:
    def __init__(self, table) -> None:
        self._table = table

    @property
    def table(self):
        return self._table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Giveaway table is not configured")

    def _query_prefix(self, pk: str, sk_prefix: str) -> list[dict[str, object]]:
        return query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(pk) & Key("sk").begins_with(sk_prefix),
            Select="ALL_ATTRIBUTES",
        )

    def _query_partition(self, pk: str) -> list[dict[str, object]]:
        return query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(pk),
            Select="ALL_ATTRIBUTES",
        )

    # ----- Giveaways -----
    def get_giveaway(self, giveaway_id: str) -> Giveaway | None:
        self.ensure_table()
        resp = self._table.get_item(Key=Giveaway.key(giveaway_id))
        item = resp.get("Item")
        if not item:
            return None
        return Giveaway.from_item(item)

    def save_giveaway(self, giveaway: Giveaway) -> None:
        self.ensure_table()
        self._table.put_item(Item=giveaway.to_item())
        self._table.put_item(Item=AdminGiveawayRef.from_giveaway(giveaway).to_item())

    def list_giveaways(self, admin_id: str) -> list[AdminGiveawayRef]:
        self.ensure_table()
        items = self._query_prefix(
            AdminGiveawayRef.PK_TEMPLATE % admin_id, AdminGiveawayRef.SK_PREFIX
        )
        refs = [AdminGiveawayRef.from_item(item) for item in items]
        refs.sort(key=lambda ref: (ref.created_at, ref.giveaway_id), reverse=True)
        return refs

    def delete_giveaway(self, giveaway: Giveaway) -> int:
        """Delete a giveaway with its entries, draws, overrides and metrics.

        Returns the number of child items removed.
        """
        self.ensure_table()
        pk = Giveaway.PK_TEMPLATE % giveaway.giveaway_id
        children = [
            item
            for item in self._query_partition(pk)
            if item.get("sk") != Giveaway.SK_VALUE
        ]
        for item in children:
            self._table.delete_item(Key={"pk": item["pk"], "sk": item["sk"]})
        self._table.delete_item(
            Key=AdminGiveawayRef.key(giveaway.admin_id, giveaway.giveaway_id)
        )
        self.release_open_slot(giveaway.admin_id, giveaway.giveaway_id)
        self._table.delete_item(Key=Giveaway.key(giveaway.giveaway_id))
        return len(children)

    # ----- Single OPEN giveaway per admin -----
    def get_open_giveaway_id(self, admin_id: str) -> str | None:
        self.ensure_table()
        resp = self._table.get_item(
            Key={"pk": OPEN_SLOT_PK % admin_id, "sk": OPEN_SLOT_SK}
        )
        item = resp.get("Item")
        if not item:
            return None
        return str(item.get("giveaway_id", "")) or None

    def claim_open_slot(self, admin_id: str, giveaway_id: str) -> bool:
        """Atomically reserve the admin's OPEN slot for ``giveaway_id``."""
        self.ensure_table()
        try:
            self._table.put_item(
                Item={
                    "pk": OPEN_SLOT_PK % admin_id,
                    "sk": OPEN_SLOT_SK,
                    "giveaway_id": giveaway_id,
                },
                ConditionExpression="attribute_not_exists(pk) OR giveaway_id = :gid",
                ExpressionAttributeValues={":gid": giveaway_id},
            )
        except ClientError as exc:
            if is_conditional_failure(exc):
                return False
            raise
        return True

    def release_open_slot(self, admin_id: str, giveaway_id: str) -> None:
        self.ensure_table()
        try:
            self._table.delete_item(
                Key={"pk": OPEN_SLOT_PK % admin_id, "sk": OPEN_SLOT_SK},
                ConditionExpression="giveaway_id = :gid",
                ExpressionAttributeValues={":gid": giveaway_id},
            )
        except ClientError as exc:
            if not is_conditional_failure(exc):
                raise

    # ----- Entries -----
    def add_entry(self, entry: Entry) -> bool:
        """Persist an entry; ``False`` when the uniqueness key is already taken."""
        self.ensure_table()
        try:
            self._table.put_item(
                Item=entry.to_item(),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as exc:
            if is_conditional_failure(exc):
                return False
            raise
        return True

    def get_entry(
        self,
        giveaway_id: str,
        platform: Platform,
        external_user_id: str,
        method: EntryMethod,
    ) -> Entry | None:
        self.ensure_table()
        resp = self._table.get_item(
            Key=Entry.key(giveaway_id, platform, external_user_id, method)
        )
        item = resp.get("Item")
        if not item:
            return None
        return Entry.from_item(item)

    def list_entries(self, giveaway_id: str) -> list[Entry]:
        """Return entries in draw order: creation time, then id."""
        self.ensure_table()
        items = self._query_prefix(Giveaway.PK_TEMPLATE % giveaway_id, Entry.SK_PREFIX)
        entries = [Entry.from_item(item) for item in items]
        entries.sort(key=lambda entry: (entry.created_at, entry.entry_id))
        return entries

    # ----- Draw records -----
    def list_draw_records(self, giveaway_id: str) -> list[DrawRecord]:
        self.ensure_table()
        items = self._query_prefix(
            Giveaway.PK_TEMPLATE % giveaway_id, DrawRecord.SK_PREFIX
        )
        records = [DrawRecord.from_item(item) for item in items]
        records.sort(key=lambda record: record.sequence)
        return records

    def save_draw_record(self, record: DrawRecord) -> None:
        self.ensure_table()
        self._table.put_item(
            Item=record.to_item(),
            ConditionExpression="attribute_not_exists(pk)",
        )

    def mark_draw_repicked(self, record: DrawRecord) -> None:
        self.ensure_table()
        self._table.update_item(
            Key=DrawRecord.key(record.giveaway_id, record.sequence),
            UpdateExpression="SET #status = :status",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={":status": WinnerStatus.REPICK.value},
        )
        record.status = WinnerStatus.REPICK

    # ----- Draw lock -----
    def acquire_draw_lock(self, giveaway_id: str, ttl_seconds: int) -> str | None:
        """Take the per-giveaway draw lock; returns a token or ``None`` if held."""
        self.ensure_table()
        token = uuid.uuid4().hex
        now = int(time.time())
        try:
            self._table.put_item(
                Item={
                    "pk": Giveaway.PK_TEMPLATE % giveaway_id,
                    "sk": DRAW_LOCK_SK,
                    "lock_token": token,
                    "expires_at": now + ttl_seconds,
                },
                ConditionExpression="attribute_not_exists(pk) OR expires_at < :now",
                ExpressionAttributeValues={":now": now},
            )
        except ClientError as exc:
            if is_conditional_failure(exc):
                return None
            raise
        return token

    def release_draw_lock(self, giveaway_id: str, token: str) -> None:
        self.ensure_table()
        try:
            self._table.delete_item(
                Key={"pk": Giveaway.PK_TEMPLATE % giveaway_id, "sk": DRAW_LOCK_SK},
                ConditionExpression="lock_token = :token",
                ExpressionAttributeValues={":token": token},
            )
        except ClientError as exc:  # pragma: no cover - lock expired and was retaken
            if not is_conditional_failure(exc):
                raise

    # ----- Ticket rules -----
    def get_role_override(self, giveaway_id: str, role: Role) -> RoleTicketRule | None:
        self.ensure_table()
        resp = self._table.get_item(Key=RoleTicketRule.override_key(giveaway_id, role))
        item = resp.get("Item")
        if not item:
            return None
        return RoleTicketRule.from_item(item)

    def get_global_role_rule(
        self, admin_id: str, platform: Platform, role: Role
    ) -> RoleTicketRule | None:
        self.ensure_table()
        resp = self._table.get_item(
            Key=RoleTicketRule.global_key(admin_id, platform, role)
        )
        item = resp.get("Item")
        if not item:
            return None
        return RoleTicketRule.from_item(item)

    def save_role_rule(self, rule: RoleTicketRule) -> None:
        self.ensure_table()
        self._table.put_item(Item=rule.to_item())

    def delete_role_override(self, giveaway_id: str, role: Role) -> None:
        self.ensure_table()
        self._table.delete_item(Key=RoleTicketRule.override_key(giveaway_id, role))

    def list_role_rules(self, admin_id: str) -> list[RoleTicketRule]:
        self.ensure_table()
        items = self._query_prefix(
            RoleTicketRule.GLOBAL_PK % admin_id, RoleTicketRule.GLOBAL_SK_PREFIX
        )
        return [RoleTicketRule.from_item(item) for item in items]

    def list_role_overrides(self, giveaway_id: str) -> list[RoleTicketRule]:
        self.ensure_table()
        items = self._query_prefix(
            RoleTicketRule.OVERRIDE_PK % giveaway_id,
            RoleTicketRule.OVERRIDE_SK_PREFIX,
        )
        return [RoleTicketRule.from_item(item) for item in items]

    def get_donation_override(
        self, giveaway_id: str, platform: Platform, unit: DonationUnit
    ) -> DonationTicketRule | None:
        self.ensure_table()
        resp = self._table.get_item(
            Key=DonationTicketRule.override_key(giveaway_id, platform, unit)
        )
        item = resp.get("Item")
        if not item:
            return None
        return DonationTicketRule.from_item(item)

    def get_global_donation_rule(
        self, admin_id: str, platform: Platform, unit: DonationUnit
    ) -> DonationTicketRule | None:
        self.ensure_table()
        resp = self._table.get_item(
            Key=DonationTicketRule.global_key(admin_id, platform, unit)
        )
        item = resp.get("Item")
        if not item:
            return None
        return DonationTicketRule.from_item(item)

    def save_donation_rule(self, rule: DonationTicketRule) -> None:
        self.ensure_table()
        self._table.put_item(Item=rule.to_item())

    def delete_donation_override(
        self, giveaway_id: str, platform: Platform, unit: DonationUnit
    ) -> None:
        self.ensure_table()
        self._table.delete_item(
            Key=DonationTicketRule.override_key(giveaway_id, platform, unit)
        )

    def list_donation_rules(self, admin_id: str) -> list[DonationTicketRule]:
        self.ensure_table()
        items = self._query_prefix(
            DonationTicketRule.GLOBAL_PK % admin_id,
            DonationTicketRule.GLOBAL_SK_PREFIX,
        )
        return [DonationTicketRule.from_item(item) for item in items]


__all__ = ["GiveawayStorage", "is_conditional_failure", "query_all"]
