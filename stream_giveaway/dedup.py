from __future__ import annotations

import logging
import time
from typing import Final

from boto3.dynamodb.conditions import Key

from .roles import EntryMethod, Platform
from .storage import query_all

log: Final = logging.getLogger("giveaway-dedup")

DEDUP_PK_TEMPLATE = "DEDUP#%s"
DEDUP_SK_TEMPLATE = "%s#%s"
DEFAULT_TTL_DAYS = 30


class DedupLedger:
    """Entry methods already granted per (giveaway, platform, user).

    Each viewer is one item holding a string set of methods. Grants use an
    atomic ``ADD`` so concurrent deliveries never lose an update. Items carry an
    ``expires_at`` TTL for storage hygiene only; the Entry rows are the source
    of truth for what was granted.
    """

    def __init__(self, table, *, ttl_days: int = DEFAULT_TTL_DAYS) -> None:
        self._table = table
        self._ttl_seconds = ttl_days * 24 * 60 * 60

    @staticmethod
    def key(giveaway_id: str, platform: Platform, external_user_id: str) -> dict[str, str]:
        return {
            "pk": DEDUP_PK_TEMPLATE % giveaway_id,
            "sk": DEDUP_SK_TEMPLATE % (platform.value, external_user_id),
        }

    def granted_methods(
        self, giveaway_id: str, platform: Platform, external_user_id: str
    ) -> set[str]:
        resp = self._table.get_item(
            Key=self.key(giveaway_id, platform, external_user_id)
        )
        item = resp.get("Item") or {}
        return {str(method) for method in item.get("methods", set())}

    def has_granted(
        self,
        giveaway_id: str,
        platform: Platform,
        external_user_id: str,
        method: EntryMethod,
    ) -> bool:
        granted = method.value in self.granted_methods(
            giveaway_id, platform, external_user_id
        )
        if granted:
            log.info(
                "Duplicate entry detected: %s on %s with %s",
                external_user_id,
                platform.value,
                method.value,
            )
        return granted

    def grant(
        self,
        giveaway_id: str,
        platform: Platform,
        external_user_id: str,
        method: EntryMethod,
    ) -> bool:
        """Record ``method`` as granted; returns ``True`` if it was new."""
        expires_at = int(time.time()) + self._ttl_seconds
        resp = self._table.update_item(
            Key=self.key(giveaway_id, platform, external_user_id),
            UpdateExpression="ADD methods :method SET expires_at = :expires_at",
            ExpressionAttributeValues={
                ":method": {method.value},
                ":expires_at": expires_at,
            },
            ReturnValues="UPDATED_OLD",
        )
        previous = resp.get("Attributes", {}).get("methods") or set()
        added = method.value not in {str(m) for m in previous}
        log.debug(
            "Marked participant %s on %s with %s (new=%s)",
            external_user_id,
            platform.value,
            method.value,
            added,
        )
        return added

    def clear(self, giveaway_id: str) -> int:
        items = query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(DEDUP_PK_TEMPLATE % giveaway_id),
            Select="ALL_ATTRIBUTES",
        )
        for item in items:
            self._table.delete_item(Key={"pk": item["pk"], "sk": item["sk"]})
        if items:
            log.info("Removed %s dedup records for giveaway %s", len(items), giveaway_id)
        return len(items)


__all__ = ["DedupLedger", "DEFAULT_TTL_DAYS"]
