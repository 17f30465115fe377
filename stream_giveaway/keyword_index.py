"""Per-channel keyword index used to route chat messages to giveaways."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Final

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .dedup import DedupLedger
from .models import DonationConfig, Giveaway, _int
from .roles import Platform, Role
from .storage import is_conditional_failure, query_all
from .validation import normalize_keyword, normalize_message

log: Final = logging.getLogger("giveaway-index")

METRIC_MESSAGES_PROCESSED = "total_messages_processed"
METRIC_PARTICIPANTS = "total_participants"
METRIC_NAMES = (METRIC_MESSAGES_PROCESSED, METRIC_PARTICIPANTS)


@dataclass(slots=True)
class IndexEntry:
    platform: Platform
    channel_id: str
    keyword: str
    giveaway_id: str
    admin_id: str
    allowed_roles: list[Role] = field(default_factory=list)
    donation_configs: list[DonationConfig] = field(default_factory=list)

    PK_TEMPLATE: ClassVar[str] = "INDEX#%s#%s"
    SK_TEMPLATE: ClassVar[str] = "KEYWORD#%s"
    SK_PREFIX: ClassVar[str] = "KEYWORD#"

    @classmethod
    def key(cls, platform: Platform, channel_id: str, keyword: str) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % (platform.value, channel_id),
            "sk": cls.SK_TEMPLATE % keyword,
        }

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.platform, self.channel_id, self.keyword)
        item.update(
            {
                "platform": self.platform.value,
                "channel_id": self.channel_id,
                "keyword": self.keyword,
                "giveaway_id": self.giveaway_id,
                "admin_id": self.admin_id,
                "allowed_roles": [r.value for r in self.allowed_roles],
                "donation_configs": [c.to_dict() for c in self.donation_configs],
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> IndexEntry:
        return cls(
            platform=Platform(str(item["platform"])),
            channel_id=str(item.get("channel_id", "")),
            keyword=str(item.get("keyword", "")),
            giveaway_id=str(item.get("giveaway_id", "")),
            admin_id=str(item.get("admin_id", "")),
            allowed_roles=[Role(str(r)) for r in item.get("allowed_roles", [])],  # type: ignore[union-attr]
            donation_configs=[
                DonationConfig.from_dict(c)
                for c in item.get("donation_configs", [])  # type: ignore[union-attr]
            ],
        )


class KeywordIndex:
    METRICS_SK: ClassVar[str] = "METRICS"

    def __init__(self, table, dedup: DedupLedger) -> None:
        self._table = table
        self._dedup = dedup

    def _metrics_key(self, giveaway_id: str) -> dict[str, str]:
        return {"pk": Giveaway.PK_TEMPLATE % giveaway_id, "sk": self.METRICS_SK}

    def publish(
        self, giveaway: Giveaway, channel_ids: Mapping[Platform, str | None]
    ) -> list[IndexEntry]:
        """Write one index item per enabled platform with a connected channel."""
        keyword = normalize_keyword(giveaway.keyword)
        published: list[IndexEntry] = []
        for platform in giveaway.platforms:
            channel_id = channel_ids.get(platform)
            if not channel_id:
                log.warning(
                    "No connected %s channel for admin %s; skipping index for giveaway %s",
                    platform.value,
                    giveaway.admin_id,
                    giveaway.giveaway_id,
                )
                continue
            entry = IndexEntry(
                platform=platform,
                channel_id=str(channel_id),
                keyword=keyword,
                giveaway_id=giveaway.giveaway_id,
                admin_id=giveaway.admin_id,
                allowed_roles=list(giveaway.allowed_roles),
                donation_configs=giveaway.donation_configs_for(platform),
            )
            self._table.put_item(Item=entry.to_item())
            published.append(entry)

        self._init_metrics(giveaway.giveaway_id)
        log.info(
            "Published keyword '%s' for giveaway %s on %s channel(s)",
            keyword,
            giveaway.giveaway_id,
            len(published),
        )
        return published

    def remove(
        self,
        giveaway: Giveaway,
        channel_ids: Mapping[Platform, str | None],
        *,
        republishing: bool = False,
    ) -> None:
        """Delete the index items; a full teardown also drops metrics and dedup state."""
        keyword = (giveaway.keyword or "").strip().lower()
        for platform in giveaway.platforms:
            channel_id = channel_ids.get(platform)
            if not channel_id or not keyword:
                continue
            self._table.delete_item(
                Key=IndexEntry.key(platform, str(channel_id), keyword)
            )
        if not republishing:
            self._table.delete_item(Key=self._metrics_key(giveaway.giveaway_id))
            self._dedup.clear(giveaway.giveaway_id)
        log.info("Removed keyword index for giveaway %s", giveaway.giveaway_id)

    def lookup(
        self, platform: Platform, channel_id: str, message_text: str | None
    ) -> IndexEntry | None:
        """Return the first indexed giveaway whose keyword appears in the message."""
        message = normalize_message(message_text)
        if not message:
            return None
        items = query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(
                IndexEntry.PK_TEMPLATE % (platform.value, channel_id)
            )
            & Key("sk").begins_with(IndexEntry.SK_PREFIX),
            Select="ALL_ATTRIBUTES",
        )
        for item in items:
            entry = IndexEntry.from_item(item)
            if entry.keyword and entry.keyword in message:
                return entry
        return None

    def _init_metrics(self, giveaway_id: str) -> None:
        try:
            self._table.put_item(
                Item={
                    **self._metrics_key(giveaway_id),
                    "giveaway_id": giveaway_id,
                    METRIC_MESSAGES_PROCESSED: 0,
                    METRIC_PARTICIPANTS: 0,
                },
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as exc:
            if not is_conditional_failure(exc):
                raise

    def increment_metric(self, giveaway_id: str, name: str, amount: int = 1) -> None:
        if name not in METRIC_NAMES:
            raise ValueError(f"Unknown metric {name}")
        self._table.update_item(
            Key=self._metrics_key(giveaway_id),
            UpdateExpression="ADD #metric :amount",
            ExpressionAttributeNames={"#metric": name},
            ExpressionAttributeValues={":amount": amount},
        )

    def get_metrics(self, giveaway_id: str) -> dict[str, int]:
        resp = self._table.get_item(Key=self._metrics_key(giveaway_id))
        item = resp.get("Item") or {}
        return {name: _int(item.get(name)) for name in METRIC_NAMES}


__all__ = [
    "IndexEntry",
    "KeywordIndex",
    "METRIC_MESSAGES_PROCESSED",
    "METRIC_PARTICIPANTS",
]
