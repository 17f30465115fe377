from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Final

from boto3.dynamodb.conditions import Key

from .models import utc_now_iso
from .roles import Platform
from .storage import query_all

log: Final = logging.getLogger("giveaway-accounts")


@dataclass(slots=True)
class ConnectedAccount:
    """An admin's linked streaming channel.

    Tokens are issued elsewhere; this record only carries what the engine reads.
    """

    admin_id: str
    platform: Platform
    channel_id: str
    access_token: str | None = None
    display_name: str | None = None
    updated_at: str = field(default_factory=utc_now_iso)

    PK_TEMPLATE: ClassVar[str] = "ADMIN#%s"
    SK_TEMPLATE: ClassVar[str] = "ACCOUNT#%s"
    SK_PREFIX: ClassVar[str] = "ACCOUNT#"

    @classmethod
    def key(cls, admin_id: str, platform: Platform) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % admin_id, "sk": cls.SK_TEMPLATE % platform.value}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.admin_id, self.platform)
        item.update(
            {
                "admin_id": self.admin_id,
                "platform": self.platform.value,
                "channel_id": self.channel_id,
                "updated_at": self.updated_at,
            }
        )
        if self.access_token:
            item["access_token"] = self.access_token
        if self.display_name:
            item["display_name"] = self.display_name
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> ConnectedAccount:
        token = item.get("access_token")
        display = item.get("display_name")
        return cls(
            admin_id=str(item.get("admin_id", "")),
            platform=Platform(str(item["platform"])),
            channel_id=str(item.get("channel_id", "")),
            access_token=str(token) if token else None,
            display_name=str(display) if display else None,
            updated_at=str(item.get("updated_at", "")),
        )


class ConnectedAccountStore:
    def __init__(self, table) -> None:
        self._table = table

    def save(self, account: ConnectedAccount) -> None:
        self._table.put_item(Item=account.to_item())
        log.info(
            "Connected %s channel %s for admin %s",
            account.platform.value,
            account.channel_id,
            account.admin_id,
        )

    def get(self, admin_id: str, platform: Platform) -> ConnectedAccount | None:
        resp = self._table.get_item(Key=ConnectedAccount.key(admin_id, platform))
        item = resp.get("Item")
        if not item:
            return None
        return ConnectedAccount.from_item(item)

    def delete(self, admin_id: str, platform: Platform) -> None:
        self._table.delete_item(Key=ConnectedAccount.key(admin_id, platform))

    def list(self, admin_id: str) -> list[ConnectedAccount]:
        items = query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(ConnectedAccount.PK_TEMPLATE % admin_id)
            & Key("sk").begins_with(ConnectedAccount.SK_PREFIX),
            Select="ALL_ATTRIBUTES",
        )
        return [ConnectedAccount.from_item(item) for item in items]

    def channel_ids(self, admin_id: str) -> dict[Platform, str]:
        return {
            account.platform: account.channel_id
            for account in self.list(admin_id)
            if account.channel_id
        }


__all__ = ["ConnectedAccount", "ConnectedAccountStore"]
