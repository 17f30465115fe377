"""Platform collaborators: donation totals and avatars per streaming platform."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Final, Protocol

import requests
from boto3.dynamodb.conditions import Key

from .accounts import ConnectedAccountStore
from .errors import UpstreamDegradation, ValidationError
from .models import DonationWindow, ISO_FORMAT, _int, parse_iso, utc_now_iso
from .roles import DonationUnit, Platform
from .storage import query_all
from .windows import (
    DEFAULT_TIMEZONE,
    donation_window_range,
    twitch_leaderboard_period,
    twitch_started_at,
)

log: Final = logging.getLogger("giveaway-platforms")

TWITCH_API_URL = "https://api.twitch.tv/helix"


class PlatformClient(Protocol):
    def donation_total(
        self,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        external_user_id: str,
        window: DonationWindow,
    ) -> int:
        """Total donated by the viewer in the current window."""

    def fetch_avatar(
        self, admin_id: str, platform: Platform, external_user_id: str
    ) -> str | None:
        """Profile image URL, or ``None`` when unknown."""


def normalize_timestamp(value: str | datetime) -> str:
    """Return ``value`` as a UTC ``ISO_FORMAT`` string; naive values are UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"Invalid donation timestamp: {value!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(ISO_FORMAT)


class DonationEventLedger:
    """Donation events received from platform feeds, summed per window."""

    PK_TEMPLATE = "DONATION#%s#%s#%s#%s"
    SK_TEMPLATE = "EVENT#%s#%s"
    SK_PREFIX = "EVENT#"

    def __init__(self, table, *, timezone: str = DEFAULT_TIMEZONE) -> None:
        self._table = table
        self._timezone = timezone

    def _pk(
        self,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        external_user_id: str,
    ) -> str:
        return self.PK_TEMPLATE % (admin_id, platform.value, unit.value, external_user_id)

    def record_donation(
        self,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        external_user_id: str,
        amount: int,
        *,
        occurred_at: str | datetime | None = None,
    ) -> None:
        if amount <= 0:
            log.debug("Ignoring non-positive donation from %s", external_user_id)
            return
        occurred = normalize_timestamp(occurred_at) if occurred_at else utc_now_iso()
        self._table.put_item(
            Item={
                "pk": self._pk(admin_id, platform, unit, external_user_id),
                "sk": self.SK_TEMPLATE % (occurred, uuid.uuid4().hex),
                "admin_id": admin_id,
                "platform": platform.value,
                "unit": unit.value,
                "external_user_id": external_user_id,
                "amount": int(amount),
                "occurred_at": occurred,
            }
        )

    def donation_total(
        self,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        external_user_id: str,
        window: DonationWindow,
        *,
        now: datetime | None = None,
    ) -> int:
        start, end = donation_window_range(window, now, self._timezone)
        items = query_all(
            self._table,
            KeyConditionExpression=Key("pk").eq(
                self._pk(admin_id, platform, unit, external_user_id)
            )
            & Key("sk").begins_with(self.SK_PREFIX),
            Select="ALL_ATTRIBUTES",
        )
        total = 0
        for item in items:
            try:
                occurred = parse_iso(str(item.get("occurred_at", "")))
            except ValueError:
                log.warning("Skipping donation event with bad timestamp: %s", item.get("sk"))
                continue
            if start <= occurred < end:
                total += _int(item.get("amount"))
        return total


class TwitchHelixClient:
    def __init__(
        self,
        client_id: str | None,
        accounts: ConnectedAccountStore,
        *,
        timeout: float = 10,
        timezone: str = DEFAULT_TIMEZONE,
        session: requests.Session | None = None,
    ) -> None:
        self._client_id = client_id
        self._accounts = accounts
        self._timeout = timeout
        self._timezone = timezone
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._client_id)

    def _get(self, admin_id: str, path: str, params: dict[str, object]) -> dict:
        account = self._accounts.get(admin_id, Platform.TWITCH)
        if account is None or not account.access_token:
            raise UpstreamDegradation(f"No Twitch credentials for admin {admin_id}")
        if not self._client_id:
            raise UpstreamDegradation("TWITCH_CLIENT_ID is not configured")
        try:
            resp = self._session.get(
                f"{TWITCH_API_URL}/{path}",
                headers={
                    "Authorization": f"Bearer {account.access_token}",
                    "Client-Id": self._client_id,
                },
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamDegradation(f"Twitch request failed: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamDegradation(
                f"Twitch {path} returned {resp.status_code}: {resp.text[:200]}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamDegradation(f"Twitch {path} returned invalid JSON") from exc

    def bits_total(
        self,
        admin_id: str,
        external_user_id: str,
        window: DonationWindow,
        *,
        now: datetime | None = None,
    ) -> int:
        started_at = twitch_started_at(window, now, self._timezone)
        data = self._get(
            admin_id,
            "bits/leaderboard",
            {
                "period": twitch_leaderboard_period(window),
                "started_at": started_at.strftime(ISO_FORMAT),
                "user_id": external_user_id,
                "count": 100,
            },
        )
        for row in data.get("data", []):
            if str(row.get("user_id")) == str(external_user_id):
                return _int(row.get("score"))
        return 0

    def fetch_avatar(self, admin_id: str, external_user_id: str) -> str | None:
        data = self._get(admin_id, "users", {"id": external_user_id})
        for row in data.get("data", []):
            if str(row.get("id")) == str(external_user_id):
                return row.get("profile_image_url") or None
        return None


class PlatformRouter:
    """``PlatformClient`` that dispatches to Twitch or the donation ledger."""

    def __init__(
        self,
        ledger: DonationEventLedger,
        twitch: TwitchHelixClient | None = None,
    ) -> None:
        self._ledger = ledger
        self._twitch = twitch

    def donation_total(
        self,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        external_user_id: str,
        window: DonationWindow,
    ) -> int:
        if (
            unit is DonationUnit.BITS
            and self._twitch is not None
            and self._twitch.configured
        ):
            return self._twitch.bits_total(admin_id, external_user_id, window)
        return self._ledger.donation_total(
            admin_id, platform, unit, external_user_id, window
        )

    def fetch_avatar(
        self, admin_id: str, platform: Platform, external_user_id: str
    ) -> str | None:
        if platform is Platform.TWITCH and self._twitch is not None and self._twitch.configured:
            return self._twitch.fetch_avatar(admin_id, external_user_id)
        return None


__all__ = [
    "PlatformClient",
    "DonationEventLedger",
    "normalize_timestamp",
    "TwitchHelixClient",
    "PlatformRouter",
    "TWITCH_API_URL",
]
