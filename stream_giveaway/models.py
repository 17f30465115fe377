from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar

from .roles import DonationUnit, EntryMethod, Platform, Role

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format (microsecond precision)."""
    return datetime.now(UTC).strftime(ISO_FORMAT)


def parse_iso(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=UTC)


class GiveawayStatus(StrEnum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    DONE = "DONE"


class WinnerStatus(StrEnum):
    WINNER = "WINNER"
    REPICK = "REPICK"


class DonationWindow(StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


def _int(value: object, default: int = 0) -> int:
    # DynamoDB hands numbers back as Decimal.
    if value is None or value == "":
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _plain(value: Any) -> Any:
    """Convert DynamoDB values (Decimal, set) into plain JSON-friendly types."""
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_plain(v) for v in value)
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    try:
        as_int = int(value)
    except (TypeError, ValueError):
        return value
    if as_int == value:
        return as_int
    return str(value)


@dataclass(slots=True, frozen=True)
class DonationConfig:
    platform: Platform
    unit: DonationUnit
    window: DonationWindow

    def to_dict(self) -> dict[str, str]:
        return {
            "platform": self.platform.value,
            "unit": self.unit.value,
            "window": self.window.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> DonationConfig:
        return cls(
            platform=Platform(str(data["platform"])),
            unit=DonationUnit(str(data["unit"])),
            window=DonationWindow(str(data.get("window", DonationWindow.DAILY))),
        )


@dataclass(slots=True)
class Giveaway:
    giveaway_id: str
    admin_id: str
    name: str
    keyword: str
    status: GiveawayStatus = GiveawayStatus.DRAFT
    platforms: list[Platform] = field(default_factory=list)
    allowed_roles: list[Role] = field(default_factory=list)
    donation_configs: list[DonationConfig] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_VALUE: ClassVar[str] = "META"

    @classmethod
    def key(cls, giveaway_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % giveaway_id, "sk": cls.SK_VALUE}

    def donation_configs_for(self, platform: Platform) -> list[DonationConfig]:
        return [cfg for cfg in self.donation_configs if cfg.platform == platform]

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.giveaway_id)
        item.update(
            {
                "giveaway_id": self.giveaway_id,
                "admin_id": self.admin_id,
                "name": self.name,
                "keyword": self.keyword,
                "status": self.status.value,
                "platforms": [p.value for p in self.platforms],
                "allowed_roles": [r.value for r in self.allowed_roles],
                "donation_configs": [c.to_dict() for c in self.donation_configs],
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Giveaway:
        raw_id = item.get("giveaway_id")
        giveaway_id = (
            str(raw_id) if raw_id is not None else str(item["pk"]).split("#", 1)[1]
        )
        return cls(
            giveaway_id=giveaway_id,
            admin_id=str(item.get("admin_id", "")),
            name=str(item.get("name", "")),
            keyword=str(item.get("keyword", "")),
            status=GiveawayStatus(str(item.get("status", GiveawayStatus.DRAFT))),
            platforms=[Platform(str(p)) for p in item.get("platforms", [])],  # type: ignore[union-attr]
            allowed_roles=[Role(str(r)) for r in item.get("allowed_roles", [])],  # type: ignore[union-attr]
            donation_configs=[
                DonationConfig.from_dict(c)
                for c in item.get("donation_configs", [])  # type: ignore[union-attr]
            ],
            created_at=str(item.get("created_at", "")),
            updated_at=str(item.get("updated_at", "")),
        )


@dataclass(slots=True)
class AdminGiveawayRef:
    """Per-admin listing row mirroring a giveaway's name and status."""

    admin_id: str
    giveaway_id: str
    name: str
    status: GiveawayStatus
    created_at: str

    PK_TEMPLATE: ClassVar[str] = "ADMIN#%s"
    SK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_PREFIX: ClassVar[str] = "GIVEAWAY#"

    @classmethod
    def key(cls, admin_id: str, giveaway_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % admin_id, "sk": cls.SK_TEMPLATE % giveaway_id}

    @classmethod
    def from_giveaway(cls, giveaway: Giveaway) -> AdminGiveawayRef:
        return cls(
            admin_id=giveaway.admin_id,
            giveaway_id=giveaway.giveaway_id,
            name=giveaway.name,
            status=giveaway.status,
            created_at=giveaway.created_at,
        )

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.admin_id, self.giveaway_id)
        item.update(
            {
                "giveaway_id": self.giveaway_id,
                "name": self.name,
                "status": self.status.value,
                "created_at": self.created_at,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> AdminGiveawayRef:
        return cls(
            admin_id=str(item["pk"]).split("#", 1)[1],
            giveaway_id=str(item.get("giveaway_id", "")),
            name=str(item.get("name", "")),
            status=GiveawayStatus(str(item.get("status", GiveawayStatus.DRAFT))),
            created_at=str(item.get("created_at", "")),
        )


@dataclass(slots=True)
class Entry:
    entry_id: str
    giveaway_id: str
    platform: Platform
    external_user_id: str
    username: str
    method: EntryMethod
    tickets: int
    avatar_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_TEMPLATE: ClassVar[str] = "ENTRY#%s#%s#%s"
    SK_PREFIX: ClassVar[str] = "ENTRY#"

    @classmethod
    def key(
        cls,
        giveaway_id: str,
        platform: Platform,
        external_user_id: str,
        method: EntryMethod,
    ) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % giveaway_id,
            "sk": cls.SK_TEMPLATE % (platform.value, external_user_id, method.value),
        }

    @property
    def display(self) -> str:
        return f"{self.username}|{self.method.value}"

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(
            self.giveaway_id, self.platform, self.external_user_id, self.method
        )
        item.update(
            {
                "entry_id": self.entry_id,
                "giveaway_id": self.giveaway_id,
                "platform": self.platform.value,
                "external_user_id": self.external_user_id,
                "username": self.username,
                "method": self.method.value,
                "tickets": self.tickets,
                "metadata": self.metadata,
                "created_at": self.created_at,
            }
        )
        if self.avatar_url:
            item["avatar_url"] = self.avatar_url
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Entry:
        avatar = item.get("avatar_url")
        return cls(
            entry_id=str(item["entry_id"]),
            giveaway_id=str(item.get("giveaway_id", "")),
            platform=Platform(str(item["platform"])),
            external_user_id=str(item.get("external_user_id", "")),
            username=str(item.get("username", "")),
            method=EntryMethod(str(item["method"])),
            tickets=_int(item.get("tickets")),
            avatar_url=str(avatar) if avatar else None,
            metadata=_plain(item.get("metadata") or {}),
            created_at=str(item.get("created_at", "")),
        )


@dataclass(slots=True, frozen=True)
class TicketRange:
    entry_id: str
    display: str
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def audit_line(self) -> str:
        return f"{self.entry_id};{self.display};{self.start};{self.end}"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.entry_id,
            "display": self.display,
            "start": self.start,
            "end": self.end,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> TicketRange:
        return cls(
            entry_id=str(data["id"]),
            display=str(data.get("display", "")),
            start=_int(data.get("start")),
            end=_int(data.get("end")),
        )


@dataclass(slots=True)
class DrawRecord:
    record_id: str
    giveaway_id: str
    sequence: int
    winner_entry_id: str
    status: WinnerStatus
    ranges: list[TicketRange]
    total_tickets: int
    list_hash: str
    list_hash_algo: str
    random_payload: dict[str, Any]
    signature: str
    verification_url: str
    drawn_number: int
    verified: bool
    created_at: str = field(default_factory=utc_now_iso)

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_TEMPLATE: ClassVar[str] = "DRAW#%06d"
    SK_PREFIX: ClassVar[str] = "DRAW#"

    @classmethod
    def key(cls, giveaway_id: str, sequence: int) -> dict[str, str]:
        return {
            "pk": cls.PK_TEMPLATE % giveaway_id,
            "sk": cls.SK_TEMPLATE % sequence,
        }

    @property
    def winner_range(self) -> TicketRange:
        for ticket_range in self.ranges:
            if ticket_range.entry_id == self.winner_entry_id:
                return ticket_range
        raise LookupError(f"Winner {self.winner_entry_id} missing from ranges")

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.giveaway_id, self.sequence)
        item.update(
            {
                "record_id": self.record_id,
                "giveaway_id": self.giveaway_id,
                "sequence": self.sequence,
                "winner_entry_id": self.winner_entry_id,
                "status": self.status.value,
                "ranges": [r.to_dict() for r in self.ranges],
                "total_tickets": self.total_tickets,
                "list_hash": self.list_hash,
                "list_hash_algo": self.list_hash_algo,
                # Stored as text so provider floats never hit DynamoDB's Decimal rules.
                "random_payload": json.dumps(self.random_payload, sort_keys=True),
                "signature": self.signature,
                "verification_url": self.verification_url,
                "drawn_number": self.drawn_number,
                "verified": self.verified,
                "created_at": self.created_at,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> DrawRecord:
        raw_payload = item.get("random_payload") or "{}"
        payload = (
            json.loads(raw_payload)
            if isinstance(raw_payload, str)
            else _plain(raw_payload)
        )
        return cls(
            record_id=str(item["record_id"]),
            giveaway_id=str(item.get("giveaway_id", "")),
            sequence=_int(item.get("sequence")),
            winner_entry_id=str(item.get("winner_entry_id", "")),
            status=WinnerStatus(str(item.get("status", WinnerStatus.WINNER))),
            ranges=[
                TicketRange.from_dict(r)
                for r in item.get("ranges", [])  # type: ignore[union-attr]
            ],
            total_tickets=_int(item.get("total_tickets")),
            list_hash=str(item.get("list_hash", "")),
            list_hash_algo=str(item.get("list_hash_algo", "")),
            random_payload=payload,
            signature=str(item.get("signature", "")),
            verification_url=str(item.get("verification_url", "")),
            drawn_number=_int(item.get("drawn_number")),
            verified=bool(item.get("verified", False)),
            created_at=str(item.get("created_at", "")),
        )


@dataclass(slots=True)
class RoleTicketRule:
    """Role rule; ``giveaway_id`` set means a giveaway-scoped override."""

    owner_id: str
    platform: Platform | None
    role: Role
    tickets_per_unit: int
    giveaway_id: str | None = None

    GLOBAL_PK: ClassVar[str] = "ADMIN#%s"
    GLOBAL_SK: ClassVar[str] = "ROLE_RULE#%s#%s"
    GLOBAL_SK_PREFIX: ClassVar[str] = "ROLE_RULE#"
    OVERRIDE_PK: ClassVar[str] = "GIVEAWAY#%s"
    OVERRIDE_SK: ClassVar[str] = "ROLE_OVERRIDE#%s"
    OVERRIDE_SK_PREFIX: ClassVar[str] = "ROLE_OVERRIDE#"

    @classmethod
    def global_key(
        cls, admin_id: str, platform: Platform, role: Role
    ) -> dict[str, str]:
        return {
            "pk": cls.GLOBAL_PK % admin_id,
            "sk": cls.GLOBAL_SK % (platform.value, role.value),
        }

    @classmethod
    def override_key(cls, giveaway_id: str, role: Role) -> dict[str, str]:
        return {
            "pk": cls.OVERRIDE_PK % giveaway_id,
            "sk": cls.OVERRIDE_SK % role.value,
        }

    def to_item(self) -> dict[str, object]:
        if self.giveaway_id is not None:
            item: dict[str, object] = self.override_key(self.giveaway_id, self.role)
            item["giveaway_id"] = self.giveaway_id
        else:
            if self.platform is None:
                raise ValueError("Global role rules require a platform")
            item = self.global_key(self.owner_id, self.platform, self.role)
        item.update(
            {
                "owner_id": self.owner_id,
                "role": self.role.value,
                "tickets_per_unit": self.tickets_per_unit,
            }
        )
        if self.platform is not None:
            item["platform"] = self.platform.value
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> RoleTicketRule:
        platform_raw = item.get("platform")
        giveaway_raw = item.get("giveaway_id")
        return cls(
            owner_id=str(item.get("owner_id", "")),
            platform=Platform(str(platform_raw)) if platform_raw else None,
            role=Role(str(item["role"])),
            tickets_per_unit=_int(item.get("tickets_per_unit")),
            giveaway_id=str(giveaway_raw) if giveaway_raw else None,
        )


@dataclass(slots=True)
class DonationTicketRule:
    """Donation rule; ``giveaway_id`` set means a giveaway-scoped override."""

    owner_id: str
    platform: Platform
    unit: DonationUnit
    unit_size: int
    tickets_per_unit_size: int
    giveaway_id: str | None = None

    GLOBAL_PK: ClassVar[str] = "ADMIN#%s"
    GLOBAL_SK: ClassVar[str] = "DONATION_RULE#%s#%s"
    GLOBAL_SK_PREFIX: ClassVar[str] = "DONATION_RULE#"
    OVERRIDE_PK: ClassVar[str] = "GIVEAWAY#%s"
    OVERRIDE_SK: ClassVar[str] = "DONATION_OVERRIDE#%s#%s"
    OVERRIDE_SK_PREFIX: ClassVar[str] = "DONATION_OVERRIDE#"

    @classmethod
    def global_key(
        cls, admin_id: str, platform: Platform, unit: DonationUnit
    ) -> dict[str, str]:
        return {
            "pk": cls.GLOBAL_PK % admin_id,
            "sk": cls.GLOBAL_SK % (platform.value, unit.value),
        }

    @classmethod
    def override_key(
        cls, giveaway_id: str, platform: Platform, unit: DonationUnit
    ) -> dict[str, str]:
        return {
            "pk": cls.OVERRIDE_PK % giveaway_id,
            "sk": cls.OVERRIDE_SK % (platform.value, unit.value),
        }

    def tickets_for(self, total_amount: int) -> int:
        if self.unit_size <= 0 or total_amount <= 0:
            return 0
        return (int(total_amount) // self.unit_size) * self.tickets_per_unit_size

    def to_item(self) -> dict[str, object]:
        if self.giveaway_id is not None:
            item: dict[str, object] = self.override_key(
                self.giveaway_id, self.platform, self.unit
            )
            item["giveaway_id"] = self.giveaway_id
        else:
            item = self.global_key(self.owner_id, self.platform, self.unit)
        item.update(
            {
                "owner_id": self.owner_id,
                "platform": self.platform.value,
                "unit": self.unit.value,
                "unit_size": self.unit_size,
                "tickets_per_unit_size": self.tickets_per_unit_size,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> DonationTicketRule:
        giveaway_raw = item.get("giveaway_id")
        return cls(
            owner_id=str(item.get("owner_id", "")),
            platform=Platform(str(item["platform"])),
            unit=DonationUnit(str(item["unit"])),
            unit_size=_int(item.get("unit_size")),
            tickets_per_unit_size=_int(item.get("tickets_per_unit_size")),
            giveaway_id=str(giveaway_raw) if giveaway_raw else None,
        )


@dataclass(slots=True)
class DrawResult:
    """Audit payload returned to the operator after a draw or repick."""

    giveaway_id: str
    record_id: str
    sequence: int
    total_tickets: int
    list_hash_algo: str
    list_hash: str
    drawn_number: int
    random_payload: dict[str, Any]
    signature: str
    verified: bool
    verification_url: str
    winner: TicketRange
    repick: bool
    created_at: str
    source: str = "random.org/signed"

    @classmethod
    def from_record(cls, record: DrawRecord, *, source: str) -> DrawResult:
        return cls(
            giveaway_id=record.giveaway_id,
            record_id=record.record_id,
            sequence=record.sequence,
            total_tickets=record.total_tickets,
            list_hash_algo=record.list_hash_algo,
            list_hash=record.list_hash,
            drawn_number=record.drawn_number,
            random_payload=record.random_payload,
            signature=record.signature,
            verified=record.verified,
            verification_url=record.verification_url,
            winner=record.winner_range,
            repick=record.sequence > 1,
            created_at=record.created_at,
            source=source,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "ticket": self.giveaway_id,
            "totalTickets": self.total_tickets,
            "listHashAlgo": self.list_hash_algo,
            "listHash": self.list_hash,
            "draw": {
                "number": self.drawn_number,
                "source": self.source,
                "random": self.random_payload,
                "signature": self.signature,
                "verified": self.verified,
                "verificationUrl": self.verification_url,
            },
            "winner": {
                **self.winner.to_dict(),
                "index": self.drawn_number,
            },
            "repick": self.repick,
            "createdAt": self.created_at,
        }


def ranges_total(ranges: Iterable[TicketRange]) -> int:
    return sum(r.size for r in ranges)


__all__ = [
    "ISO_FORMAT",
    "utc_now_iso",
    "parse_iso",
    "GiveawayStatus",
    "WinnerStatus",
    "DonationWindow",
    "DonationConfig",
    "Giveaway",
    "AdminGiveawayRef",
    "Entry",
    "TicketRange",
    "DrawRecord",
    "RoleTicketRule",
    "DonationTicketRule",
    "DrawResult",
    "ranges_total",
]
