"""Verifiable weighted draw over giveaway entries.

Each entry owns a contiguous block of ticket indexes. The ordered blocks are
rendered as ``id;display;start;end`` lines and hashed so anyone can rebuild the
exact population; a signed random integer from the randomness provider then
selects the block containing the drawn index.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Final

from .errors import (
    DrawInProgressError,
    InsufficientParticipantsError,
    NotFoundError,
    RandomnessProviderError,
    ValidationError,
)
from .lifecycle import GiveawayLifecycle
from .models import (
    DrawRecord,
    DrawResult,
    Entry,
    Giveaway,
    GiveawayStatus,
    TicketRange,
    WinnerStatus,
    ranges_total,
)
from .randomness import RandomnessProvider
from .storage import GiveawayStorage
from .validation import validate_hash_algo

log: Final = logging.getLogger("giveaway-draw")

MIN_PARTICIPANTS = 2


def build_ticket_ranges(entries: Iterable[Entry]) -> list[TicketRange]:
    ranges: list[TicketRange] = []
    running_start = 0
    for entry in entries:
        if entry.tickets <= 0:
            continue
        ranges.append(
            TicketRange(
                entry_id=entry.entry_id,
                display=entry.display,
                start=running_start,
                end=running_start + entry.tickets - 1,
            )
        )
        running_start += entry.tickets
    return ranges


def audit_lines(ranges: Iterable[TicketRange]) -> str:
    return "\n".join(r.audit_line() for r in ranges)


def compute_list_hash(text: str, algo: str = "SHA256") -> str:
    algorithm = validate_hash_algo(algo)
    digest = hashlib.md5 if algorithm == "MD5" else hashlib.sha256
    return digest(text.encode("utf-8")).hexdigest()


def find_winner(ranges: Sequence[TicketRange], index: int) -> TicketRange:
    left = 0
    right = len(ranges) - 1
    while left <= right:
        mid = (left + right) // 2
        candidate = ranges[mid]
        if candidate.contains(index):
            return candidate
        if index < candidate.start:
            right = mid - 1
        else:
            left = mid + 1
    raise ValueError(f"Could not find winner for ticket index {index}")


class DrawEngine:
    def __init__(
        self,
        storage: GiveawayStorage,
        randomness: RandomnessProvider,
        lifecycle: GiveawayLifecycle,
        *,
        hash_algo: str = "SHA256",
        lock_seconds: int = 120,
    ) -> None:
        self._storage = storage
        self._randomness = randomness
        self._lifecycle = lifecycle
        self._hash_algo = validate_hash_algo(hash_algo)
        self._lock_seconds = lock_seconds

    async def draw(self, giveaway_id: str, *, admin_id: str | None = None) -> DrawResult:
        """Draw a winner; on a giveaway that already has one this is a repick."""
        return await self._locked(giveaway_id, admin_id, require_winner=False)

    async def repick(
        self, giveaway_id: str, *, admin_id: str | None = None
    ) -> DrawResult:
        return await self._locked(giveaway_id, admin_id, require_winner=True)

    async def _locked(
        self, giveaway_id: str, admin_id: str | None, *, require_winner: bool
    ) -> DrawResult:
        self._load(giveaway_id, admin_id)
        token = self._storage.acquire_draw_lock(giveaway_id, self._lock_seconds)
        if token is None:
            raise DrawInProgressError(f"A draw for giveaway {giveaway_id} is in progress")
        try:
            return await self._run(giveaway_id, admin_id, require_winner=require_winner)
        finally:
            self._storage.release_draw_lock(giveaway_id, token)

    def _load(self, giveaway_id: str, admin_id: str | None) -> Giveaway:
        if admin_id is not None:
            return self._lifecycle.get(admin_id, giveaway_id)
        giveaway = self._storage.get_giveaway(giveaway_id)
        if giveaway is None:
            raise NotFoundError(f"Giveaway {giveaway_id} not found")
        return giveaway

    async def _run(
        self, giveaway_id: str, admin_id: str | None, *, require_winner: bool
    ) -> DrawResult:
        giveaway = self._load(giveaway_id, admin_id)
        if giveaway.status not in (GiveawayStatus.OPEN, GiveawayStatus.DONE):
            raise ValidationError(
                f"Giveaway {giveaway_id} is {giveaway.status.value}; open it before drawing"
            )

        records = self._storage.list_draw_records(giveaway_id)
        current = next(
            (r for r in reversed(records) if r.status is WinnerStatus.WINNER), None
        )
        if require_winner and (
            current is None or giveaway.status is not GiveawayStatus.DONE
        ):
            raise ValidationError(f"Giveaway {giveaway_id} has no winner to repick")

        excluded = {
            r.winner_entry_id for r in records if r.status is WinnerStatus.REPICK
        }
        if current is not None:
            excluded.add(current.winner_entry_id)
        eligible = [
            entry
            for entry in self._storage.list_entries(giveaway_id)
            if entry.entry_id not in excluded and entry.tickets > 0
        ]
        if len(eligible) < MIN_PARTICIPANTS:
            raise InsufficientParticipantsError(
                f"Cannot draw giveaway {giveaway_id}: need at least "
                f"{MIN_PARTICIPANTS} eligible participants, found {len(eligible)}"
            )

        ranges = build_ticket_ranges(eligible)
        total = ranges_total(ranges)
        list_hash = compute_list_hash(audit_lines(ranges), self._hash_algo)
        user_data = giveaway.name
        if current is not None:
            user_data = f"{giveaway.name} - Repick {len(records)}"

        signed = await asyncio.to_thread(self._randomness.generate, total, user_data)
        drawn = signed.value
        if not 0 <= drawn < total:
            raise RandomnessProviderError(
                f"Provider returned {drawn} outside [0, {total - 1}]"
            )
        try:
            verified = await asyncio.to_thread(
                self._randomness.verify, signed.random, signed.signature
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Signature verification raised for %s: %s", giveaway_id, exc)
            verified = False
        if not verified:
            log.warning(
                "AuditIntegrityWarning: signature for giveaway %s draw %s did not verify",
                giveaway_id,
                len(records) + 1,
            )

        winner = find_winner(ranges, drawn)
        if current is not None:
            self._storage.mark_draw_repicked(current)
        record = DrawRecord(
            record_id=uuid.uuid4().hex,
            giveaway_id=giveaway_id,
            sequence=len(records) + 1,
            winner_entry_id=winner.entry_id,
            status=WinnerStatus.WINNER,
            ranges=ranges,
            total_tickets=total,
            list_hash=list_hash,
            list_hash_algo=self._hash_algo,
            random_payload=signed.random,
            signature=signed.signature,
            verification_url=self._randomness.verification_url(
                signed.random, signed.signature
            ),
            drawn_number=drawn,
            verified=verified,
        )
        self._storage.save_draw_record(record)
        if giveaway.status is GiveawayStatus.OPEN:
            self._lifecycle.mark_done(giveaway)

        log.info(
            "Giveaway %s draw %s: ticket %s of %s -> %s (verified=%s)",
            giveaway_id,
            record.sequence,
            drawn,
            total,
            winner.display,
            verified,
        )
        return DrawResult.from_record(record, source=self._randomness.source)

    def history(self, giveaway_id: str, *, admin_id: str | None = None) -> list[DrawRecord]:
        self._load(giveaway_id, admin_id)
        return self._storage.list_draw_records(giveaway_id)


__all__ = [
    "DrawEngine",
    "MIN_PARTICIPANTS",
    "audit_lines",
    "build_ticket_ranges",
    "compute_list_hash",
    "find_winner",
]
