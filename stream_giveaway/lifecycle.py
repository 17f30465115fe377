"""Giveaway create/update/delete and status transitions."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Final

from .accounts import ConnectedAccountStore
from .errors import NotFoundError, OpenGiveawayConflictError, ValidationError
from .keyword_index import KeywordIndex
from .models import (
    AdminGiveawayRef,
    DonationConfig,
    DonationTicketRule,
    Giveaway,
    GiveawayStatus,
    RoleTicketRule,
    utc_now_iso,
)
from .roles import DonationUnit, Platform, Role, normalize_role
from .storage import GiveawayStorage
from .validation import (
    normalize_keyword,
    parse_donation_configs,
    parse_donation_unit,
    parse_platform,
    parse_platforms,
    parse_role,
    parse_roles,
    validate_donation_pair,
    validate_giveaway_name,
    validate_tickets_per_unit,
    validate_unit_size,
)

log: Final = logging.getLogger("giveaway-lifecycle")

DonationOverrideInput = DonationTicketRule | Mapping[str, object]


def _parse_status(raw: str | GiveawayStatus) -> GiveawayStatus:
    try:
        return GiveawayStatus(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid status: {raw}") from exc


class GiveawayLifecycle:
    """Operator-facing giveaway management.

    At most one giveaway per admin is OPEN. Opening a second one is rejected,
    never resolved by closing the first; the per-admin open slot item makes the
    check atomic. Entering OPEN publishes the keyword index and leaving it tears
    the index down.
    """

    def __init__(
        self,
        storage: GiveawayStorage,
        index: KeywordIndex,
        accounts: ConnectedAccountStore,
    ) -> None:
        self._storage = storage
        self._index = index
        self._accounts = accounts

    # ----- Queries -----
    def get(self, admin_id: str, giveaway_id: str) -> Giveaway:
        giveaway = self._storage.get_giveaway(giveaway_id)
        if giveaway is None or giveaway.admin_id != admin_id:
            raise NotFoundError(f"Giveaway {giveaway_id} not found")
        return giveaway

    def list(self, admin_id: str) -> list[AdminGiveawayRef]:
        return self._storage.list_giveaways(admin_id)

    # ----- Mutations -----
    def create(
        self,
        admin_id: str,
        name: str,
        keyword: str,
        platforms: Iterable[str | Platform],
        allowed_roles: Iterable[str | Role] = (),
        donation_configs: Iterable[DonationConfig | dict[str, object]] = (),
        status: str | GiveawayStatus = GiveawayStatus.DRAFT,
        ticket_overrides: Mapping[str | Role, int] | None = None,
        donation_overrides: Iterable[DonationOverrideInput] = (),
    ) -> Giveaway:
        parsed_platforms = parse_platforms(platforms)
        giveaway = Giveaway(
            giveaway_id=uuid.uuid4().hex,
            admin_id=admin_id,
            name=validate_giveaway_name(name),
            keyword=normalize_keyword(keyword),
            status=_parse_status(status),
            platforms=parsed_platforms,
            allowed_roles=parse_roles(allowed_roles, parsed_platforms),
            donation_configs=parse_donation_configs(donation_configs, parsed_platforms),
        )
        if giveaway.status is GiveawayStatus.DONE:
            raise ValidationError("A giveaway cannot be created as DONE")
        role_rules = self._role_overrides(giveaway, ticket_overrides or {})
        donation_rules = self._donation_overrides(giveaway, donation_overrides)

        opening = giveaway.status is GiveawayStatus.OPEN
        if opening:
            self._claim_open_slot(giveaway)

        try:
            self._storage.save_giveaway(giveaway)
            for rule in role_rules:
                self._storage.save_role_rule(rule)
            for rule in donation_rules:
                self._storage.save_donation_rule(rule)
            if opening:
                self._publish(giveaway)
        except Exception:
            if opening:
                self._rollback_open(giveaway, None)
            raise
        log.info(
            "Created giveaway %s (%s) for admin %s as %s",
            giveaway.giveaway_id,
            giveaway.name,
            admin_id,
            giveaway.status.value,
        )
        return giveaway

    def update(
        self,
        admin_id: str,
        giveaway_id: str,
        *,
        name: str | None = None,
        keyword: str | None = None,
        platforms: Iterable[str | Platform] | None = None,
        allowed_roles: Iterable[str | Role] | None = None,
        donation_configs: Iterable[DonationConfig | dict[str, object]] | None = None,
        status: str | GiveawayStatus | None = None,
        ticket_overrides: Mapping[str | Role, int] | None = None,
        donation_overrides: Iterable[DonationOverrideInput] | None = None,
    ) -> Giveaway:
        current = self.get(admin_id, giveaway_id)
        new_platforms = (
            parse_platforms(platforms) if platforms is not None else list(current.platforms)
        )
        updated = Giveaway(
            giveaway_id=current.giveaway_id,
            admin_id=current.admin_id,
            name=validate_giveaway_name(name) if name is not None else current.name,
            keyword=normalize_keyword(keyword if keyword is not None else current.keyword),
            status=_parse_status(status) if status is not None else current.status,
            platforms=new_platforms,
            allowed_roles=parse_roles(
                allowed_roles if allowed_roles is not None else current.allowed_roles,
                new_platforms,
            ),
            donation_configs=parse_donation_configs(
                donation_configs
                if donation_configs is not None
                else current.donation_configs,
                new_platforms,
            ),
            created_at=current.created_at,
            updated_at=utc_now_iso(),
        )
        if (
            current.status is GiveawayStatus.DONE
            and updated.status is not GiveawayStatus.DONE
        ):
            raise ValidationError("A finished giveaway cannot be reopened")
        role_rules = (
            self._role_overrides(updated, ticket_overrides)
            if ticket_overrides is not None
            else []
        )
        donation_rules = (
            self._donation_overrides(updated, donation_overrides)
            if donation_overrides is not None
            else []
        )

        was_open = current.status is GiveawayStatus.OPEN
        now_open = updated.status is GiveawayStatus.OPEN
        opening = now_open and not was_open
        if opening:
            self._claim_open_slot(updated)

        try:
            if was_open and (not now_open or self._index_changed(current, updated)):
                self._index.remove(
                    current,
                    self._accounts.channel_ids(admin_id),
                    republishing=now_open,
                )

            self._storage.save_giveaway(updated)
            for rule in role_rules:
                self._storage.save_role_rule(rule)
            for rule in donation_rules:
                self._storage.save_donation_rule(rule)

            if was_open and not now_open:
                self._storage.release_open_slot(admin_id, giveaway_id)
            if now_open and (opening or self._index_changed(current, updated)):
                self._publish(updated)
        except Exception:
            if opening:
                self._rollback_open(updated, current)
            raise
        if current.status is not updated.status:
            log.info(
                "Giveaway %s moved %s -> %s",
                giveaway_id,
                current.status.value,
                updated.status.value,
            )
        return updated

    def set_status(
        self, admin_id: str, giveaway_id: str, status: str | GiveawayStatus
    ) -> Giveaway:
        return self.update(admin_id, giveaway_id, status=status)

    def delete(self, admin_id: str, giveaway_id: str) -> int:
        giveaway = self.get(admin_id, giveaway_id)
        self._index.remove(giveaway, self._accounts.channel_ids(admin_id))
        removed = self._storage.delete_giveaway(giveaway)
        log.info("Deleted giveaway %s and %s child item(s)", giveaway_id, removed)
        return removed

    def mark_done(self, giveaway: Giveaway) -> Giveaway:
        """Close a giveaway after its first draw."""
        if giveaway.status is GiveawayStatus.DONE:
            return giveaway
        was_open = giveaway.status is GiveawayStatus.OPEN
        giveaway.status = GiveawayStatus.DONE
        giveaway.updated_at = utc_now_iso()
        self._storage.save_giveaway(giveaway)
        if was_open:
            self._storage.release_open_slot(giveaway.admin_id, giveaway.giveaway_id)
            self._index.remove(giveaway, self._accounts.channel_ids(giveaway.admin_id))
        log.info("Giveaway %s is DONE", giveaway.giveaway_id)
        return giveaway

    # ----- Ticket rules -----
    def set_role_override(
        self, admin_id: str, giveaway_id: str, role: str | Role, tickets_per_unit: int
    ) -> RoleTicketRule:
        giveaway = self.get(admin_id, giveaway_id)
        (rule,) = self._role_overrides(giveaway, {role: tickets_per_unit})
        self._storage.save_role_rule(rule)
        return rule

    def remove_role_override(
        self, admin_id: str, giveaway_id: str, role: str | Role
    ) -> None:
        self.get(admin_id, giveaway_id)
        self._storage.delete_role_override(giveaway_id, parse_role(role))

    def set_donation_override(
        self,
        admin_id: str,
        giveaway_id: str,
        platform: str | Platform,
        unit: str | DonationUnit,
        unit_size: int,
        tickets_per_unit_size: int,
    ) -> DonationTicketRule:
        giveaway = self.get(admin_id, giveaway_id)
        (rule,) = self._donation_overrides(
            giveaway,
            [
                {
                    "platform": platform,
                    "unit": unit,
                    "unit_size": unit_size,
                    "tickets_per_unit_size": tickets_per_unit_size,
                }
            ],
        )
        self._storage.save_donation_rule(rule)
        return rule

    def remove_donation_override(
        self,
        admin_id: str,
        giveaway_id: str,
        platform: str | Platform,
        unit: str | DonationUnit,
    ) -> None:
        self.get(admin_id, giveaway_id)
        self._storage.delete_donation_override(
            giveaway_id, parse_platform(platform), parse_donation_unit(unit)
        )

    def set_global_role_rule(
        self,
        admin_id: str,
        platform: str | Platform,
        role: str | Role,
        tickets_per_unit: int,
    ) -> RoleTicketRule:
        parsed_platform = parse_platform(platform)
        parsed_role = parse_role(role)
        if parsed_role.platform not in (None, parsed_platform):
            raise ValidationError(
                f"Role {parsed_role.value} does not belong to {parsed_platform.value}"
            )
        rule = RoleTicketRule(
            owner_id=admin_id,
            platform=parsed_platform,
            role=normalize_role(parsed_role),
            tickets_per_unit=validate_tickets_per_unit(tickets_per_unit),
        )
        self._storage.save_role_rule(rule)
        return rule

    def set_global_donation_rule(
        self,
        admin_id: str,
        platform: str | Platform,
        unit: str | DonationUnit,
        unit_size: int,
        tickets_per_unit_size: int,
    ) -> DonationTicketRule:
        parsed_platform = parse_platform(platform)
        parsed_unit = parse_donation_unit(unit)
        validate_donation_pair(parsed_platform, parsed_unit)
        rule = DonationTicketRule(
            owner_id=admin_id,
            platform=parsed_platform,
            unit=parsed_unit,
            unit_size=validate_unit_size(unit_size),
            tickets_per_unit_size=validate_tickets_per_unit(tickets_per_unit_size),
        )
        self._storage.save_donation_rule(rule)
        return rule

    # ----- Helpers -----
    def _claim_open_slot(self, giveaway: Giveaway) -> None:
        if not self._storage.claim_open_slot(giveaway.admin_id, giveaway.giveaway_id):
            open_id = self._storage.get_open_giveaway_id(giveaway.admin_id)
            raise OpenGiveawayConflictError(
                f"Giveaway {open_id} is already OPEN; close it before opening another"
            )

    def _rollback_open(self, giveaway: Giveaway, previous: Giveaway | None) -> None:
        """Undo a failed transition to OPEN so the admin's slot is free again.

        ``previous`` is the stored record before an update, or ``None`` when the
        giveaway was being created.
        """
        log.warning(
            "Opening giveaway %s failed; releasing the OPEN slot for admin %s",
            giveaway.giveaway_id,
            giveaway.admin_id,
        )
        try:
            self._storage.release_open_slot(giveaway.admin_id, giveaway.giveaway_id)
            self._index.remove(giveaway, self._accounts.channel_ids(giveaway.admin_id))
            if previous is None:
                self._storage.delete_giveaway(giveaway)
            else:
                self._storage.save_giveaway(previous)
        except Exception:  # pylint: disable=broad-except
            log.exception("Rollback of giveaway %s failed", giveaway.giveaway_id)

    def _publish(self, giveaway: Giveaway) -> None:
        self._index.publish(giveaway, self._accounts.channel_ids(giveaway.admin_id))

    @staticmethod
    def _index_changed(before: Giveaway, after: Giveaway) -> bool:
        return (
            before.keyword != after.keyword
            or before.platforms != after.platforms
            or before.allowed_roles != after.allowed_roles
            or before.donation_configs != after.donation_configs
        )

    @staticmethod
    def _role_overrides(
        giveaway: Giveaway, overrides: Mapping[str | Role, int]
    ) -> list[RoleTicketRule]:
        rules: list[RoleTicketRule] = []
        for raw_role, tickets in overrides.items():
            (role,) = parse_roles([raw_role], giveaway.platforms)
            rules.append(
                RoleTicketRule(
                    owner_id=giveaway.admin_id,
                    platform=role.platform,
                    role=role,
                    tickets_per_unit=validate_tickets_per_unit(tickets),
                    giveaway_id=giveaway.giveaway_id,
                )
            )
        return rules

    @staticmethod
    def _donation_overrides(
        giveaway: Giveaway, overrides: Iterable[DonationOverrideInput]
    ) -> list[DonationTicketRule]:
        rules: list[DonationTicketRule] = []
        for raw in overrides:
            if isinstance(raw, DonationTicketRule):
                platform, unit = raw.platform, raw.unit
                unit_size, tickets = raw.unit_size, raw.tickets_per_unit_size
            else:
                platform = parse_platform(str(raw.get("platform", "")))
                unit = parse_donation_unit(str(raw.get("unit", "")))
                unit_size = raw.get("unit_size")  # type: ignore[assignment]
                tickets = raw.get("tickets_per_unit_size")  # type: ignore[assignment]
            if platform not in giveaway.platforms:
                raise ValidationError(
                    f"Donation override platform {platform.value} is not enabled"
                )
            validate_donation_pair(platform, unit)
            rules.append(
                DonationTicketRule(
                    owner_id=giveaway.admin_id,
                    platform=platform,
                    unit=unit,
                    unit_size=validate_unit_size(unit_size),  # type: ignore[arg-type]
                    tickets_per_unit_size=validate_tickets_per_unit(tickets),  # type: ignore[arg-type]
                    giveaway_id=giveaway.giveaway_id,
                )
            )
        return rules


__all__ = ["GiveawayLifecycle"]
