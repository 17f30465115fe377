from __future__ import annotations

import logging
from typing import Final

from .roles import DonationUnit, Platform, Role, normalize_role
from .storage import GiveawayStorage

log: Final = logging.getLogger("giveaway-tickets")


class TicketRuleResolver:
    """Resolve ticket counts: giveaway override, then admin global rule, then 0."""

    def __init__(self, storage: GiveawayStorage) -> None:
        self._storage = storage

    def resolve_role_tickets(
        self, giveaway_id: str, admin_id: str, platform: Platform, role: Role
    ) -> int:
        override = self._storage.get_role_override(giveaway_id, role)
        if override is not None:
            log.debug(
                "Role override for %s in giveaway %s: %s",
                role.value,
                giveaway_id,
                override.tickets_per_unit,
            )
            return max(override.tickets_per_unit, 0)

        rule = self._storage.get_global_role_rule(
            admin_id, platform, normalize_role(role)
        )
        if rule is not None:
            return max(rule.tickets_per_unit, 0)
        return 0

    def resolve_donation_tickets(
        self,
        giveaway_id: str,
        admin_id: str,
        platform: Platform,
        unit: DonationUnit,
        total_amount: int,
    ) -> int:
        if total_amount <= 0:
            return 0
        rule = self._storage.get_donation_override(giveaway_id, platform, unit)
        if rule is None:
            rule = self._storage.get_global_donation_rule(admin_id, platform, unit)
        if rule is None:
            return 0
        return max(rule.tickets_for(total_amount), 0)


__all__ = ["TicketRuleResolver"]
