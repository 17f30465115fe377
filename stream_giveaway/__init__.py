"""Stream giveaway entry accumulation and verifiable draw engine."""

from .accumulator import ChatEvent, DonationSignal, EntryAccumulator
from .config import EngineConfig
from .dedup import DedupLedger
from .draw import (
    DrawEngine,
    audit_lines,
    build_ticket_ranges,
    compute_list_hash,
    find_winner,
)
from .errors import (
    ConfigurationError,
    DrawInProgressError,
    GiveawayError,
    GiveawayNotOpenError,
    InsufficientParticipantsError,
    NotFoundError,
    OpenGiveawayConflictError,
    RandomnessProviderError,
    UpstreamDegradation,
    ValidationError,
)
from .keyword_index import IndexEntry, KeywordIndex
from .lifecycle import GiveawayLifecycle
from .models import (
    DonationConfig,
    DonationTicketRule,
    DonationWindow,
    DrawRecord,
    DrawResult,
    Entry,
    Giveaway,
    GiveawayStatus,
    RoleTicketRule,
    TicketRange,
    WinnerStatus,
    utc_now_iso,
)
from .roles import DonationUnit, EntryMethod, Platform, Role
from .storage import GiveawayStorage
from .tickets import TicketRuleResolver

__all__ = [
    "ChatEvent",
    "DonationSignal",
    "EntryAccumulator",
    "EngineConfig",
    "DedupLedger",
    "DrawEngine",
    "audit_lines",
    "build_ticket_ranges",
    "compute_list_hash",
    "find_winner",
    "ConfigurationError",
    "DrawInProgressError",
    "GiveawayError",
    "GiveawayNotOpenError",
    "InsufficientParticipantsError",
    "NotFoundError",
    "OpenGiveawayConflictError",
    "RandomnessProviderError",
    "UpstreamDegradation",
    "ValidationError",
    "IndexEntry",
    "KeywordIndex",
    "GiveawayLifecycle",
    "DonationConfig",
    "DonationTicketRule",
    "DonationWindow",
    "DrawRecord",
    "DrawResult",
    "Entry",
    "Giveaway",
    "GiveawayStatus",
    "RoleTicketRule",
    "TicketRange",
    "WinnerStatus",
    "utc_now_iso",
    "DonationUnit",
    "EntryMethod",
    "Platform",
    "Role",
    "GiveawayStorage",
    "TicketRuleResolver",
]
