from __future__ import annotations


class GiveawayError(Exception):
    """Base exception for giveaway engine failures."""


class ConfigurationError(GiveawayError):
    """Raised when required configuration (credentials, algorithms) is missing or invalid."""


class ValidationError(GiveawayError, ValueError):
    """Raised when a request is rejected before any state is mutated."""


class GiveawayNotOpenError(ValidationError):
    """Raised when entries are submitted to a giveaway that is not OPEN."""


class OpenGiveawayConflictError(ValidationError):
    """Raised when an admin already has an OPEN giveaway."""


class InsufficientParticipantsError(ValidationError):
    """Raised when fewer than two eligible participants remain for a draw."""


class NotFoundError(GiveawayError, LookupError):
    """Raised when a giveaway is missing or not owned by the caller."""


class UpstreamDegradation(GiveawayError):
    """Raised by platform clients on rate limits, timeouts or 5xx responses."""


class RandomnessProviderError(GiveawayError):
    """Raised when the signed randomness provider cannot produce a number."""


class DrawInProgressError(GiveawayError):
    """Raised when another draw for the same giveaway holds the lock."""


__all__ = [
    "GiveawayError",
    "ConfigurationError",
    "ValidationError",
    "GiveawayNotOpenError",
    "OpenGiveawayConflictError",
    "InsufficientParticipantsError",
    "NotFoundError",
    "UpstreamDegradation",
    "RandomnessProviderError",
    "DrawInProgressError",
]
