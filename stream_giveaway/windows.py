from __future__ import annotations

from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from .models import DonationWindow

DEFAULT_TIMEZONE = "America/Sao_Paulo"


def donation_window_range(
    window: DonationWindow,
    now: datetime | None = None,
    tz: tzinfo | str = DEFAULT_TIMEZONE,
) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` local-time bounds of the window containing ``now``.

    Daily windows start at local midnight, weekly windows on Monday 00:00 and
    monthly windows on the first of the month.
    """
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    local_now = (now or datetime.now(zone)).astimezone(zone)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    if window is DonationWindow.DAILY:
        start = midnight
        end = _local_midnight(start.date() + timedelta(days=1), zone)
    elif window is DonationWindow.WEEKLY:
        start = _local_midnight(
            midnight.date() - timedelta(days=midnight.weekday()), zone
        )
        end = _local_midnight(start.date() + timedelta(days=7), zone)
    else:
        start = midnight.replace(day=1)
        if start.month == 12:
            next_first = start.date().replace(year=start.year + 1, month=1)
        else:
            next_first = start.date().replace(month=start.month + 1)
        end = _local_midnight(next_first, zone)
    return start, end


def _local_midnight(day, zone: tzinfo) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=zone)


def twitch_started_at(
    window: DonationWindow,
    now: datetime | None = None,
    tz: tzinfo | str = DEFAULT_TIMEZONE,
) -> datetime:
    """Return the ``started_at`` that makes Helix report the window containing ``now``.

    The bits leaderboard answers with the period before ``started_at``, so the
    value points one period ahead: the next local day at 06:00 UTC (03:00 in
    Sao Paulo), or the next Monday or first of next month at 00:00 UTC.
    """
    _, end = donation_window_range(window, now, tz)
    hour = 6 if window is DonationWindow.DAILY else 0
    return datetime(end.year, end.month, end.day, hour, tzinfo=UTC)


def twitch_leaderboard_period(window: DonationWindow) -> str:
    return {
        DonationWindow.DAILY: "day",
        DonationWindow.WEEKLY: "week",
        DonationWindow.MONTHLY: "month",
    }[window]


__all__ = [
    "DEFAULT_TIMEZONE",
    "donation_window_range",
    "twitch_leaderboard_period",
    "twitch_started_at",
]
