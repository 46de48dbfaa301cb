from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .models import Paste


MS_PER_DAY = 86_400_000


class OutcomeStatus(str, enum.Enum):
    MISSING = "missing"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    OK = "ok"


@dataclass(frozen=True)
class ViewOutcome:
    """
    Result of a single consume attempt.

    Only an ``OK`` outcome carries content; the other three statuses are
    terminal and carry nothing.
    """

    status: OutcomeStatus
    content: Optional[str] = None
    remaining_views: Optional[int] = None
    expires_at_ms: Optional[int] = None

    @classmethod
    def missing(cls) -> "ViewOutcome":
        return cls(OutcomeStatus.MISSING)

    @classmethod
    def expired(cls) -> "ViewOutcome":
        return cls(OutcomeStatus.EXPIRED)

    @classmethod
    def exhausted(cls) -> "ViewOutcome":
        return cls(OutcomeStatus.EXHAUSTED)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def expires_at(self) -> Optional[str]:
        if self.expires_at_ms is None:
            return None
        return format_iso_ms(self.expires_at_ms)


def expires_at_ms(created_at_ms: int, ttl_seconds: Optional[int]) -> Optional[int]:
    """Return the expiry instant in ms, or ``None`` when there is no TTL."""
    if ttl_seconds is None:
        return None
    return created_at_ms + ttl_seconds * 1000


def remaining_views(max_views: Optional[int], views_used: int) -> Optional[int]:
    """Return views left, or ``None`` when the view budget is unlimited."""
    if max_views is None:
        return None
    return max_views - views_used


def is_expired(paste: Paste, now_ms: int) -> bool:
    # The expiry instant itself is already unavailable.
    expiry = expires_at_ms(paste.created_at_ms, paste.ttl_seconds)
    return expiry is not None and now_ms >= expiry


def is_exhausted(paste: Paste) -> bool:
    return paste.max_views is not None and paste.views_used >= paste.max_views


def classify_unavailable(paste: Optional[Paste], now_ms: int) -> ViewOutcome:
    """
    Name the reason a consume attempt was refused.

    Only meaningful after the conditional update matched no row. Expiry is
    checked before exhaustion, mirroring the order of the update's guards.
    A record that is neither expired nor exhausted did not exist yet when the
    update ran (a concurrent create committed in between), so it is missing.
    """

    if paste is None:
        return ViewOutcome.missing()
    if is_expired(paste, now_ms):
        return ViewOutcome.expired()
    if is_exhausted(paste):
        return ViewOutcome.exhausted()
    return ViewOutcome.missing()


def _civil_from_days(days: int) -> tuple[int, int, int]:
    # Proleptic Gregorian date for a day count relative to 1970-01-01.
    z = days + 719468
    era = z // 146097
    doe = z - era * 146097
    yoe = (doe - doe // 1460 + doe // 36524 - doe // 146096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + 3 if mp < 10 else mp - 9
    year = yoe + era * 400 + (1 if month <= 2 else 0)
    return year, month, day


def format_iso_ms(instant_ms: int) -> str:
    """
    Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Years outside 0..9999 use the expanded ``+YYYYYY`` / ``-YYYYYY`` form,
    so every integer instant has a rendering.
    """
    days, ms_of_day = divmod(instant_ms, MS_PER_DAY)
    year, month, day = _civil_from_days(days)
    seconds, millis = divmod(ms_of_day, 1000)
    minutes, second = divmod(seconds, 60)
    hour, minute = divmod(minutes, 60)

    if 0 <= year <= 9999:
        year_text = f"{year:04d}"
    else:
        year_text = f"{'+' if year > 0 else '-'}{abs(year):06d}"
    return (
        f"{year_text}-{month:02d}-{day:02d}"
        f"T{hour:02d}:{minute:02d}:{second:02d}.{millis:03d}Z"
    )
