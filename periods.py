from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from config import get_settings

MonthLabeler = Callable[[int, int], str]

MONTH_ABBREVIATIONS: dict[str, tuple[str, ...]] = {
    "es": (
        "ene", "feb", "mar", "abr", "may", "jun",
        "jul", "ago", "sept", "oct", "nov", "dic",
    ),
    "en": (
        "Jan", "Feb", "Mar", "Apr", "May", "Jun",
        "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
    ),
    "de": (
        "Jan.", "Feb.", "März", "Apr.", "Mai", "Juni",
        "Juli", "Aug.", "Sept.", "Okt.", "Nov.", "Dez.",
    ),
}


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def local_now() -> datetime:
    """Wall-clock time in the configured timezone, without tzinfo.

    Stored timestamps are naive local times, so comparisons stay naive too.
    """
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    first = date(year, month, 1)
    last = add_months(first, 1) - date.resolution
    return Period(
        f"{year:04d}-{month:02d}",
        datetime.combine(first, time.min),
        datetime.combine(last, time.max),
    )


def current_month_period(now: Optional[datetime] = None) -> Period:
    now = now or local_now()
    return month_period(now.year, now.month)


def month_labeler(locale: Optional[str] = None) -> MonthLabeler:
    """Return a ``(year, month) -> label`` callable for short month names.

    Unknown locales fall back to the base language, then to English.
    """
    locale = (locale or get_settings().locale).replace("_", "-")
    names = MONTH_ABBREVIATIONS.get(locale.lower()) or MONTH_ABBREVIATIONS.get(
        locale.split("-")[0].lower(), MONTH_ABBREVIATIONS["en"]
    )

    def label(_year: int, month: int) -> str:
        return names[month - 1]

    return label


def iso_month_label(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"
