"""
Date and number formatting helpers using Babel.

All functions accept naive or timezone-aware datetimes and dates. Calendar
comparisons use the local calendar day of the value; ``today`` arguments exist so
callers (and tests) can pin the reference date.
"""
import datetime
import logging
from typing import Optional, Union

from babel import Locale, numbers
from babel.dates import format_date, format_timedelta
from dateutil.relativedelta import relativedelta, MO

DEFAULT_LOCALE = 'en_US'

DATE_STYLES = ('short', 'medium', 'long', 'full')

DateLike = Union[datetime.date, datetime.datetime]


def current_locale() -> str:
    """Return the locale configured in the settings, or the default locale."""
    from . import lib
    try:
        return lib.settings['locale'] or DEFAULT_LOCALE
    except (KeyError, AttributeError):
        return DEFAULT_LOCALE


def _as_date(value: DateLike) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def _today(today: Optional[DateLike] = None) -> datetime.date:
    return _as_date(today) if today is not None else datetime.date.today()


def start_of_day(value: DateLike) -> datetime.datetime:
    """Midnight at the start of the value's day, keeping its tzinfo."""
    if isinstance(value, datetime.datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime.datetime.combine(value, datetime.time.min)


def start_of_week(value: DateLike) -> datetime.datetime:
    """Midnight on the Monday of the value's week."""
    return start_of_day(value) + relativedelta(weekday=MO(-1))


def start_of_month(value: DateLike) -> datetime.datetime:
    return start_of_day(value) + relativedelta(day=1)


def start_of_year(value: DateLike) -> datetime.datetime:
    return start_of_day(value) + relativedelta(month=1, day=1)


def end_of_year(value: DateLike) -> datetime.datetime:
    """Midnight at the start of 31 December of the value's year."""
    return start_of_day(value) + relativedelta(month=12, day=31)


def is_today(value: DateLike, today: Optional[DateLike] = None) -> bool:
    return _as_date(value) == _today(today)


def is_this_week(value: DateLike, today: Optional[DateLike] = None) -> bool:
    return start_of_week(_as_date(value)) == start_of_week(_today(today))


def is_this_month(value: DateLike, today: Optional[DateLike] = None) -> bool:
    v, t = _as_date(value), _today(today)
    return (v.year, v.month) == (t.year, t.month)


def is_this_year(value: DateLike, today: Optional[DateLike] = None) -> bool:
    return _as_date(value).year == _today(today).year


def days_between(start: DateLike, end: DateLike) -> int:
    """Number of calendar days from start to end; negative when end is earlier."""
    return (_as_date(end) - _as_date(start)).days


def weeks_between(start: DateLike, end: DateLike) -> int:
    """Number of whole weeks between the Mondays of start's and end's weeks."""
    delta = start_of_week(_as_date(end)) - start_of_week(_as_date(start))
    return delta.days // 7


def format_date_style(value: DateLike, style: str = 'medium', locale: Optional[str] = None) -> str:
    """
    Format a date with one of Babel's predefined styles.

    Args:
        value: The date or datetime to format.
        style (str): One of 'short', 'medium', 'long' or 'full'.
        locale (str, optional): Locale string, e.g. 'en_US'. Defaults to the configured locale.

    Returns:
        str: The formatted date, e.g. 'Jan 5, 2025' for 'medium' in en_US.
    """
    if style not in DATE_STYLES:
        raise ValueError(f'Invalid date style "{style}", must be one of {DATE_STYLES}')
    return format_date(_as_date(value), format=style, locale=locale or current_locale())


def short_formatted(value: DateLike, locale: Optional[str] = None) -> str:
    """Month abbreviation and day, e.g. 'Jan 5'."""
    return format_date(_as_date(value), format='MMM d', locale=locale or current_locale())


def full_formatted(value: DateLike, locale: Optional[str] = None) -> str:
    """Full month name, day and year, e.g. 'January 5, 2025'."""
    return format_date(_as_date(value), format='MMMM d, yyyy', locale=locale or current_locale())


def relative_formatted(
        value: datetime.datetime,
        now: Optional[datetime.datetime] = None,
        locale: Optional[str] = None
) -> str:
    """
    Abbreviated time relative to now, e.g. '3 days ago' or 'in 2 hr'.

    Args:
        value (datetime.datetime): The moment to describe.
        now (datetime.datetime, optional): Reference moment. Must match value's awareness.
        locale (str, optional): Locale string. Defaults to the configured locale.
    """
    if now is None:
        now = datetime.datetime.now(value.tzinfo) if value.tzinfo else datetime.datetime.now()
    return format_timedelta(
        value - now,
        add_direction=True,
        format='short',
        locale=locale or current_locale()
    )


def format_decimal(value: float, locale: Optional[str] = None) -> str:
    """
    Format a float as a decimal string according to the locale conventions.

    Args:
        value (float): The numeric value to be formatted.
        locale (str, optional): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted decimal string.
    """
    try:
        locale_obj = Locale.parse(locale or current_locale())
        return numbers.format_decimal(value, locale=locale_obj)
    except (ValueError, TypeError) as ex:
        logging.debug(f'Failed to format "{value}": {ex}')
        return str(value)
