"""Date arithmetic for subscription renewals and deliveries."""
import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Union

from app.core.config import SUBSCRIPTION_BUFFER_DAYS
from app.core.exceptions import InvalidFrequencyError
from app.models.enums import SubscriptionFrequency

SATURDAY = 5


def parse_frequency(value: Optional[str]) -> SubscriptionFrequency:
    """Accept WEEKLY or MONTHLY in any case, surrounded by whitespace or not."""
    try:
        return SubscriptionFrequency((value or "").strip().upper())
    except ValueError:
        raise InvalidFrequencyError("Invalid frequency")


def add_months(moment: Union[date, datetime], months: int) -> Union[date, datetime]:
    """Calendar month addition; the day is clamped to the end of shorter months (Jan 31 + 1 -> Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_renewal_date(moment: datetime, frequency: SubscriptionFrequency) -> datetime:
    if frequency == SubscriptionFrequency.MONTHLY:
        return add_months(moment, 1)
    return moment + timedelta(weeks=1)


def next_saturday(day: date) -> date:
    """The first Saturday strictly after `day`."""
    days_ahead = (SATURDAY - day.weekday()) % 7 or 7
    return day + timedelta(days=days_ahead)


def first_of_next_month(day: date) -> date:
    return add_months(day.replace(day=1), 1)


def nearest_delivery_date(day: date, frequency: SubscriptionFrequency) -> date:
    if frequency == SubscriptionFrequency.MONTHLY:
        return first_of_next_month(day)
    return next_saturday(day)


def next_delivery_date(
    day: date, frequency: SubscriptionFrequency, buffer_days: int = SUBSCRIPTION_BUFFER_DAYS
) -> date:
    """
    The delivery slot for something ordered on `day`: the nearest slot, unless it is
    less than `buffer_days` away, in which case the slot after it.
    """
    nearest = nearest_delivery_date(day, frequency)
    if day < nearest - timedelta(days=buffer_days):
        return nearest
    return nearest_delivery_date(day + timedelta(days=7), frequency)
