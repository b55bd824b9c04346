"""Business-day rules for a campus."""

from datetime import date

SATURDAY = 5
SUNDAY = 6


def holiday_set(schedule_config) -> set[date]:
    if schedule_config is None:
        return set()

    holidays: set[date] = set()
    for value in schedule_config.holiday_dates or []:
        holidays.add(value if isinstance(value, date) else date.fromisoformat(str(value)))
    return holidays


def is_bookable_day(day: date, schedule_config, day_override) -> bool:
    """Return whether the clinic takes bookings on ``day``.

    A closed override wins over everything; weekends need the matching
    campus toggle; holidays are never bookable. Past dates are not special
    here, that is an admission concern.
    """
    if day_override is not None and day_override.is_closed:
        return False

    weekday = day.weekday()
    include_saturday = bool(schedule_config and schedule_config.include_saturday)
    include_sunday = bool(schedule_config and schedule_config.include_sunday)

    if weekday == SATURDAY and not include_saturday:
        return False
    if weekday == SUNDAY and not include_sunday:
        return False

    if day in holiday_set(schedule_config):
        return False

    return True
