"""Daily capacity accounting.

Every capacity decision in the application (booking admission, auto-spread,
manual reassignment warnings, the staff calendar) reads through
``CapacityWindow`` so the counting rule and the cap resolution live in one
place.
"""

from dataclasses import dataclass
from datetime import date, timedelta

from clinic.core import config
from clinic.services.calendar import is_bookable_day
from clinic.services.repository import ClinicRepository


@dataclass(frozen=True)
class DayCapacity:
    date: date
    load: int
    capacity: int
    bookable: bool

    @property
    def remaining(self) -> int:
        if not self.bookable:
            return 0
        return max(0, self.capacity - self.load)

    @property
    def is_full(self) -> bool:
        return self.remaining == 0


def resolve_capacity(booking_setting, day_override, default: int | None = None) -> int:
    if day_override is not None:
        return day_override.max_bookings
    if booking_setting is not None:
        return booking_setting.max_bookings_per_day
    return config.DEFAULT_MAX_BOOKINGS_PER_DAY if default is None else default


class CapacityWindow:
    """Capacity state of one campus over a closed date range.

    Counts, overrides and configuration are read once when the window is
    built. ``reserve`` bumps an in-memory counter so a caller placing several
    appointments sees its own earlier placements; nothing is written back.
    """

    def __init__(self, repository: ClinicRepository, campus_id: int, start: date, end: date):
        if end < start:
            raise ValueError('Capacity window end must not precede its start.')

        self.campus_id = campus_id
        self.start = start
        self.end = end
        self.booking_setting = repository.get_booking_setting(campus_id)
        self.schedule_config = repository.get_schedule_config(campus_id)
        self.day_overrides = repository.get_day_overrides(campus_id, start, end)
        self._counts = dict(repository.count_bookings(campus_id, start, end))

    def _check_range(self, day: date) -> None:
        if not self.start <= day <= self.end:
            raise ValueError(f'{day.isoformat()} is outside the capacity window.')

    def is_bookable(self, day: date) -> bool:
        self._check_range(day)
        return is_bookable_day(day, self.schedule_config, self.day_overrides.get(day))

    def effective_capacity(self, day: date) -> int:
        self._check_range(day)
        return resolve_capacity(self.booking_setting, self.day_overrides.get(day))

    def current_load(self, day: date) -> int:
        self._check_range(day)
        return self._counts.get(day, 0)

    def has_capacity(self, day: date) -> bool:
        return self.is_bookable(day) and self.current_load(day) < self.effective_capacity(day)

    def reserve(self, day: date, count: int = 1) -> None:
        self._check_range(day)
        self._counts[day] = self._counts.get(day, 0) + count

    def day(self, day: date) -> DayCapacity:
        return DayCapacity(
            date=day,
            load=self.current_load(day),
            capacity=self.effective_capacity(day),
            bookable=self.is_bookable(day),
        )

    def days(self) -> list[DayCapacity]:
        result = []
        current = self.start
        while current <= self.end:
            result.append(self.day(current))
            current += timedelta(days=1)
        return result


def effective_capacity(repository: ClinicRepository, campus_id: int, day: date) -> int:
    return CapacityWindow(repository, campus_id, day, day).effective_capacity(day)


def current_load(repository: ClinicRepository, campus_id: int, day: date) -> int:
    return CapacityWindow(repository, campus_id, day, day).current_load(day)


def has_capacity(repository: ClinicRepository, campus_id: int, day: date) -> bool:
    return CapacityWindow(repository, campus_id, day, day).has_capacity(day)


def day_capacity(repository: ClinicRepository, campus_id: int, day: date) -> DayCapacity:
    return CapacityWindow(repository, campus_id, day, day).day(day)


def booking_counts(repository: ClinicRepository, campus_id: int, start: date, end: date) -> dict[date, int]:
    return dict(repository.count_bookings(campus_id, start, end))
