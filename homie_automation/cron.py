"""Cron expressions and a manager that turns them into queued events."""

from __future__ import annotations

import asyncio
import calendar
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

log = logging.getLogger(__name__)


class CronError(ValueError):
    """Raised for an invalid cron expression."""


_MONTH_NAMES = {
    name: number
    for number, (short, full) in enumerate(
        zip(calendar.month_abbr[1:], calendar.month_name[1:]), start=1
    )
    for name in (short.upper(), full.upper())
}

_DAY_NAMES = {
    name: number
    for number, (short, full) in enumerate(
        [("SUN", "SUNDAY"), ("MON", "MONDAY"), ("TUE", "TUESDAY"), ("WED", "WEDNESDAY"),
         ("THU", "THURSDAY"), ("FRI", "FRIDAY"), ("SAT", "SATURDAY")],
        start=1,
    )
    for name in (short, full)
}

_ALIASES = {
    "@yearly": "0 0 0 1 1 * *",
    "@annually": "0 0 0 1 1 * *",
    "@monthly": "0 0 0 1 * * *",
    "@weekly": "0 0 0 * * 1 *",
    "@daily": "0 0 0 * * * *",
    "@hourly": "0 0 * * * * *",
}


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    low: int
    high: int
    names: Mapping[str, int] = field(default_factory=dict)
    allows_question: bool = False

    def value(self, token: str) -> int:
        if token.isdigit():
            number = int(token)
        elif token.upper() in self.names:
            number = self.names[token.upper()]
        else:
            raise CronError(f"invalid {self.name} value: {token!r}")
        if not self.low <= number <= self.high:
            raise CronError(f"{self.name} value {number} out of range {self.low}-{self.high}")
        return number

    def parse(self, text: str) -> tuple[int, ...]:
        values: set[int] = set()
        for item in text.split(","):
            values.update(self._parse_item(item))
        return tuple(sorted(values))

    def _parse_item(self, item: str) -> range:
        base, slash, step_text = item.partition("/")
        step = 1
        if slash:
            if not step_text.isdigit() or int(step_text) < 1:
                raise CronError(f"invalid {self.name} step: {item!r}")
            step = int(step_text)
        if base == "*" or (base == "?" and self.allows_question):
            start, end = self.low, self.high
        elif "-" in base:
            first, _, last = base.partition("-")
            start, end = self.value(first), self.value(last)
            if start > end:
                raise CronError(f"invalid {self.name} range: {item!r}")
        else:
            start = self.value(base)
            end = self.high if slash else start
        return range(start, end + 1, step)


_FIELDS = (
    _FieldSpec("seconds", 0, 59),
    _FieldSpec("minutes", 0, 59),
    _FieldSpec("hours", 0, 23),
    _FieldSpec("days of month", 1, 31, allows_question=True),
    _FieldSpec("months", 1, 12, _MONTH_NAMES),
    _FieldSpec("days of week", 1, 7, _DAY_NAMES, allows_question=True),
    _FieldSpec("years", 1970, 2100),
)


def _cron_weekday(moment: datetime) -> int:
    """Day of week in cron numbering: 1 is Sunday, 7 is Saturday."""
    return (moment.weekday() + 1) % 7 + 1


@dataclass(frozen=True)
class CronSchedule:
    """A parsed seven-field cron expression (sec min hour dom month dow year)."""

    expression: str
    seconds: tuple[int, ...]
    minutes: tuple[int, ...]
    hours: tuple[int, ...]
    days_of_month: tuple[int, ...]
    months: tuple[int, ...]
    days_of_week: tuple[int, ...]
    years: tuple[int, ...]

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        text = _ALIASES.get(expression.strip().lower(), expression.strip())
        fields = text.split()
        if len(fields) == 6:
            fields.append("*")
        if len(fields) != 7:
            raise CronError(
                f"Invalid cron expression: [{expression}] - 7 fields required, like [* * * * * * *] "
                "(sec, min, hour, day of month, month, day of week, year)"
            )
        return cls(expression, *(spec.parse(part) for spec, part in zip(_FIELDS, fields)))

    def _day_matches(self, year: int, month: int, day: int) -> bool:
        return day in self.days_of_month and _cron_weekday(datetime(year, month, day)) in self.days_of_week

    def matches(self, moment: datetime) -> bool:
        return (
            moment.second in self.seconds
            and moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and moment.year in self.years
            and self._day_matches(moment.year, moment.month, moment.day)
        )

    def _next_from(self, start: datetime) -> datetime | None:
        for year in self.years:
            if year < start.year:
                continue
            year_bound = year == start.year
            for month in self.months:
                if year_bound and month < start.month:
                    continue
                month_bound = year_bound and month == start.month
                for day in range(1, calendar.monthrange(year, month)[1] + 1):
                    if month_bound and day < start.day:
                        continue
                    if not self._day_matches(year, month, day):
                        continue
                    day_bound = month_bound and day == start.day
                    for hour in self.hours:
                        if day_bound and hour < start.hour:
                            continue
                        hour_bound = day_bound and hour == start.hour
                        for minute in self.minutes:
                            if hour_bound and minute < start.minute:
                                continue
                            minute_bound = hour_bound and minute == start.minute
                            for second in self.seconds:
                                if minute_bound and second < start.second:
                                    continue
                                return datetime(year, month, day, hour, minute, second, tzinfo=start.tzinfo)
        return None

    def upcoming(self, after: datetime) -> Iterator[datetime]:
        """Yield the matching moments strictly after ``after``, in order."""
        moment = after.replace(microsecond=0) + timedelta(seconds=1)
        while (found := self._next_from(moment)) is not None:
            yield found
            moment = found + timedelta(seconds=1)


@dataclass(frozen=True)
class CronEvent:
    id: str
    rule_hash: Any
    trigger_index: int


@dataclass
class _ScheduledCron:
    id: str
    rule_hash: Any
    task: asyncio.Task


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CronManager:
    """Runs cron schedules per rule trigger and queues an event at each firing."""

    def __init__(
        self,
        capacity: int = 1024,
        *,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.events: asyncio.Queue[CronEvent] = asyncio.Queue(maxsize=capacity)
        self._schedules: dict[str, _ScheduledCron] = {}
        self._clock = clock
        self._sleep = sleep

    def schedule_cron(self, rule_hash: Any, trigger_index: int, cron_schedule: str) -> str:
        """Start a schedule for a rule trigger, replacing any previous one.

        An invalid expression is logged and nothing is scheduled. Returns the
        schedule id.
        """
        schedule_id = f"{rule_hash}-{trigger_index}"
        self.cancel_cron_schedule(schedule_id)
        try:
            schedule = CronSchedule.parse(cron_schedule)
        except CronError as err:
            log.error("%s", err)
            return schedule_id
        task = asyncio.get_running_loop().create_task(
            self._run(schedule_id, rule_hash, trigger_index, schedule)
        )
        self._schedules[schedule_id] = _ScheduledCron(schedule_id, rule_hash, task)
        return schedule_id

    async def _run(self, schedule_id: str, rule_hash: Any, trigger_index: int, schedule: CronSchedule) -> None:
        for moment in schedule.upcoming(self._clock()):
            delay = max(0.0, (moment - self._clock()).total_seconds())
            log.debug("%s - next execution at: %s", schedule_id, moment.astimezone())
            await self._sleep(delay)
            await self.events.put(CronEvent(schedule_id, rule_hash, trigger_index))

    def cancel_cron_schedule(self, schedule_id: str) -> None:
        scheduled = self._schedules.pop(schedule_id, None)
        if scheduled is not None:
            scheduled.task.cancel()
            log.debug("Schedule %s cancelled.", schedule_id)

    def remove_cron_schedule_for_rule(self, rule_hash: Any) -> None:
        for schedule_id in [sid for sid, s in self._schedules.items() if s.rule_hash == rule_hash]:
            self.cancel_cron_schedule(schedule_id)

    def clear(self) -> None:
        log.debug("Removing all cron schedules")
        for scheduled in self._schedules.values():
            scheduled.task.cancel()
        self._schedules.clear()

    def scheduled_ids(self) -> list[str]:
        return sorted(self._schedules)