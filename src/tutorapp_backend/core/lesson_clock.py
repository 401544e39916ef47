'''
Pure time arithmetic for lessons: start/end windows, status derivation,
overlap tests and the external status mapping.

Lesson dates and "HH:MM" times are server-local wall-clock values, so
everything here works on naive datetimes.
'''
import datetime
import re

from ..database.db_enums import LessonStatusEnum, ExternalLessonStatus

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')


def local_now() -> datetime.datetime:
    """The server-local wall clock every lesson rule is evaluated against."""
    return datetime.datetime.now()


def parse_lesson_time(value: str) -> datetime.time:
    """Parses an 'HH:MM' (or 'H:MM') string. Raises ValueError on anything else."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValueError(f"Invalid lesson time '{value}', expected HH:MM")
    hours, minutes = value.split(':')
    return datetime.time(int(hours), int(minutes))


def normalize_lesson_time(value: str) -> str:
    """'9:05' -> '09:05'."""
    return parse_lesson_time(value).strftime('%H:%M')


def lesson_window(lesson_date: datetime.date, lesson_time: str, duration: int) -> tuple[datetime.datetime, datetime.datetime]:
    """Returns the half-open [start, end) interval of a lesson."""
    start = datetime.datetime.combine(lesson_date, parse_lesson_time(lesson_time))
    return start, start + datetime.timedelta(minutes=duration)


def derive_status(
    lesson_date: datetime.date,
    lesson_time: str,
    duration: int,
    now: datetime.datetime | None = None
) -> LessonStatusEnum:
    """
    Status of a non-cancelled lesson at `now`:
    Incoming before the start, Active inside [start, end), Completed from end on.
    """
    now = now or local_now()
    start, end = lesson_window(lesson_date, lesson_time, duration)
    if now < start:
        return LessonStatusEnum.INCOMING
    if now < end:
        return LessonStatusEnum.ACTIVE
    return LessonStatusEnum.COMPLETED


def intervals_overlap(
    start_a: datetime.datetime, end_a: datetime.datetime,
    start_b: datetime.datetime, end_b: datetime.datetime
) -> bool:
    # Half-open: touching endpoints do not overlap.
    return start_a < end_b and end_a > start_b


def hours_until(lesson_date: datetime.date, lesson_time: str, now: datetime.datetime | None = None) -> float:
    """Hours from `now` to the lesson start; negative once the lesson has started."""
    now = now or local_now()
    start, _ = lesson_window(lesson_date, lesson_time, 0)
    return (start - now).total_seconds() / 3600


def to_external_status(status: str) -> ExternalLessonStatus:
    if status == LessonStatusEnum.CANCELLED.value:
        return ExternalLessonStatus.CANCELLED
    if status == LessonStatusEnum.COMPLETED.value:
        return ExternalLessonStatus.COMPLETED
    return ExternalLessonStatus.SCHEDULED
