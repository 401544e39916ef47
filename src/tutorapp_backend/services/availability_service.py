'''
Tutor availability: does a candidate lesson overlap one of the tutor's open lessons?
'''
import datetime
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import LessonStatusEnum
from ..core.lesson_clock import lesson_window, intervals_overlap
from ..common.exceptions import SchedulingConflictError
from ..common.logger import log

OPEN_STATUSES = (LessonStatusEnum.INCOMING.value, LessonStatusEnum.ACTIVE.value)


class AvailabilityService:
    """
    Only lessons on the same calendar date that are still Incoming or Active
    can conflict. Intervals are half-open, so back-to-back lessons are fine.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def find_conflict(
        self,
        tutor_id: UUID,
        lesson_date: datetime.date,
        lesson_time: str,
        duration: int,
        exclude_lesson_id: Optional[UUID] = None
    ) -> db_models.Lessons | None:
        start, end = lesson_window(lesson_date, lesson_time, duration)

        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.tutor_id == tutor_id,
            db_models.Lessons.lesson_date == lesson_date,
            db_models.Lessons.status.in_(OPEN_STATUSES)
        )
        if exclude_lesson_id is not None:
            stmt = stmt.filter(db_models.Lessons.id != exclude_lesson_id)

        result = await self.db.execute(stmt)
        for other in result.scalars().all():
            other_start, other_end = lesson_window(other.lesson_date, other.lesson_time, other.duration)
            if intervals_overlap(start, end, other_start, other_end):
                return other
        return None

    async def check_availability(
        self,
        tutor_id: UUID,
        lesson_date: datetime.date,
        lesson_time: str,
        duration: int,
        exclude_lesson_id: Optional[UUID] = None
    ) -> None:
        """Raises SchedulingConflictError if the slot overlaps an open lesson of the tutor."""
        conflict = await self.find_conflict(tutor_id, lesson_date, lesson_time, duration, exclude_lesson_id)
        if conflict is not None:
            log.warning(
                f"Tutor {tutor_id} unavailable on {lesson_date} {lesson_time} ({duration} min): "
                f"overlaps lesson {conflict.id} at {conflict.lesson_time}."
            )
            raise SchedulingConflictError("Tutor is not available at the specified time")
