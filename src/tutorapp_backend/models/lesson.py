'''
Pydantic models for lessons: write payloads (create, bundle, reschedule,
update, bulk update) and the read models returned by the API.
'''
import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from ..common.config import settings
from ..core.lesson_clock import normalize_lesson_time
from ..database.db_enums import LessonLevelEnum, LessonTypeEnum, LessonStatusEnum, ExternalLessonStatus

# "9:05" is accepted and stored as "09:05".
LessonTime = Annotated[str, AfterValidator(normalize_lesson_time)]


# --- API Write Models (Input) ---

class LessonCreate(BaseModel):
    """
    Payload for scheduling a single lesson.
    A location is mandatory for in-person lessons.
    """
    lesson_date: datetime.date
    lesson_time: LessonTime = Field(..., description="Start time, HH:MM (server-local)")
    duration: int = Field(..., gt=0, le=24 * 60, description="Minutes")
    level: LessonLevelEnum
    topic: str = Field(..., min_length=1, max_length=500)
    type: LessonTypeEnum = LessonTypeEnum.ONLINE
    location: Optional[str] = Field(None, max_length=500)
    tutor_id: UUID
    student_id: UUID

    @model_validator(mode='after')
    def check_location(self) -> 'LessonCreate':
        if self.type == LessonTypeEnum.IN_PERSON and not (self.location and self.location.strip()):
            raise ValueError("A location is required for in-person lessons.")
        if self.type == LessonTypeEnum.ONLINE:
            self.location = None
        return self


class LessonBundleCreate(LessonCreate):
    """A weekly series of identical lessons starting on `lesson_date`."""
    number_of_lessons: int = Field(..., ge=1, le=settings.MAX_LESSONS_PER_BUNDLE)


class LessonReschedule(BaseModel):
    new_date: Optional[datetime.date] = None
    new_time: Optional[LessonTime] = None

    @model_validator(mode='after')
    def check_not_empty(self) -> 'LessonReschedule':
        if self.new_date is None and self.new_time is None:
            raise ValueError("Provide a new date, a new time, or both.")
        return self


class LessonUpdate(BaseModel):
    """Partial update; only the fields that are sent are applied."""
    lesson_date: Optional[datetime.date] = None
    lesson_time: Optional[LessonTime] = None
    duration: Optional[int] = Field(None, gt=0, le=24 * 60)
    level: Optional[LessonLevelEnum] = None
    topic: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[LessonTypeEnum] = None
    location: Optional[str] = Field(None, max_length=500)
    tutor_id: Optional[UUID] = None
    student_id: Optional[UUID] = None


class LessonBulkUpdate(BaseModel):
    lesson_ids: list[UUID] = Field(..., min_length=1)
    updates: LessonUpdate


# --- API Read Models (Output) ---

class LessonRead(BaseModel):
    id: UUID
    lesson_date: datetime.date
    lesson_time: str
    duration: int
    level: LessonLevelEnum
    topic: str
    type: LessonTypeEnum
    location: Optional[str] = None
    tutor_id: UUID
    student_id: UUID
    status: LessonStatusEnum
    bundle_id: Optional[UUID] = None
    tutor_paid: bool
    cancelled_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class LessonListItem(BaseModel):
    """
    A lesson as shown in lesson lists: participant names resolved and
    the status collapsed to scheduled/completed/cancelled.
    """
    id: UUID
    lesson_date: datetime.date
    lesson_time: str
    duration: int
    level: LessonLevelEnum
    topic: str
    type: LessonTypeEnum
    location: Optional[str] = None
    tutor_id: UUID
    tutor_name: str
    student_id: UUID
    student_name: str
    status: ExternalLessonStatus
    bundle_id: Optional[UUID] = None
    tutor_paid: bool


class ExpiredLessonsResult(BaseModel):
    completed: int
    activated: int
