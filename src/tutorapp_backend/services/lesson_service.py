'''
Lesson lifecycle: scheduling, bundles, rescheduling, cancellation policy,
completion, bulk edits and the wall-clock expiry sweep.
'''
import datetime
import uuid
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, LessonStatusEnum, LessonTypeEnum, NotificationKind
from ..models import lesson as lesson_models
from ..core import lesson_clock
from ..common.config import settings
from ..common.exceptions import DomainError, BadRequestError, UnauthorizedError, SchedulingConflictError
from ..common.logger import log
from .user_service import UserService
from .availability_service import AvailabilityService, OPEN_STATUSES
from .notification_service import NotificationService

TIMING_FIELDS = ('lesson_date', 'lesson_time', 'duration')
SCHEDULE_FIELDS = ('lesson_date', 'lesson_time')


class LessonService:
    """
    Service for the lesson state machine:
    Incoming -> Active -> Completed by the clock, Cancelled (and back) by users.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        user_service: Annotated[UserService, Depends(UserService)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        notification_service: Annotated[NotificationService, Depends(NotificationService)]
    ):
        self.db = db
        self.user_service = user_service
        self.availability_service = availability_service
        self.notification_service = notification_service

    # --- 1. Authorization Helpers ---

    def _authorize_scheduler(self, student_id: UUID, current_user: db_models.Users):
        """Admins may schedule for anyone; students only for themselves."""
        if current_user.role == UserRole.ADMIN.value:
            return
        if current_user.role == UserRole.STUDENT.value and current_user.id == student_id:
            return
        log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) tried to schedule a lesson for student {student_id}.")
        raise UnauthorizedError("Only the student or an admin can schedule a lesson")

    def _authorize_assigned_tutor(self, lesson: db_models.Lessons, current_user: db_models.Users):
        if current_user.role == UserRole.ADMIN.value:
            return
        if current_user.role == UserRole.TUTOR.value and lesson.tutor_id == current_user.id:
            return
        log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) is not the assigned tutor of lesson {lesson.id}.")
        raise UnauthorizedError("You are not the assigned tutor for this lesson")

    def _authorize_participant(self, lesson: db_models.Lessons, current_user: db_models.Users):
        if current_user.role == UserRole.ADMIN.value:
            return
        if current_user.id in (lesson.student_id, lesson.tutor_id):
            return
        log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) tried to change lesson {lesson.id} without taking part in it.")
        raise UnauthorizedError("You are not allowed to modify this lesson")

    def _authorize_admin(self, current_user: db_models.Users, action: str):
        if current_user.role != UserRole.ADMIN.value:
            log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) tried to {action}.")
            raise UnauthorizedError(f"Only admins can {action}")

    # --- 2. Internal Fetchers & Helpers (No Auth) ---

    async def _get_lesson_by_id_internal(self, lesson_id: UUID) -> db_models.Lessons:
        lesson = await self.db.get(db_models.Lessons, lesson_id)
        if lesson is None:
            raise BadRequestError("Lesson not found")
        return lesson

    async def _validate_participants(self, tutor_id: UUID, student_id: UUID):
        if await self.user_service.get_tutor_by_id(tutor_id) is None:
            raise BadRequestError("Tutor not found")
        if await self.user_service.get_student_by_id(student_id) is None:
            raise BadRequestError("Student not found")

    async def _flush_slot_changes(self):
        """Flushes pending lesson writes; an open-slot uniqueness violation becomes a scheduling conflict."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            log.warning(f"Slot uniqueness violated while saving lessons: {e.orig}")
            raise SchedulingConflictError("Tutor is not available at the specified time") from e

    def _restore_status(self, lesson: db_models.Lessons, now: datetime.datetime):
        if lesson.status != LessonStatusEnum.CANCELLED.value:
            lesson.status = lesson_clock.derive_status(lesson.lesson_date, lesson.lesson_time, lesson.duration, now).value

    @staticmethod
    def _column_values(update_data: lesson_models.LessonUpdate) -> dict[str, Any]:
        """Fields the caller actually sent, with enums reduced to their stored values."""
        values = {}
        for key, value in update_data.model_dump(exclude_unset=True).items():
            if value is None and key != 'location':
                continue
            values[key] = value.value if isinstance(value, Enum) else value
        return values

    @staticmethod
    def _slot_payload(lesson_date: datetime.date, lesson_time: str) -> dict[str, str]:
        return {"date": lesson_date.isoformat(), "time": lesson_time}

    # --- 3. Read Methods ---

    async def get_lessons(self, current_user: db_models.Users) -> list[lesson_models.LessonListItem]:
        """
        Lessons visible to the user, soonest first.
        Students and tutors see their own lessons; admins see every lesson.
        """
        log.info(f"Fetching lessons for user {current_user.id} (Role: {current_user.role}).")
        stmt = select(db_models.Lessons).options(
            selectinload(db_models.Lessons.tutor),
            selectinload(db_models.Lessons.student)
        ).order_by(db_models.Lessons.lesson_date, db_models.Lessons.lesson_time)

        if current_user.role == UserRole.STUDENT.value:
            stmt = stmt.filter(db_models.Lessons.student_id == current_user.id)
        elif current_user.role == UserRole.TUTOR.value:
            stmt = stmt.filter(db_models.Lessons.tutor_id == current_user.id)
        elif current_user.role != UserRole.ADMIN.value:
            return []

        try:
            result = await self.db.execute(stmt)
            return [self._format_lesson_for_list(lesson) for lesson in result.scalars().all()]
        except Exception as e:
            log.error(f"Database error in get_lessons for user {current_user.id}: {e}", exc_info=True)
            raise BadRequestError("Failed to fetch lessons") from e

    def _format_lesson_for_list(self, lesson: db_models.Lessons) -> lesson_models.LessonListItem:
        return lesson_models.LessonListItem(
            id=lesson.id,
            lesson_date=lesson.lesson_date,
            lesson_time=lesson.lesson_time,
            duration=lesson.duration,
            level=lesson.level,
            topic=lesson.topic,
            type=lesson.type,
            location=lesson.location,
            tutor_id=lesson.tutor_id,
            tutor_name=lesson.tutor.full_name if lesson.tutor else "Unknown Tutor",
            student_id=lesson.student_id,
            student_name=lesson.student.full_name if lesson.student else "Unknown Student",
            status=lesson_clock.to_external_status(lesson.status),
            bundle_id=lesson.bundle_id,
            tutor_paid=lesson.tutor_paid
        )

    # --- 4. Scheduling ---

    def _build_lesson(
        self,
        lesson_data: lesson_models.LessonCreate,
        lesson_date: datetime.date,
        now: datetime.datetime,
        bundle_id: Optional[UUID] = None
    ) -> db_models.Lessons:
        return db_models.Lessons(
            id=uuid.uuid4(),
            lesson_date=lesson_date,
            lesson_time=lesson_data.lesson_time,
            duration=lesson_data.duration,
            level=lesson_data.level.value,
            topic=lesson_data.topic,
            type=lesson_data.type.value,
            location=lesson_data.location,
            tutor_id=lesson_data.tutor_id,
            student_id=lesson_data.student_id,
            status=lesson_clock.derive_status(lesson_date, lesson_data.lesson_time, lesson_data.duration, now).value,
            bundle_id=bundle_id,
            tutor_paid=False
        )

    async def create_lesson(
        self,
        lesson_data: lesson_models.LessonCreate,
        current_user: db_models.Users
    ) -> lesson_models.LessonRead:
        log.info(f"User {current_user.id} scheduling a lesson for tutor {lesson_data.tutor_id} on {lesson_data.lesson_date} {lesson_data.lesson_time}.")
        try:
            self._authorize_scheduler(lesson_data.student_id, current_user)
            await self._validate_participants(lesson_data.tutor_id, lesson_data.student_id)
            await self.availability_service.check_availability(
                lesson_data.tutor_id, lesson_data.lesson_date, lesson_data.lesson_time, lesson_data.duration
            )

            lesson = self._build_lesson(lesson_data, lesson_data.lesson_date, lesson_clock.local_now())
            self.db.add(lesson)
            await self._flush_slot_changes()
            log.info(f"Created lesson {lesson.id} with status {lesson.status}.")
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error creating lesson: {e}", exc_info=True)
            raise BadRequestError("Failed to create lesson") from e

        await self.notification_service.notify(
            NotificationKind.LESSON_ASSIGNED,
            [lesson.tutor_id, lesson.student_id],
            lesson_id=str(lesson.id),
            topic=lesson.topic,
            level=lesson.level,
            type=lesson.type,
            location=lesson.location,
            duration=lesson.duration,
            dates=[lesson.lesson_date.isoformat()],
            time=lesson.lesson_time
        )
        return lesson_models.LessonRead.model_validate(lesson)

    async def create_lesson_bundle(
        self,
        bundle_data: lesson_models.LessonBundleCreate,
        current_user: db_models.Users
    ) -> list[lesson_models.LessonRead]:
        """
        Schedules `number_of_lessons` weekly occurrences sharing one bundle id.
        Every occurrence is checked before anything is written, so a single
        conflict rejects the whole bundle.
        """
        log.info(f"User {current_user.id} scheduling a bundle of {bundle_data.number_of_lessons} lessons starting {bundle_data.lesson_date}.")
        try:
            self._authorize_scheduler(bundle_data.student_id, current_user)
            await self._validate_participants(bundle_data.tutor_id, bundle_data.student_id)

            dates = [
                bundle_data.lesson_date + datetime.timedelta(weeks=i)
                for i in range(bundle_data.number_of_lessons)
            ]
            for occurrence, lesson_date in enumerate(dates, start=1):
                try:
                    await self.availability_service.check_availability(
                        bundle_data.tutor_id, lesson_date, bundle_data.lesson_time, bundle_data.duration
                    )
                except SchedulingConflictError:
                    log.warning(f"Bundle rejected: occurrence {occurrence} on {lesson_date} conflicts.")
                    raise SchedulingConflictError(
                        f"Tutor is not available at the specified time (lesson {occurrence} on {lesson_date.isoformat()})"
                    )

            now = lesson_clock.local_now()
            bundle_id = uuid.uuid4()
            lessons = [self._build_lesson(bundle_data, lesson_date, now, bundle_id=bundle_id) for lesson_date in dates]
            self.db.add_all(lessons)
            await self._flush_slot_changes()
            log.info(f"Created bundle {bundle_id} with {len(lessons)} lessons.")
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error creating lesson bundle: {e}", exc_info=True)
            raise BadRequestError("Failed to create lesson bundle") from e

        await self.notification_service.notify(
            NotificationKind.LESSON_ASSIGNED,
            [bundle_data.tutor_id, bundle_data.student_id],
            bundle_id=str(bundle_id),
            lesson_ids=[str(lesson.id) for lesson in lessons],
            topic=bundle_data.topic,
            level=bundle_data.level.value,
            type=bundle_data.type.value,
            location=bundle_data.location,
            duration=bundle_data.duration,
            dates=[d.isoformat() for d in dates],
            time=bundle_data.lesson_time
        )
        return [lesson_models.LessonRead.model_validate(lesson) for lesson in lessons]

    # --- 5. State Transitions ---

    async def reschedule_lesson(
        self,
        lesson_id: UUID,
        reschedule_data: lesson_models.LessonReschedule,
        current_user: db_models.Users
    ) -> lesson_models.LessonRead:
        """
        Moves a lesson to a new date and/or time. A cancelled lesson stays cancelled.
        Overlaps are not re-checked here; an exact clash on an open slot is still rejected.
        """
        log.info(f"User {current_user.id} rescheduling lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_by_id_internal(lesson_id)
            self._authorize_assigned_tutor(lesson, current_user)

            old_slot = self._slot_payload(lesson.lesson_date, lesson.lesson_time)
            if reschedule_data.new_date is not None:
                lesson.lesson_date = reschedule_data.new_date
            if reschedule_data.new_time is not None:
                lesson.lesson_time = reschedule_data.new_time
            self._restore_status(lesson, lesson_clock.local_now())

            await self._flush_slot_changes()
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error rescheduling lesson {lesson_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to reschedule lesson") from e

        await self.notification_service.notify(
            NotificationKind.LESSON_RESCHEDULED,
            [lesson.tutor_id, lesson.student_id],
            lesson_id=str(lesson.id),
            topic=lesson.topic,
            old=old_slot,
            new=self._slot_payload(lesson.lesson_date, lesson.lesson_time)
        )
        return lesson_models.LessonRead.model_validate(lesson)

    async def cancel_lesson(self, lesson_id: UUID, current_user: db_models.Users) -> lesson_models.LessonRead:
        """
        Cancels a lesson. A student cancelling less than LATE_CANCELLATION_HOURS
        before the start still owes the tutor (tutor_paid is set).
        """
        log.info(f"User {current_user.id} ({current_user.role}) cancelling lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_by_id_internal(lesson_id)
            self._authorize_participant(lesson, current_user)

            if lesson.status == LessonStatusEnum.CANCELLED.value:
                raise BadRequestError("Lesson is already cancelled")

            now = lesson_clock.local_now()
            hours_left = lesson_clock.hours_until(lesson.lesson_date, lesson.lesson_time, now)
            late = current_user.role == UserRole.STUDENT.value and hours_left < settings.LATE_CANCELLATION_HOURS

            lesson.status = LessonStatusEnum.CANCELLED.value
            lesson.cancelled_at = now
            if late:
                lesson.tutor_paid = True
                log.info(f"Late cancellation of lesson {lesson.id} ({hours_left:.2f}h before start): tutor will be paid.")

            await self.db.flush()
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error cancelling lesson {lesson_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to cancel lesson") from e

        await self.notification_service.notify(
            NotificationKind.LESSON_CANCELLED,
            [lesson.tutor_id, lesson.student_id],
            lesson_id=str(lesson.id),
            topic=lesson.topic,
            slot=self._slot_payload(lesson.lesson_date, lesson.lesson_time),
            cancelled_by=str(current_user.id),
            cancelled_by_role=current_user.role,
            tutor_paid=lesson.tutor_paid
        )
        return lesson_models.LessonRead.model_validate(lesson)

    async def undo_lesson_cancellation(self, lesson_id: UUID, current_user: db_models.Users) -> lesson_models.LessonRead:
        """
        Restores a cancelled lesson while it is still more than
        LATE_CANCELLATION_HOURS away and its slot is still free.
        """
        log.info(f"User {current_user.id} undoing cancellation of lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_by_id_internal(lesson_id)
            self._authorize_participant(lesson, current_user)

            if lesson.status != LessonStatusEnum.CANCELLED.value:
                raise BadRequestError("Lesson is not cancelled")

            now = lesson_clock.local_now()
            hours_left = lesson_clock.hours_until(lesson.lesson_date, lesson.lesson_time, now)
            if hours_left <= 0:
                raise BadRequestError("Cannot undo the cancellation of a lesson that has already started")
            if hours_left < settings.LATE_CANCELLATION_HOURS:
                raise BadRequestError(
                    f"Cancellations can only be undone more than {settings.LATE_CANCELLATION_HOURS} hours before the lesson"
                )

            await self.availability_service.check_availability(
                lesson.tutor_id, lesson.lesson_date, lesson.lesson_time, lesson.duration,
                exclude_lesson_id=lesson.id
            )

            lesson.status = lesson_clock.derive_status(lesson.lesson_date, lesson.lesson_time, lesson.duration, now).value
            lesson.cancelled_at = None
            lesson.tutor_paid = False
            await self._flush_slot_changes()
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error undoing cancellation of lesson {lesson_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to undo lesson cancellation") from e

        slot = self._slot_payload(lesson.lesson_date, lesson.lesson_time)
        await self.notification_service.notify(
            NotificationKind.LESSON_RESCHEDULED,
            [lesson.tutor_id, lesson.student_id],
            lesson_id=str(lesson.id),
            topic=lesson.topic,
            old=slot,
            new=slot,
            restored=True
        )
        return lesson_models.LessonRead.model_validate(lesson)

    async def complete_lesson(self, lesson_id: UUID, current_user: db_models.Users) -> lesson_models.LessonRead:
        log.info(f"User {current_user.id} completing lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_by_id_internal(lesson_id)
            self._authorize_assigned_tutor(lesson, current_user)

            if lesson.status == LessonStatusEnum.COMPLETED.value:
                raise BadRequestError("Lesson is already completed")
            if lesson.status == LessonStatusEnum.CANCELLED.value:
                raise BadRequestError("Cannot complete a cancelled lesson")

            lesson.status = LessonStatusEnum.COMPLETED.value
            await self.db.flush()
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error completing lesson {lesson_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to complete lesson") from e

        await self.notification_service.notify(
            NotificationKind.LESSON_COMPLETED,
            [lesson.tutor_id, lesson.student_id],
            lesson_id=str(lesson.id),
            topic=lesson.topic,
            slot=self._slot_payload(lesson.lesson_date, lesson.lesson_time)
        )
        return lesson_models.LessonRead.model_validate(lesson)

    # --- 6. Edits ---

    def _apply_update(self, lesson: db_models.Lessons, values: dict[str, Any], now: datetime.datetime):
        """Applies already-validated column values and keeps type/location/status consistent."""
        for key, value in values.items():
            setattr(lesson, key, value)

        if lesson.type == LessonTypeEnum.ONLINE.value:
            lesson.location = None
        elif not (lesson.location and lesson.location.strip()):
            raise BadRequestError("A location is required for in-person lessons")

        if any(key in values for key in SCHEDULE_FIELDS):
            self._restore_status(lesson, now)

    async def update_lesson(
        self,
        lesson_id: UUID,
        update_data: lesson_models.LessonUpdate,
        current_user: db_models.Users
    ) -> lesson_models.LessonRead:
        log.info(f"User {current_user.id} updating lesson {lesson_id}.")
        values = self._column_values(update_data)

        try:
            lesson = await self._get_lesson_by_id_internal(lesson_id)
            self._authorize_assigned_tutor(lesson, current_user)
            if not values:
                raise BadRequestError("No fields provided for update")

            tutor_id = values.get('tutor_id', lesson.tutor_id)
            student_id = values.get('student_id', lesson.student_id)
            if 'tutor_id' in values or 'student_id' in values:
                await self._validate_participants(tutor_id, student_id)

            slot_changed = any(key in values for key in TIMING_FIELDS) or 'tutor_id' in values
            if slot_changed and lesson.status != LessonStatusEnum.CANCELLED.value:
                await self.availability_service.check_availability(
                    tutor_id,
                    values.get('lesson_date', lesson.lesson_date),
                    values.get('lesson_time', lesson.lesson_time),
                    values.get('duration', lesson.duration),
                    exclude_lesson_id=lesson.id
                )

            self._apply_update(lesson, values, lesson_clock.local_now())
            await self._flush_slot_changes()
            log.info(f"Lesson {lesson.id} updated: {sorted(values)}.")
            return lesson_models.LessonRead.model_validate(lesson)
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error updating lesson {lesson_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to update lesson") from e

    async def bulk_update_lessons(
        self,
        bulk_data: lesson_models.LessonBulkUpdate,
        current_user: db_models.Users
    ) -> list[lesson_models.LessonRead]:
        """
        Applies one set of field changes to many lessons. Admin only.
        All ids must exist before anything is changed.
        """
        self._authorize_admin(current_user, "bulk update lessons")
        values = self._column_values(bulk_data.updates)
        if not values:
            raise BadRequestError("No fields provided for update")

        lesson_ids = list(dict.fromkeys(bulk_data.lesson_ids))
        log.info(f"Admin {current_user.id} bulk updating {len(lesson_ids)} lessons: {sorted(values)}.")
        try:
            result = await self.db.execute(
                select(db_models.Lessons).filter(db_models.Lessons.id.in_(lesson_ids))
            )
            lessons = {lesson.id: lesson for lesson in result.scalars().all()}
            missing = [str(lesson_id) for lesson_id in lesson_ids if lesson_id not in lessons]
            if missing:
                raise BadRequestError(f"Lessons not found: {', '.join(missing)}")

            if 'tutor_id' in values and await self.user_service.get_tutor_by_id(values['tutor_id']) is None:
                raise BadRequestError("Tutor not found")
            if 'student_id' in values and await self.user_service.get_student_by_id(values['student_id']) is None:
                raise BadRequestError("Student not found")

            now = lesson_clock.local_now()
            for lesson_id in lesson_ids:
                self._apply_update(lessons[lesson_id], values, now)
            await self._flush_slot_changes()
            return [lesson_models.LessonRead.model_validate(lessons[lesson_id]) for lesson_id in lesson_ids]
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error in bulk lesson update: {e}", exc_info=True)
            raise BadRequestError("Failed to bulk update lessons") from e

    # --- 7. Expiry Sweep ---

    async def update_expired_lessons(self, now: Optional[datetime.datetime] = None) -> lesson_models.ExpiredLessonsResult:
        """
        Moves open lessons along the clock: Incoming -> Active once started,
        anything open -> Completed once ended. Errors are logged, never raised.
        """
        now = now or lesson_clock.local_now()
        completed = activated = 0
        try:
            result = await self.db.execute(
                select(db_models.Lessons).filter(
                    db_models.Lessons.status.in_(OPEN_STATUSES),
                    db_models.Lessons.lesson_date <= now.date()
                )
            )
            for lesson in result.scalars().all():
                new_status = lesson_clock.derive_status(lesson.lesson_date, lesson.lesson_time, lesson.duration, now)
                if new_status.value == lesson.status:
                    continue
                lesson.status = new_status.value
                if new_status == LessonStatusEnum.COMPLETED:
                    completed += 1
                elif new_status == LessonStatusEnum.ACTIVE:
                    activated += 1
            await self.db.flush()
            if completed or activated:
                log.info(f"Expiry sweep: {completed} lesson(s) completed, {activated} activated.")
        except Exception as e:
            log.error(f"Error in update_expired_lessons: {e}", exc_info=True)
            await self.db.rollback()
            return lesson_models.ExpiredLessonsResult(completed=0, activated=0)
        return lesson_models.ExpiredLessonsResult(completed=completed, activated=activated)

    async def update_expired_lessons_for_api(self, current_user: db_models.Users) -> lesson_models.ExpiredLessonsResult:
        self._authorize_admin(current_user, "run the lesson expiry sweep")
        log.info(f"Admin {current_user.id} triggered the expiry sweep.")
        return await self.update_expired_lessons()
