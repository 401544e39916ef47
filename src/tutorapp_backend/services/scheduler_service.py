'''
Fixed-interval background ticker.

Every tick runs the lesson expiry sweep and then the bi-weekly earnings
generation, each in its own session. A failing tick is logged and the
next one runs as usual.
'''
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.logger import log
from ..database.engine import get_session_factory
from .user_service import UserService
from .availability_service import AvailabilityService
from .lesson_service import LessonService
from .earnings_service import EarningsApprovalService, EarningsConfigService
from .notification_service import NotificationDispatcher, NotificationService, get_notification_dispatcher

TICK_JOB_ID = "lesson_and_earnings_tick"


class SchedulerService:
    """Owns the APScheduler instance; safe to start and stop more than once."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        interval_minutes: Optional[int] = None
    ):
        self._session_factory = session_factory
        self.dispatcher = dispatcher or get_notification_dispatcher()
        self.interval_minutes = interval_minutes or settings.SCHEDULER_INTERVAL_MINUTES
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self):
        if self.running:
            log.info("Scheduler already running.")
            return

        log.info(f"Starting scheduler (every {self.interval_minutes} minutes)...")
        self.scheduler = AsyncIOScheduler()
        # max_instances=1: a tick that is still running makes the next one skip.
        self.scheduler.add_job(
            self.run_tick,
            IntervalTrigger(minutes=self.interval_minutes),
            id=TICK_JOB_ID,
            name="Expire lessons and generate bi-weekly earnings",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        log.info("Scheduler started.")

    def stop(self):
        if not self.running:
            return
        log.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        log.info("Scheduler stopped.")

    def _new_session(self) -> AsyncSession:
        factory = self._session_factory or get_session_factory()
        return factory()

    async def run_tick(self):
        """One pass: expiry sweep, commit, bi-weekly generation, commit."""
        log.info("Scheduler tick started.")
        async with self._new_session() as session:
            try:
                notification_service = NotificationService(dispatcher=self.dispatcher)
                user_service = UserService(db=session)

                lesson_service = LessonService(
                    db=session,
                    user_service=user_service,
                    availability_service=AvailabilityService(db=session),
                    notification_service=notification_service
                )
                swept = await lesson_service.update_expired_lessons()
                await session.commit()

                earnings_service = EarningsApprovalService(
                    db=session,
                    user_service=user_service,
                    config_service=EarningsConfigService(db=session),
                    notification_service=notification_service
                )
                approvals = await earnings_service.generate_bi_weekly_approvals()
                await session.commit()

                log.info(
                    f"Scheduler tick finished: {swept.completed} completed, {swept.activated} activated, "
                    f"{len(approvals)} approval(s) current."
                )
            except Exception as e:
                await session.rollback()
                log.error(f"Scheduler tick failed: {e}", exc_info=True)


scheduler_service = SchedulerService()
