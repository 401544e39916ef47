'''
Bi-weekly tutor earnings: approval generation, admin decisions,
per-tutor summaries, the enhanced salary/invoice report and the
earnings configuration singleton.
'''
import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, LessonStatusEnum, LessonTypeEnum, ApprovalStatusEnum, NotificationKind
from ..models import earnings as earnings_models
from ..core import lesson_clock
from ..core.periods import period_for, minutes_to_hours, earnings_amount, to_cents, Period
from ..common.config import settings
from ..common.exceptions import DomainError, BadRequestError, UnauthorizedError, NotFoundError
from ..common.logger import log
from .user_service import UserService
from .notification_service import NotificationService


def _authorize_admin(current_user: db_models.Users, action: str):
    if current_user.role != UserRole.ADMIN.value:
        log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) tried to {action}.")
        raise UnauthorizedError(f"Only admins can {action}")


class EarningsConfigService:
    """
    Loads the single earnings_config row, creating it with the configured
    defaults the first time it is read.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_config(self) -> db_models.EarningsConfig:
        config = await self.db.get(db_models.EarningsConfig, 1)
        if config is None:
            log.info("No earnings config found; creating it with defaults.")
            config = db_models.EarningsConfig(
                id=1,
                in_person_bonus=settings.DEFAULT_IN_PERSON_BONUS,
                invoice_markup=settings.DEFAULT_INVOICE_MARKUP
            )
            self.db.add(config)
            await self.db.flush()
        return config

    async def get_config_for_api(self, current_user: db_models.Users) -> earnings_models.EarningsConfigRead:
        _authorize_admin(current_user, "view the earnings configuration")
        return earnings_models.EarningsConfigRead.model_validate(await self.get_config())

    async def update_config(
        self,
        update_data: earnings_models.EarningsConfigUpdate,
        current_user: db_models.Users
    ) -> earnings_models.EarningsConfigRead:
        _authorize_admin(current_user, "update the earnings configuration")
        log.info(f"Admin {current_user.id} updating earnings config: {update_data.model_dump(exclude_none=True)}")
        try:
            config = await self.get_config()
            if update_data.in_person_bonus is not None:
                config.in_person_bonus = update_data.in_person_bonus
            if update_data.invoice_markup is not None:
                config.invoice_markup = update_data.invoice_markup
            config.updated_at = lesson_clock.local_now()
            await self.db.flush()
            return earnings_models.EarningsConfigRead.model_validate(config)
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error updating earnings config: {e}", exc_info=True)
            raise BadRequestError("Failed to update earnings configuration") from e


class EarningsApprovalService:
    """
    Turns each tutor's completed lessons in a bi-weekly period into one
    pending approval record, and records the admin's one-shot decision on it.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        user_service: Annotated[UserService, Depends(UserService)],
        config_service: Annotated[EarningsConfigService, Depends(EarningsConfigService)],
        notification_service: Annotated[NotificationService, Depends(NotificationService)]
    ):
        self.db = db
        self.user_service = user_service
        self.config_service = config_service
        self.notification_service = notification_service

    # --- 1. Internal Fetchers (No Auth) ---

    async def _get_approval_by_id_internal(self, approval_id: UUID) -> db_models.EarningsApprovals:
        stmt = select(db_models.EarningsApprovals).options(
            selectinload(db_models.EarningsApprovals.lessons)
        ).filter(db_models.EarningsApprovals.id == approval_id)
        result = await self.db.execute(stmt)
        approval = result.scalars().first()
        if approval is None:
            raise NotFoundError("Earnings approval not found")
        return approval

    async def _get_approval_for_period(self, tutor_id: UUID, period: Period) -> db_models.EarningsApprovals | None:
        stmt = select(db_models.EarningsApprovals).options(
            selectinload(db_models.EarningsApprovals.lessons)
        ).filter(
            db_models.EarningsApprovals.tutor_id == tutor_id,
            db_models.EarningsApprovals.period_start == period.start,
            db_models.EarningsApprovals.period_end == period.end
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _get_completed_lessons(self, tutor_id: UUID, period: Period) -> list[db_models.Lessons]:
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.tutor_id == tutor_id,
            db_models.Lessons.status == LessonStatusEnum.COMPLETED.value,
            db_models.Lessons.lesson_date >= period.start,
            db_models.Lessons.lesson_date < period.end
        ).order_by(db_models.Lessons.lesson_date, db_models.Lessons.lesson_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def _format_approval(self, approval: db_models.EarningsApprovals) -> earnings_models.EarningsApprovalRead:
        return earnings_models.EarningsApprovalRead(
            id=approval.id,
            tutor_id=approval.tutor_id,
            period_start=approval.period_start,
            period_end=approval.period_end,
            total_hours=approval.total_hours,
            total_amount=approval.total_amount,
            status=approval.status,
            approved_by=approval.approved_by,
            approved_at=approval.approved_at,
            created_at=approval.created_at,
            lessons_count=len(approval.lessons)
        )

    # --- 2. Generation ---

    async def generate_tutor_bi_weekly_approval(
        self,
        tutor_id: UUID,
        reference_date: datetime.date
    ) -> db_models.EarningsApprovals | None:
        """
        Creates the pending approval for the period containing `reference_date`.
        Returns the existing record if the period was already generated, or
        None when the tutor has no completed lessons in it.
        """
        period = period_for(reference_date)
        tutor = await self.user_service.get_tutor_by_id(tutor_id)
        if tutor is None:
            raise NotFoundError("Tutor not found")

        existing = await self._get_approval_for_period(tutor_id, period)
        if existing is not None:
            return existing

        lessons = await self._get_completed_lessons(tutor_id, period)
        if not lessons:
            return None

        total_minutes = sum(lesson.duration for lesson in lessons)
        approval = db_models.EarningsApprovals(
            tutor_id=tutor_id,
            period_start=period.start,
            period_end=period.end,
            total_hours=minutes_to_hours(total_minutes),
            total_amount=earnings_amount(total_minutes, tutor.hourly_rate),
            status=ApprovalStatusEnum.PENDING.value,
            lessons=lessons
        )
        self.db.add(approval)
        await self.db.flush()
        log.info(
            f"Generated earnings approval {approval.id} for tutor {tutor_id} "
            f"({period.start} to {period.end}): {len(lessons)} lessons, {approval.total_hours}h, {approval.total_amount}."
        )
        return approval

    async def generate_bi_weekly_approvals(
        self,
        now: Optional[datetime.datetime] = None
    ) -> list[earnings_models.EarningsApprovalRead]:
        """Generates (or finds) the current period's approval for every tutor."""
        reference_date = (now or lesson_clock.local_now()).date()
        log.info(f"Generating bi-weekly earnings approvals for {reference_date}.")

        approvals = []
        for tutor in await self.user_service.get_all_tutors(active_only=False):
            try:
                approval = await self.generate_tutor_bi_weekly_approval(tutor.id, reference_date)
            except DomainError as e:
                log.warning(f"Skipping earnings generation for tutor {tutor.id}: {e.message}")
                continue
            if approval is not None:
                approvals.append(self._format_approval(approval))

        log.info(f"Bi-weekly generation finished: {len(approvals)} approval(s) for {reference_date}.")
        return approvals

    async def generate_bi_weekly_approvals_for_api(
        self,
        current_user: db_models.Users
    ) -> list[earnings_models.EarningsApprovalRead]:
        _authorize_admin(current_user, "generate earnings approvals")
        try:
            return await self.generate_bi_weekly_approvals()
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error generating bi-weekly approvals: {e}", exc_info=True)
            raise BadRequestError("Failed to generate bi-weekly approvals") from e

    # --- 3. Decisions ---

    async def get_pending_approvals(self, current_user: db_models.Users) -> list[earnings_models.PendingApprovalRead]:
        _authorize_admin(current_user, "view pending earnings approvals")
        stmt = select(db_models.EarningsApprovals).options(
            selectinload(db_models.EarningsApprovals.tutor),
            selectinload(db_models.EarningsApprovals.lessons)
        ).filter(
            db_models.EarningsApprovals.status == ApprovalStatusEnum.PENDING.value
        ).order_by(db_models.EarningsApprovals.created_at.desc())

        try:
            result = await self.db.execute(stmt)
            return [
                earnings_models.PendingApprovalRead(
                    **self._format_approval(approval).model_dump(),
                    tutor_name=approval.tutor.full_name if approval.tutor else "Unknown Tutor",
                    tutor_email=approval.tutor.email if approval.tutor else ""
                )
                for approval in result.scalars().all()
            ]
        except Exception as e:
            log.error(f"Error fetching pending approvals: {e}", exc_info=True)
            raise BadRequestError("Failed to fetch pending approvals") from e

    async def _decide(
        self,
        approval: db_models.EarningsApprovals,
        decision: str,
        current_user: db_models.Users
    ) -> earnings_models.EarningsApprovalRead:
        if approval.status != ApprovalStatusEnum.PENDING.value:
            raise BadRequestError("Earnings approval has already been processed")

        approval.status = decision
        approval.approved_by = current_user.id
        approval.approved_at = lesson_clock.local_now()
        await self.db.flush()
        log.info(f"Admin {current_user.id} {decision} earnings approval {approval.id} ({approval.total_amount}).")

        await self.notification_service.notify(
            NotificationKind.PAYMENT_DECISION,
            [approval.tutor_id],
            approval_id=str(approval.id),
            status=decision,
            period_start=approval.period_start.isoformat(),
            period_end=approval.period_end.isoformat(),
            total_hours=str(approval.total_hours),
            total_amount=str(approval.total_amount)
        )
        return self._format_approval(approval)

    async def approve_earnings(
        self,
        approval_id: UUID,
        decision: earnings_models.ApprovalDecision,
        current_user: db_models.Users
    ) -> earnings_models.EarningsApprovalRead:
        _authorize_admin(current_user, "decide on earnings approvals")
        try:
            approval = await self._get_approval_by_id_internal(approval_id)
            return await self._decide(approval, decision.status.value, current_user)
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error processing earnings approval {approval_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to process earnings approval") from e

    async def process_period_approval(
        self,
        tutor_id: UUID,
        decision: earnings_models.PeriodApprovalDecision,
        current_user: db_models.Users
    ) -> earnings_models.EarningsApprovalRead:
        """Same as approve_earnings, addressed by (tutor, period_start, period_end)."""
        _authorize_admin(current_user, "decide on earnings approvals")
        try:
            approval = await self._get_approval_for_period(
                tutor_id, Period(decision.period_start, decision.period_end)
            )
            if approval is None:
                raise NotFoundError("Earnings approval not found for this period")
            return await self._decide(approval, decision.status.value, current_user)
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error processing period approval for tutor {tutor_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to process period approval") from e

    # --- 4. Reporting ---

    async def get_tutor_earnings(self, tutor_id: UUID, current_user: db_models.Users) -> earnings_models.TutorEarningsSummary:
        """
        Pending and approved totals plus the full history, newest period first.
        Rejected records appear in the history but not in the totals.
        """
        if current_user.role == UserRole.TUTOR.value:
            if current_user.id != tutor_id:
                log.warning(f"SECURITY: Tutor {current_user.id} tried to read earnings of tutor {tutor_id}.")
                raise UnauthorizedError("Tutors can only view their own earnings")
        elif current_user.role != UserRole.ADMIN.value:
            log.warning(f"SECURITY: User {current_user.id} ({current_user.role}) tried to read tutor earnings.")
            raise UnauthorizedError("Only tutors and admins can view earnings")

        try:
            if await self.user_service.get_tutor_by_id(tutor_id) is None:
                raise NotFoundError("Tutor not found")

            stmt = select(db_models.EarningsApprovals).options(
                selectinload(db_models.EarningsApprovals.lessons)
            ).filter(
                db_models.EarningsApprovals.tutor_id == tutor_id
            ).order_by(db_models.EarningsApprovals.period_start.desc())
            result = await self.db.execute(stmt)
            approvals = list(result.scalars().all())

            pending_total = sum(
                (a.total_amount for a in approvals if a.status == ApprovalStatusEnum.PENDING.value), Decimal('0')
            )
            approved_total = sum(
                (a.total_amount for a in approvals if a.status == ApprovalStatusEnum.APPROVED.value), Decimal('0')
            )
            return earnings_models.TutorEarningsSummary(
                tutor_id=tutor_id,
                pending_total=to_cents(pending_total),
                approved_total=to_cents(approved_total),
                earnings_history=[self._format_approval(a) for a in approvals]
            )
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error fetching earnings for tutor {tutor_id}: {e}", exc_info=True)
            raise BadRequestError("Failed to fetch tutor earnings") from e

    def _enhance_period(
        self,
        approval: db_models.EarningsApprovals,
        hourly_rate: Decimal,
        config: db_models.EarningsConfig
    ) -> earnings_models.EnhancedPeriodEarnings:
        online = [l for l in approval.lessons if l.type == LessonTypeEnum.ONLINE.value]
        in_person = [l for l in approval.lessons if l.type == LessonTypeEnum.IN_PERSON.value]
        online_minutes = sum(l.duration for l in online)
        in_person_minutes = sum(l.duration for l in in_person)
        total_minutes = online_minutes + in_person_minutes

        base_salary = earnings_amount(total_minutes, hourly_rate)
        bonus = to_cents(Decimal(config.in_person_bonus) * len(in_person))
        total_salary = base_salary + bonus
        invoice_amount = to_cents(total_salary * (Decimal(1) + Decimal(config.invoice_markup) / Decimal(100)))

        return earnings_models.EnhancedPeriodEarnings(
            approval_id=approval.id,
            period_start=approval.period_start,
            period_end=approval.period_end,
            status=approval.status,
            online_lessons=len(online),
            in_person_lessons=len(in_person),
            online_hours=minutes_to_hours(online_minutes),
            in_person_hours=minutes_to_hours(in_person_minutes),
            total_hours=minutes_to_hours(total_minutes),
            base_salary=base_salary,
            in_person_bonus=bonus,
            total_salary=total_salary,
            invoice_amount=invoice_amount
        )

    async def get_enhanced_earnings_data(self, current_user: db_models.Users) -> earnings_models.EnhancedEarningsReport:
        """
        Salary and invoice breakdown for each tutor's most recent periods,
        priced with the tutor's current rate and the current earnings config.
        """
        _authorize_admin(current_user, "view the enhanced earnings report")
        try:
            config = await self.config_service.get_config()
            tutors = await self.user_service.get_all_tutors(active_only=False)

            report = []
            for tutor in tutors:
                stmt = select(db_models.EarningsApprovals).options(
                    selectinload(db_models.EarningsApprovals.lessons)
                ).filter(
                    db_models.EarningsApprovals.tutor_id == tutor.id
                ).order_by(
                    db_models.EarningsApprovals.period_start.desc()
                ).limit(settings.ENHANCED_EARNINGS_PERIODS)
                result = await self.db.execute(stmt)

                report.append(earnings_models.EnhancedTutorEarnings(
                    tutor_id=tutor.id,
                    tutor_name=tutor.full_name,
                    tutor_email=tutor.email,
                    hourly_rate=tutor.hourly_rate,
                    periods=[
                        self._enhance_period(approval, tutor.hourly_rate, config)
                        for approval in result.scalars().all()
                    ]
                ))

            return earnings_models.EnhancedEarningsReport(
                in_person_bonus=config.in_person_bonus,
                invoice_markup=config.invoice_markup,
                tutors=report
            )
        except DomainError:
            raise
        except Exception as e:
            log.error(f"Error building enhanced earnings report: {e}", exc_info=True)
            raise BadRequestError("Failed to build enhanced earnings report") from e
