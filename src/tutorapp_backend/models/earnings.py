'''
Pydantic models for earnings approvals, decisions, reports and the earnings config.
'''
import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..database.db_enums import ApprovalStatusEnum, ApprovalDecisionEnum


class EarningsApprovalRead(BaseModel):
    id: UUID
    tutor_id: UUID
    period_start: datetime.date
    period_end: datetime.date
    total_hours: Decimal
    total_amount: Decimal
    status: ApprovalStatusEnum
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
    lessons_count: int

    model_config = ConfigDict(from_attributes=True)


class PendingApprovalRead(EarningsApprovalRead):
    """A pending approval with the tutor's contact details for the admin queue."""
    tutor_name: str
    tutor_email: str


class ApprovalDecision(BaseModel):
    status: ApprovalDecisionEnum


class PeriodApprovalDecision(BaseModel):
    period_start: datetime.date
    period_end: datetime.date
    status: ApprovalDecisionEnum

    @model_validator(mode='after')
    def check_period(self) -> 'PeriodApprovalDecision':
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start.")
        return self


class TutorEarningsSummary(BaseModel):
    tutor_id: UUID
    pending_total: Decimal
    approved_total: Decimal
    earnings_history: list[EarningsApprovalRead]


class EnhancedPeriodEarnings(BaseModel):
    approval_id: UUID
    period_start: datetime.date
    period_end: datetime.date
    status: ApprovalStatusEnum
    online_lessons: int
    in_person_lessons: int
    online_hours: Decimal
    in_person_hours: Decimal
    total_hours: Decimal
    base_salary: Decimal
    in_person_bonus: Decimal
    total_salary: Decimal
    invoice_amount: Decimal


class EnhancedTutorEarnings(BaseModel):
    tutor_id: UUID
    tutor_name: str
    tutor_email: str
    hourly_rate: Decimal
    periods: list[EnhancedPeriodEarnings]


class EnhancedEarningsReport(BaseModel):
    in_person_bonus: Decimal
    invoice_markup: Decimal
    tutors: list[EnhancedTutorEarnings]


class EarningsConfigRead(BaseModel):
    in_person_bonus: Decimal
    invoice_markup: Decimal
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class EarningsConfigUpdate(BaseModel):
    in_person_bonus: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    invoice_markup: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)

    @model_validator(mode='after')
    def check_not_empty(self) -> 'EarningsConfigUpdate':
        if self.in_person_bonus is None and self.invoice_markup is None:
            raise ValueError("Provide in_person_bonus, invoice_markup, or both.")
        return self
