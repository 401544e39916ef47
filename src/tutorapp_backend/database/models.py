from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, SmallInteger, String, Table, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

class Base(DeclarativeBase):
    pass


def _now() -> datetime.datetime:
    # Lesson times are server-local wall-clock values, so timestamps are too.
    return datetime.datetime.now()


class Users(Base):
    __tablename__ = 'users'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='users_pkey'),
        UniqueConstraint('email', name='users_email_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255))
    password: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(Enum('admin', 'student', 'tutor', name='user_role'))
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now)

    __mapper_args__ = {'polymorphic_on': 'role', 'with_polymorphic': '*'}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Admins(Users):
    __tablename__ = 'admins'
    __table_args__ = (
        ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE', name='admins_id_fkey'),
        PrimaryKeyConstraint('id', name='admins_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    __mapper_args__ = {'polymorphic_identity': 'admin'}


class Students(Users):
    __tablename__ = 'students'
    __table_args__ = (
        ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE', name='students_id_fkey'),
        PrimaryKeyConstraint('id', name='students_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32))

    __mapper_args__ = {'polymorphic_identity': 'student'}


class Tutors(Users):
    __tablename__ = 'tutors'
    __table_args__ = (
        ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE', name='tutors_id_fkey'),
        PrimaryKeyConstraint('id', name='tutors_pkey'),
        CheckConstraint('hourly_rate >= 0', name='tutors_hourly_rate_check')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32))
    hourly_rate: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), default=decimal.Decimal('0'))

    __mapper_args__ = {'polymorphic_identity': 'tutor'}


class Lessons(Base):
    __tablename__ = 'lessons'
    __table_args__ = (
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], name='lessons_tutor_id_fkey'),
        ForeignKeyConstraint(['student_id'], ['students.id'], name='lessons_student_id_fkey'),
        PrimaryKeyConstraint('id', name='lessons_pkey'),
        CheckConstraint('duration > 0', name='lessons_duration_check'),
        Index('idx_lessons_tutor_date', 'tutor_id', 'lesson_date'),
        Index('idx_lessons_student_date', 'student_id', 'lesson_date'),
        Index('idx_lessons_bundle', 'bundle_id'),
        # At most one open lesson may start in a given tutor slot.
        Index(
            'uq_lessons_open_tutor_slot',
            'tutor_id', 'lesson_date', 'lesson_time',
            unique=True,
            postgresql_where=text("status IN ('Incoming', 'Active')"),
            sqlite_where=text("status IN ('Incoming', 'Active')")
        )
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_date: Mapped[datetime.date] = mapped_column(Date)
    lesson_time: Mapped[str] = mapped_column(String(5))  # HH:MM
    duration: Mapped[int] = mapped_column(Integer)  # minutes
    level: Mapped[str] = mapped_column(Enum(
        '1st grade', '2nd grade', '3rd grade', '4th grade', '5th grade',
        '6th grade', '7th grade', '8th grade', '9th grade', '10th grade',
        '1T', '1P', '2P', 'S1', 'R1', 'S2', 'R2',
        name='lesson_level_enum'))
    topic: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(Enum('online', 'in-person', name='lesson_type_enum'), default='online')
    location: Mapped[Optional[str]] = mapped_column(Text)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    status: Mapped[str] = mapped_column(Enum('Incoming', 'Active', 'Completed', 'Cancelled', name='lesson_status_enum'))
    bundle_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    tutor_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    tutor: Mapped['Tutors'] = relationship('Tutors', foreign_keys=[tutor_id])
    student: Mapped['Students'] = relationship('Students', foreign_keys=[student_id])


t_earnings_approval_lessons = Table(
    'earnings_approval_lessons', Base.metadata,
    Column('approval_id', Uuid, primary_key=True),
    Column('lesson_id', Uuid, primary_key=True),
    ForeignKeyConstraint(['approval_id'], ['earnings_approvals.id'], ondelete='CASCADE', name='earnings_approval_lessons_approval_id_fkey'),
    ForeignKeyConstraint(['lesson_id'], ['lessons.id'], name='earnings_approval_lessons_lesson_id_fkey'),
)


class EarningsApprovals(Base):
    __tablename__ = 'earnings_approvals'
    __table_args__ = (
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], name='earnings_approvals_tutor_id_fkey'),
        ForeignKeyConstraint(['approved_by'], ['admins.id'], name='earnings_approvals_approved_by_fkey'),
        PrimaryKeyConstraint('id', name='earnings_approvals_pkey'),
        UniqueConstraint('tutor_id', 'period_start', 'period_end', name='earnings_approvals_tutor_period_key'),
        CheckConstraint('period_end > period_start', name='earnings_approvals_period_check'),
        Index('idx_earnings_approvals_status', 'status')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    period_start: Mapped[datetime.date] = mapped_column(Date)  # inclusive
    period_end: Mapped[datetime.date] = mapped_column(Date)  # exclusive
    total_hours: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    total_amount: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[str] = mapped_column(Enum('pending', 'approved', 'rejected', name='approval_status_enum'), default='pending')
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    approved_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now)

    tutor: Mapped['Tutors'] = relationship('Tutors', foreign_keys=[tutor_id])
    lessons: Mapped[list['Lessons']] = relationship('Lessons', secondary=t_earnings_approval_lessons, order_by='Lessons.lesson_date')


class EarningsConfig(Base):
    __tablename__ = 'earnings_config'
    __table_args__ = (
        CheckConstraint('id = 1', name='single_row_check'),
        CheckConstraint('in_person_bonus >= 0', name='earnings_config_bonus_check'),
        CheckConstraint('invoice_markup >= 0 AND invoice_markup <= 100', name='earnings_config_markup_check'),
        PrimaryKeyConstraint('id', name='earnings_config_pkey')
    )

    id: Mapped[int] = mapped_column(SmallInteger, primary_key=True, default=1)
    in_person_bonus: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    invoice_markup: Mapped[decimal.Decimal] = mapped_column(Numeric(5, 2))
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now, onupdate=_now)
