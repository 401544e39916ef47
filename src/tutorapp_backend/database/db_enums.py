'''
Python mirrors of the database enum types.
The values must match the labels declared on the ORM columns in models.py.
'''
import enum


class UserRole(str, enum.Enum):
    ADMIN = 'admin'
    STUDENT = 'student'
    TUTOR = 'tutor'


class LessonStatusEnum(str, enum.Enum):
    INCOMING = 'Incoming'
    ACTIVE = 'Active'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'


class ExternalLessonStatus(str, enum.Enum):
    """The tri-state status shown to API consumers."""
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class LessonTypeEnum(str, enum.Enum):
    ONLINE = 'online'
    IN_PERSON = 'in-person'


class LessonLevelEnum(str, enum.Enum):
    GRADE_1 = '1st grade'
    GRADE_2 = '2nd grade'
    GRADE_3 = '3rd grade'
    GRADE_4 = '4th grade'
    GRADE_5 = '5th grade'
    GRADE_6 = '6th grade'
    GRADE_7 = '7th grade'
    GRADE_8 = '8th grade'
    GRADE_9 = '9th grade'
    GRADE_10 = '10th grade'
    T1 = '1T'
    P1 = '1P'
    P2 = '2P'
    S1 = 'S1'
    R1 = 'R1'
    S2 = 'S2'
    R2 = 'R2'


class ApprovalStatusEnum(str, enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class ApprovalDecisionEnum(str, enum.Enum):
    """The two outcomes an admin may record on a pending approval."""
    APPROVED = 'approved'
    REJECTED = 'rejected'


class NotificationKind(str, enum.Enum):
    LESSON_ASSIGNED = 'lesson-assigned'
    LESSON_RESCHEDULED = 'lesson-rescheduled'
    LESSON_CANCELLED = 'lesson-cancelled'
    LESSON_COMPLETED = 'lesson-completed'
    PAYMENT_DECISION = 'payment-decision'
    ACCOUNT_WELCOME = 'account-welcome'
    PASSWORD_RESET = 'password-reset'
