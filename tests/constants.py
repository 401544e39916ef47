import datetime
from uuid import UUID

TEST_PASSWORD_ADMIN = "admin-pass-123"
TEST_PASSWORD_TUTOR = "tutor-pass-123"
TEST_PASSWORD_STUDENT = "student-pass-123"

TEST_ADMIN_ID = UUID('5b0e6f0c-3f7a-4f43-9d0a-3a1f2e7c9b01')
TEST_TUTOR_ID = UUID('8c2d1e4f-6a7b-4c3d-8e9f-0a1b2c3d4e02')
TEST_OTHER_TUTOR_ID = UUID('1f2e3d4c-5b6a-4978-8695-a4b3c2d1e003')
TEST_STUDENT_ID = UUID('d7c6b5a4-9382-4716-a5b4-c3d2e1f0a904')
TEST_OTHER_STUDENT_ID = UUID('0a9b8c7d-6e5f-4a3b-9c1d-e2f3a4b5c605')

# A Monday that is exactly the start of a bi-weekly period (epoch 2024-01-01 + 31 * 14 days).
FIXED_NOW = datetime.datetime(2025, 3, 10, 9, 0)
FIXED_PERIOD_START = datetime.date(2025, 3, 10)
FIXED_PERIOD_END = datetime.date(2025, 3, 24)

# A Wednesday inside the fixed period.
LESSON_DAY = datetime.date(2025, 3, 12)
