import pytest
import httpx
import datetime
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutorapp_backend.database import models as db_models
from src.tutorapp_backend.services.security import JWTHandler
from src.tutorapp_backend.database.db_enums import LessonStatusEnum, LessonTypeEnum, ApprovalStatusEnum
from tests.database import factories
from tests.constants import FIXED_PERIOD_START, FIXED_PERIOD_END

# Helper to create auth headers
def auth_headers_for_user(user: db_models.Users) -> dict:
    """Creates a JWT token for the given user and returns auth headers."""
    token = JWTHandler.create_access_token(subject=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.anyio
class TestEarningsAPIApprovals:

    @pytest.fixture
    async def pending_approval(
        self,
        db_session: AsyncSession,
        test_tutor_orm: db_models.Tutors
    ) -> db_models.EarningsApprovals:
        approval = factories.EarningsApprovalFactory(tutor=test_tutor_orm)
        await db_session.flush()
        return approval

    async def test_generate_biweekly(
        self,
        frozen_now,
        db_session: AsyncSession,
        client: httpx.AsyncClient,
        test_admin_orm: db_models.Admins,
        test_tutor_orm: db_models.Tutors,
        test_student_orm: db_models.Students
    ):
        print("Generating bi-weekly approvals as admin.")
        factories.LessonFactory(
            tutor=test_tutor_orm, student=test_student_orm,
            lesson_date=datetime.date(2025, 3, 10), lesson_time="07:00", duration=90,
            status=LessonStatusEnum.COMPLETED.value
        )
        await db_session.flush()

        response = await client.post("/earnings/generate-biweekly", headers=auth_headers_for_user(test_admin_orm))

        assert response.status_code == 200, response.json()
        body = response.json()
        assert len(body) == 1
        assert body[0]["period_start"] == FIXED_PERIOD_START.isoformat()
        assert body[0]["period_end"] == FIXED_PERIOD_END.isoformat()
        assert Decimal(body[0]["total_hours"]) == Decimal("1.50")
        assert Decimal(body[0]["total_amount"]) == Decimal("60.00")
        assert body[0]["status"] == "pending"

    async def test_generate_biweekly_as_tutor(
        self,
        client: httpx.AsyncClient,
        test_tutor_orm: db_models.Tutors
    ):
        response = await client.post("/earnings/generate-biweekly", headers=auth_headers_for_user(test_tutor_orm))
        assert response.status_code == 403

    async def test_pending_list_and_decision(
        self,
        frozen_now,
        client: httpx.AsyncClient,
        pending_approval: db_models.EarningsApprovals,
        test_admin_orm: db_models.Admins
    ):
        headers = auth_headers_for_user(test_admin_orm)

        response = await client.get("/earnings/pending-approvals", headers=headers)
        assert response.status_code == 200, response.json()
        assert [a["id"] for a in response.json()] == [str(pending_approval.id)]
        assert response.json()[0]["tutor_name"] == "Tom Tutor"

        response = await client.patch(
            f"/earnings/approval/{pending_approval.id}", json={"status": "approved"}, headers=headers
        )
        assert response.status_code == 200, response.json()
        assert response.json()["status"] == "approved"
        assert response.json()["approved_by"] == str(test_admin_orm.id)

        response = await client.patch(
            f"/earnings/approval/{pending_approval.id}", json={"status": "rejected"}, headers=headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Earnings approval has already been processed"

        response = await client.get("/earnings/pending-approvals", headers=headers)
        assert response.json() == []

    async def test_decision_must_be_approved_or_rejected(
        self,
        client: httpx.AsyncClient,
        pending_approval: db_models.EarningsApprovals,
        test_admin_orm: db_models.Admins
    ):
        response = await client.patch(
            f"/earnings/approval/{pending_approval.id}", json={"status": "pending"},
            headers=auth_headers_for_user(test_admin_orm)
        )
        assert response.status_code == 422

    async def test_period_approval(
        self,
        frozen_now,
        client: httpx.AsyncClient,
        pending_approval: db_models.EarningsApprovals,
        test_admin_orm: db_models.Admins,
        test_tutor_orm: db_models.Tutors
    ):
        response = await client.patch(
            f"/earnings/period-approval/{test_tutor_orm.id}",
            json={
                "period_start": FIXED_PERIOD_START.isoformat(),
                "period_end": FIXED_PERIOD_END.isoformat(),
                "status": "rejected"
            },
            headers=auth_headers_for_user(test_admin_orm)
        )
        assert response.status_code == 200, response.json()
        assert response.json()["id"] == str(pending_approval.id)
        assert response.json()["status"] == "rejected"

    async def test_period_approval_not_found(
        self,
        client: httpx.AsyncClient,
        test_admin_orm: db_models.Admins,
        test_tutor_orm: db_models.Tutors
    ):
        response = await client.patch(
            f"/earnings/period-approval/{test_tutor_orm.id}",
            json={
                "period_start": FIXED_PERIOD_START.isoformat(),
                "period_end": FIXED_PERIOD_END.isoformat(),
                "status": "approved"
            },
            headers=auth_headers_for_user(test_admin_orm)
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Earnings approval not found for this period"


@pytest.mark.anyio
class TestEarningsAPIReports:

    async def test_tutor_reads_own_earnings(
        self,
        db_session: AsyncSession,
        client: httpx.AsyncClient,
        test_tutor_orm: db_models.Tutors
    ):
        factories.EarningsApprovalFactory(tutor=test_tutor_orm, total_amount=Decimal("100.00"))
        factories.EarningsApprovalFactory(
            tutor=test_tutor_orm, period_start=datetime.date(2025, 2, 24), period_end=FIXED_PERIOD_START,
            total_amount=Decimal("200.00"), status=ApprovalStatusEnum.APPROVED.value
        )
        await db_session.flush()

        response = await client.get("/earnings/tutor-earnings", headers=auth_headers_for_user(test_tutor_orm))

        assert response.status_code == 200, response.json()
        body = response.json()
        assert Decimal(body["pending_total"]) == Decimal("100.00")
        assert Decimal(body["approved_total"]) == Decimal("200.00")
        assert len(body["earnings_history"]) == 2

    async def test_tutor_cannot_read_other_tutor(
        self,
        client: httpx.AsyncClient,
        test_tutor_orm: db_models.Tutors,
        test_other_tutor_orm: db_models.Tutors
    ):
        response = await client.get(
            f"/earnings/tutor-earnings/{test_tutor_orm.id}", headers=auth_headers_for_user(test_other_tutor_orm)
        )
        assert response.status_code == 403

    async def test_enhanced_earnings(
        self,
        db_session: AsyncSession,
        client: httpx.AsyncClient,
        test_admin_orm: db_models.Admins,
        test_tutor_orm: db_models.Tutors,
        test_student_orm: db_models.Students
    ):
        online = factories.LessonFactory(
            tutor=test_tutor_orm, student=test_student_orm, lesson_time="10:00",
            status=LessonStatusEnum.COMPLETED.value
        )
        in_person = factories.LessonFactory(
            tutor=test_tutor_orm, student=test_student_orm, lesson_time="14:00",
            type=LessonTypeEnum.IN_PERSON.value, location="Main library",
            status=LessonStatusEnum.COMPLETED.value
        )
        factories.EarningsApprovalFactory(tutor=test_tutor_orm, lessons=[online, in_person])
        await db_session.flush()

        response = await client.get("/earnings/enhanced-earnings", headers=auth_headers_for_user(test_admin_orm))

        assert response.status_code == 200, response.json()
        period = response.json()["tutors"][0]["periods"][0]
        assert Decimal(period["base_salary"]) == Decimal("80.00")
        assert Decimal(period["in_person_bonus"]) == Decimal("5.00")
        assert Decimal(period["total_salary"]) == Decimal("85.00")
        assert Decimal(period["invoice_amount"]) == Decimal("97.75")

    async def test_config_round_trip(
        self,
        frozen_now,
        client: httpx.AsyncClient,
        test_admin_orm: db_models.Admins
    ):
        headers = auth_headers_for_user(test_admin_orm)

        response = await client.get("/earnings/config", headers=headers)
        assert response.status_code == 200, response.json()
        assert Decimal(response.json()["invoice_markup"]) == Decimal("15.00")

        response = await client.put("/earnings/config", json={"in_person_bonus": "7.50"}, headers=headers)
        assert response.status_code == 200, response.json()
        assert Decimal(response.json()["in_person_bonus"]) == Decimal("7.50")

        response = await client.put("/earnings/config", json={"invoice_markup": "150"}, headers=headers)
        assert response.status_code == 422

    async def test_config_is_admin_only(
        self,
        client: httpx.AsyncClient,
        test_tutor_orm: db_models.Tutors
    ):
        response = await client.get("/earnings/config", headers=auth_headers_for_user(test_tutor_orm))
        assert response.status_code == 403
