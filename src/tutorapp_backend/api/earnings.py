'''
API endpoints for tutor earnings, approvals and the earnings configuration.
'''
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends

from ..database import models as db_models
from ..models import earnings as earnings_models
from ..services.security import verify_token_and_get_user
from ..services.earnings_service import EarningsApprovalService, EarningsConfigService

class EarningsAPI:
    """
    A class to encapsulate endpoints for Earnings.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/earnings",
            tags=["Earnings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/generate-biweekly",
            self.generate_bi_weekly_approvals,
            methods=["POST"],
            response_model=list[earnings_models.EarningsApprovalRead])
        self.router.add_api_route(
            "/pending-approvals",
            self.list_pending_approvals,
            methods=["GET"],
            response_model=list[earnings_models.PendingApprovalRead])
        self.router.add_api_route(
            "/approval/{approval_id}",
            self.process_approval,
            methods=["PATCH"],
            response_model=earnings_models.EarningsApprovalRead)
        self.router.add_api_route(
            "/period-approval/{tutor_id}",
            self.process_period_approval,
            methods=["PATCH"],
            response_model=earnings_models.EarningsApprovalRead)
        self.router.add_api_route(
            "/tutor-earnings",
            self.get_my_earnings,
            methods=["GET"],
            response_model=earnings_models.TutorEarningsSummary)
        self.router.add_api_route(
            "/tutor-earnings/{tutor_id}",
            self.get_tutor_earnings,
            methods=["GET"],
            response_model=earnings_models.TutorEarningsSummary)
        self.router.add_api_route(
            "/enhanced-earnings",
            self.get_enhanced_earnings,
            methods=["GET"],
            response_model=earnings_models.EnhancedEarningsReport)
        self.router.add_api_route(
            "/config",
            self.get_config,
            methods=["GET"],
            response_model=earnings_models.EarningsConfigRead)
        self.router.add_api_route(
            "/config",
            self.update_config,
            methods=["PUT"],
            response_model=earnings_models.EarningsConfigRead)

    async def generate_bi_weekly_approvals(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> list[Any]:
        """
        Generates the current period's approvals for every tutor. Admin only.
        """
        return await earnings_service.generate_bi_weekly_approvals_for_api(current_user)

    async def list_pending_approvals(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> list[Any]:
        return await earnings_service.get_pending_approvals(current_user)

    async def process_approval(
        self,
        approval_id: UUID,
        decision: earnings_models.ApprovalDecision,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> Any:
        """
        Approves or rejects a pending approval. Each record can be decided once.
        """
        return await earnings_service.approve_earnings(approval_id, decision, current_user)

    async def process_period_approval(
        self,
        tutor_id: UUID,
        decision: earnings_models.PeriodApprovalDecision,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> Any:
        """
        Approves or rejects the approval of one tutor for an exact period.
        """
        return await earnings_service.process_period_approval(tutor_id, decision, current_user)

    async def get_my_earnings(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> Any:
        """
        The calling tutor's own earnings summary.
        """
        return await earnings_service.get_tutor_earnings(current_user.id, current_user)

    async def get_tutor_earnings(
        self,
        tutor_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> Any:
        return await earnings_service.get_tutor_earnings(tutor_id, current_user)

    async def get_enhanced_earnings(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        earnings_service: Annotated[EarningsApprovalService, Depends(EarningsApprovalService)]
    ) -> Any:
        """
        Salary and invoice breakdown of each tutor's recent periods. Admin only.
        """
        return await earnings_service.get_enhanced_earnings_data(current_user)

    async def get_config(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        config_service: Annotated[EarningsConfigService, Depends(EarningsConfigService)]
    ) -> Any:
        return await config_service.get_config_for_api(current_user)

    async def update_config(
        self,
        update_data: earnings_models.EarningsConfigUpdate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        config_service: Annotated[EarningsConfigService, Depends(EarningsConfigService)]
    ) -> Any:
        return await config_service.update_config(update_data, current_user)


# Instantiate the class and export its router
earnings_api = EarningsAPI()
router = earnings_api.router
