'''
API endpoints for scheduling and managing lessons.
'''
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..database import models as db_models
from ..models import lesson as lesson_models
from ..services.security import verify_token_and_get_user
from ..services.lesson_service import LessonService

class LessonsAPI:
    """
    A class to encapsulate endpoints for Lessons.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/lessons",
            tags=["Lessons"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/",
            self.list_lessons,
            methods=["GET"],
            response_model=list[lesson_models.LessonListItem])
        self.router.add_api_route(
            "/",
            self.create_lesson,
            methods=["POST"],
            status_code=status.HTTP_201_CREATED,
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/bundle",
            self.create_lesson_bundle,
            methods=["POST"],
            status_code=status.HTTP_201_CREATED,
            response_model=list[lesson_models.LessonRead])
        self.router.add_api_route(
            "/bulk-update",
            self.bulk_update_lessons,
            methods=["POST"],
            response_model=list[lesson_models.LessonRead])
        self.router.add_api_route(
            "/update-expired",
            self.update_expired_lessons,
            methods=["POST"],
            response_model=lesson_models.ExpiredLessonsResult)
        self.router.add_api_route(
            "/{lesson_id}",
            self.update_lesson,
            methods=["PUT"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/reschedule",
            self.reschedule_lesson,
            methods=["PATCH"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/cancel",
            self.cancel_lesson,
            methods=["PATCH"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/undo-cancel",
            self.undo_lesson_cancellation,
            methods=["PATCH"],
            response_model=lesson_models.LessonRead)
        self.router.add_api_route(
            "/{lesson_id}/complete",
            self.complete_lesson,
            methods=["PATCH"],
            response_model=lesson_models.LessonRead)

    async def list_lessons(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> list[Any]:
        """
        Lessons visible to the current user, soonest first.
        """
        return await lesson_service.get_lessons(current_user)

    async def create_lesson(
        self,
        lesson_data: lesson_models.LessonCreate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        """
        Schedules a lesson. Students may book for themselves; admins for anyone.
        """
        return await lesson_service.create_lesson(lesson_data, current_user)

    async def create_lesson_bundle(
        self,
        bundle_data: lesson_models.LessonBundleCreate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> list[Any]:
        """
        Schedules a weekly series of lessons. Fails as a whole on any conflict.
        """
        return await lesson_service.create_lesson_bundle(bundle_data, current_user)

    async def update_lesson(
        self,
        lesson_id: UUID,
        update_data: lesson_models.LessonUpdate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.update_lesson(lesson_id, update_data, current_user)

    async def reschedule_lesson(
        self,
        lesson_id: UUID,
        reschedule_data: lesson_models.LessonReschedule,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.reschedule_lesson(lesson_id, reschedule_data, current_user)

    async def cancel_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        """
        Cancels a lesson. Late student cancellations still pay the tutor.
        """
        return await lesson_service.cancel_lesson(lesson_id, current_user)

    async def undo_lesson_cancellation(
        self,
        lesson_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.undo_lesson_cancellation(lesson_id, current_user)

    async def complete_lesson(
        self,
        lesson_id: UUID,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.complete_lesson(lesson_id, current_user)

    async def bulk_update_lessons(
        self,
        bulk_data: lesson_models.LessonBulkUpdate,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> list[Any]:
        """
        Applies the same changes to several lessons. Restricted to admins.
        """
        return await lesson_service.bulk_update_lessons(bulk_data, current_user)

    async def update_expired_lessons(
        self,
        current_user: Annotated[db_models.Users, Depends(verify_token_and_get_user)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        """
        Runs the expiry sweep now instead of waiting for the scheduler. Admin only.
        """
        return await lesson_service.update_expired_lessons_for_api(current_user)


# Instantiate the class and export its router
lessons_api = LessonsAPI()
router = lessons_api.router
