'''
Read-only account lookups used by the lesson and earnings services.
Account management itself lives outside this backend.
'''
from typing import Annotated
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..common.logger import log


class UserService:
    """
    Base service for user-related database operations.
    Queries on `Users` return the concrete Admin, Student or Tutor object.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_user_by_email(self, email: str) -> db_models.Users | None:
        log.info(f"Fetching user profile for email: {email}")
        try:
            stmt = select(db_models.Users).filter(db_models.Users.email == email)
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            log.error(f"Database error fetching user by email {email}: {e}", exc_info=True)
            raise

    async def get_user_by_id(self, user_id: UUID) -> db_models.Users | None:
        log.info(f"Fetching user profile for ID: {user_id}")
        try:
            return await self.db.get(db_models.Users, user_id)
        except Exception as e:
            log.error(f"Database error fetching user by ID {user_id}: {e}", exc_info=True)
            raise

    async def get_tutor_by_id(self, tutor_id: UUID) -> db_models.Tutors | None:
        try:
            return await self.db.get(db_models.Tutors, tutor_id)
        except Exception as e:
            log.error(f"Database error fetching tutor {tutor_id}: {e}", exc_info=True)
            raise

    async def get_student_by_id(self, student_id: UUID) -> db_models.Students | None:
        try:
            return await self.db.get(db_models.Students, student_id)
        except Exception as e:
            log.error(f"Database error fetching student {student_id}: {e}", exc_info=True)
            raise

    async def get_all_tutors(self, active_only: bool = True) -> list[db_models.Tutors]:
        stmt = select(db_models.Tutors).order_by(db_models.Tutors.first_name, db_models.Tutors.last_name)
        if active_only:
            stmt = stmt.filter(db_models.Tutors.is_active.is_(True))
        try:
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            log.error(f"Database error listing tutors: {e}", exc_info=True)
            raise
