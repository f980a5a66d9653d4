"""
报名业务服务层
报名状态只通过 state_machines 中的迁移表变化，写入均为比较并设置
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from courseplatform.core.config import settings
from courseplatform.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from courseplatform.models.learning import Enrollment, EnrollmentAction, EnrollmentStatus
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.repositories.learning_repository import LearningRepository
from courseplatform.services.common_cache import SimpleCache, course_cache_pattern
from courseplatform.services.state_machines import next_enrollment_status

logger = logging.getLogger(__name__)


class EnrollmentService:
    """报名业务服务"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[SimpleCache] = None,
        max_retries: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.max_retries = max_retries or settings.max_write_retries

    async def _invalidate(self, course_id: str) -> None:
        if self.cache:
            await self.cache.delete_pattern(course_cache_pattern(course_id))

    async def enroll(self, user_id: str, course_id: str) -> Enrollment:
        """报名课程，重复报名直接返回已有记录；只有新建记录时课程学员数+1"""
        for attempt in range(self.max_retries):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        repo = LearningRepository(session)
                        content_repo = ContentRepository(session)

                        db_enrollment = await repo.get_enrollment(user_id, course_id)
                        if db_enrollment:
                            return repo.enrollment_to_model(db_enrollment)

                        if not await content_repo.get_course(course_id):
                            raise NotFoundError("course", course_id)

                        db_enrollment = await repo.create_enrollment(user_id, course_id)
                        await content_repo.update_course_stats(course_id, student_count_delta=1)
                        enrollment = repo.enrollment_to_model(db_enrollment)

            except IntegrityError:
                logger.info(f"报名并发冲突，重新读取: user={user_id}, course={course_id}, attempt={attempt + 1}")
                continue

            logger.info(f"用户 {user_id} 报名课程 {course_id}")
            await self._invalidate(course_id)
            return enrollment

        raise ConflictError(
            f"报名并发写入冲突，已重试{self.max_retries}次",
            {"user_id": user_id, "course_id": course_id}
        )

    async def get_enrollment(self, user_id: str, course_id: str) -> Optional[Enrollment]:
        async with self.session_factory() as session:
            repo = LearningRepository(session)
            db_enrollment = await repo.get_enrollment(user_id, course_id)
            return repo.enrollment_to_model(db_enrollment) if db_enrollment else None

    async def get_user_enrollments(self, user_id: str, status_filter: Optional[EnrollmentStatus] = None) -> List[Enrollment]:
        async with self.session_factory() as session:
            repo = LearningRepository(session)
            db_enrollments = await repo.get_user_enrollments(
                user_id, status_filter.value if status_filter else None
            )
            return [repo.enrollment_to_model(item) for item in db_enrollments]

    async def transition(self, user_id: str, course_id: str, action: EnrollmentAction) -> Enrollment:
        """按迁移表修改报名状态，不允许的迁移抛出 InvalidTransitionError"""
        action = EnrollmentAction(action)

        for attempt in range(self.max_retries):
            async with self.session_factory() as session:
                async with session.begin():
                    repo = LearningRepository(session)
                    db_enrollment = await repo.get_enrollment(user_id, course_id)
                    if not db_enrollment:
                        raise NotFoundError("enrollment", f"{user_id}/{course_id}")

                    current = EnrollmentStatus(db_enrollment.status)
                    target = next_enrollment_status(current, action)
                    if target == current:
                        return repo.enrollment_to_model(db_enrollment)

                    updated = await repo.compare_and_set_enrollment_status(
                        db_enrollment.id, current.value, target.value
                    )
                    if updated:
                        await session.refresh(db_enrollment)
                        enrollment = repo.enrollment_to_model(db_enrollment)

            if updated:
                logger.info(f"报名状态变更 {user_id}/{course_id}: {current.value} -> {target.value} ({action.value})")
                await self._invalidate(course_id)
                return enrollment

            logger.info(f"报名状态并发修改，重试: {user_id}/{course_id}, attempt={attempt + 1}")

        raise ConflictError(
            f"报名状态并发写入冲突，已重试{self.max_retries}次",
            {"user_id": user_id, "course_id": course_id, "action": action.value}
        )

    async def complete(self, user_id: str, course_id: str) -> Enrollment:
        return await self.transition(user_id, course_id, EnrollmentAction.COMPLETE)

    async def pause(self, user_id: str, course_id: str) -> Enrollment:
        return await self.transition(user_id, course_id, EnrollmentAction.PAUSE)

    async def resume(self, user_id: str, course_id: str) -> Enrollment:
        return await self.transition(user_id, course_id, EnrollmentAction.RESUME)

    async def cancel(self, user_id: str, course_id: str) -> Enrollment:
        return await self.transition(user_id, course_id, EnrollmentAction.CANCEL)

    async def reactivate(self, user_id: str, course_id: str) -> Enrollment:
        return await self.transition(user_id, course_id, EnrollmentAction.REACTIVATE)

    async def on_progress_reaches_complete(self, user_id: str, course_id: str) -> Optional[Enrollment]:
        """学习进度达到100%时调用：仅 ACTIVE 报名变为 COMPLETED，暂停/取消的报名保持不变"""
        enrollment = await self.get_enrollment(user_id, course_id)
        if enrollment is None:
            logger.info(f"用户 {user_id} 未报名课程 {course_id}，跳过完成状态更新")
            return None

        if enrollment.status != EnrollmentStatus.ACTIVE:
            return enrollment

        try:
            return await self.complete(user_id, course_id)
        except InvalidTransitionError:
            # 期间被暂停或取消
            return await self.get_enrollment(user_id, course_id)
