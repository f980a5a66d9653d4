"""
学习进度服务
记录已完成章节、计算完成百分比（只增不减），维护课程评价及课程评分
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from courseplatform.core.config import settings
from courseplatform.core.exceptions import ConflictError, DuplicateReviewError, NotFoundError, OutOfRangeError
from courseplatform.models.learning import CourseProgress, CourseReview
from courseplatform.repositories.content_repository import ContentRepository
from courseplatform.repositories.learning_repository import LearningRepository
from courseplatform.services.common_cache import SimpleCache, course_cache_pattern
from courseplatform.services.enrollment_service import EnrollmentService

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def compute_progress_percentage(completed_count: int, total_sections: int) -> int:
    """floor(100 * 已完成 / 总数)，总数为0时为0，结果限制在[0, 100]"""
    if total_sections <= 0:
        return 0
    return max(0, min(100, (100 * completed_count) // total_sections))


def validate_rating(rating) -> int:
    """评分必须是1-5的整数"""
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise OutOfRangeError("rating", rating, MIN_RATING, MAX_RATING)
    return rating


class ProgressTracker:
    """学习进度服务"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        enrollment_service: Optional[EnrollmentService] = None,
        cache: Optional[SimpleCache] = None,
        max_retries: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.max_retries = max_retries or settings.max_write_retries
        self.enrollment_service = enrollment_service or EnrollmentService(
            session_factory, cache=cache, max_retries=self.max_retries
        )

    async def _invalidate(self, course_id: str) -> None:
        if self.cache:
            await self.cache.delete_pattern(course_cache_pattern(course_id))

    # ---------- 学习进度 ----------

    async def mark_section_complete(
        self,
        user_id: str,
        course_id: str,
        section_id: str,
        total_sections_in_course: Optional[int] = None
    ) -> CourseProgress:
        """标记章节完成

        未传入章节总数时按课程现有章节计数；百分比不会低于已保存的值。
        并发写入由唯一约束（首次创建）和版本号（更新）检测，冲突后重新读取重试
        """
        if total_sections_in_course is not None and total_sections_in_course < 0:
            raise OutOfRangeError("total_sections_in_course", total_sections_in_course, 0, None)

        for attempt in range(self.max_retries):
            try:
                progress = await self._mark_once(user_id, course_id, section_id, total_sections_in_course)
            except (IntegrityError, StaleDataError) as e:
                logger.info(
                    f"学习进度并发冲突，重试: {user_id}/{course_id}, attempt={attempt + 1}, {type(e).__name__}"
                )
                continue

            await self._invalidate(course_id)
            if progress.is_complete:
                await self.enrollment_service.on_progress_reaches_complete(user_id, course_id)
            return progress

        raise ConflictError(
            f"学习进度并发写入冲突，已重试{self.max_retries}次",
            {"user_id": user_id, "course_id": course_id, "section_id": section_id}
        )

    async def _mark_once(
        self,
        user_id: str,
        course_id: str,
        section_id: str,
        total_sections_in_course: Optional[int]
    ) -> CourseProgress:
        async with self.session_factory() as session:
            async with session.begin():
                repo = LearningRepository(session)
                content_repo = ContentRepository(session)

                total = total_sections_in_course
                if total is None:
                    total = await content_repo.count_course_sections(course_id)

                db_progress = await repo.get_progress(user_id, course_id)
                if db_progress is None:
                    if not await content_repo.get_course(course_id):
                        raise NotFoundError("course", course_id)

                    db_progress = await repo.create_progress(
                        user_id,
                        course_id,
                        [section_id],
                        compute_progress_percentage(1, total)
                    )
                else:
                    completed = list(db_progress.completed_sections or [])
                    if section_id not in completed:
                        completed.append(section_id)

                    percentage = max(
                        db_progress.progress_percentage or 0,
                        compute_progress_percentage(len(completed), total)
                    )
                    db_progress = await repo.save_progress(db_progress, completed, percentage)

                return repo.progress_to_model(db_progress)

    async def get_progress(self, user_id: str, course_id: str) -> Optional[CourseProgress]:
        async with self.session_factory() as session:
            repo = LearningRepository(session)
            db_progress = await repo.get_progress(user_id, course_id)
            return repo.progress_to_model(db_progress) if db_progress else None

    # ---------- 课程评价 ----------

    async def record_review(
        self,
        user_id: str,
        course_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> CourseReview:
        """提交评价，每个用户对每门课程只能评价一次"""
        validate_rating(rating)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = LearningRepository(session)
                    content_repo = ContentRepository(session)

                    if not await content_repo.get_course(course_id):
                        raise NotFoundError("course", course_id)
                    if await repo.get_review(user_id, course_id):
                        raise DuplicateReviewError(user_id, course_id)

                    db_review = await repo.create_review(user_id, course_id, rating, comment)
                    await self._refresh_course_rating(repo, content_repo, course_id)
                    review = repo.review_to_model(db_review)

        except IntegrityError as e:
            raise DuplicateReviewError(user_id, course_id) from e

        logger.info(f"用户 {user_id} 评价课程 {course_id}: {rating}")
        await self._invalidate(course_id)
        return review

    async def update_review(
        self,
        user_id: str,
        course_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> CourseReview:
        """修改已有评价"""
        validate_rating(rating)

        async with self.session_factory() as session:
            async with session.begin():
                repo = LearningRepository(session)
                content_repo = ContentRepository(session)

                if not await repo.update_review(user_id, course_id, rating, comment):
                    raise NotFoundError("review", f"{user_id}/{course_id}")

                await self._refresh_course_rating(repo, content_repo, course_id)
                db_review = await repo.get_review(user_id, course_id)
                await session.refresh(db_review)
                review = repo.review_to_model(db_review)

        await self._invalidate(course_id)
        return review

    async def get_review(self, user_id: str, course_id: str) -> Optional[CourseReview]:
        async with self.session_factory() as session:
            repo = LearningRepository(session)
            db_review = await repo.get_review(user_id, course_id)
            return repo.review_to_model(db_review) if db_review else None

    async def _refresh_course_rating(
        self,
        repo: LearningRepository,
        content_repo: ContentRepository,
        course_id: str
    ) -> None:
        """课程评分 = 全部评价的平均分"""
        summary = await repo.get_review_summary(course_id)
        if summary["average"] is not None:
            await content_repo.update_course_stats(course_id, new_rating=summary["average"])

    async def get_completed_sections(self, user_id: str, course_id: str) -> List[str]:
        progress = await self.get_progress(user_id, course_id)
        return progress.completed_sections if progress else []
