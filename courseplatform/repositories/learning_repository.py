"""
学习数据库操作层：报名、学习进度、课程评价
"""

import uuid
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select, update, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from courseplatform.models.learning import Enrollment, CourseProgress, CourseReview
from courseplatform.models.database.learning_db import EnrollmentDB, CourseProgressDB, CourseReviewDB


class LearningRepository:
    """学习数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- 报名 ----------

    async def get_enrollment(self, user_id: str, course_id: str) -> Optional[EnrollmentDB]:
        result = await self.db.execute(
            select(EnrollmentDB).where(
                and_(
                    EnrollmentDB.user_id == user_id,
                    EnrollmentDB.course_id == course_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_enrollment(self, user_id: str, course_id: str) -> EnrollmentDB:
        """创建报名记录，唯一约束冲突时由flush抛出IntegrityError"""
        db_enrollment = EnrollmentDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            course_id=course_id,
            status="ACTIVE",
            enrolled_at=datetime.now()
        )
        self.db.add(db_enrollment)
        await self.db.flush()
        return db_enrollment

    async def compare_and_set_enrollment_status(
        self,
        enrollment_id: str,
        expected_status: str,
        new_status: str,
        completed_at: Optional[datetime] = None
    ) -> bool:
        """仅当当前状态等于expected_status时更新报名状态"""
        values: Dict[str, Any] = {"status": new_status}
        if new_status == "COMPLETED":
            values["completed_at"] = completed_at or datetime.now()
        elif expected_status == "COMPLETED" or new_status == "ACTIVE":
            values["completed_at"] = None

        result = await self.db.execute(
            update(EnrollmentDB)
            .where(
                and_(
                    EnrollmentDB.id == enrollment_id,
                    EnrollmentDB.status == expected_status
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_enrollment_breakdown(self, course_id: str) -> Dict[str, int]:
        """按状态统计课程报名数"""
        result = await self.db.execute(
            select(
                EnrollmentDB.status,
                func.count(EnrollmentDB.id).label("count")
            ).where(EnrollmentDB.course_id == course_id)
            .group_by(EnrollmentDB.status)
        )
        return {row.status: row.count for row in result.fetchall()}

    async def get_user_enrollments(self, user_id: str, status_filter: Optional[str] = None) -> List[EnrollmentDB]:
        conditions = [EnrollmentDB.user_id == user_id]
        if status_filter:
            conditions.append(EnrollmentDB.status == status_filter)

        result = await self.db.execute(
            select(EnrollmentDB).where(and_(*conditions)).order_by(EnrollmentDB.enrolled_at.desc())
        )
        return result.scalars().all()

    # ---------- 学习进度 ----------

    async def get_progress(self, user_id: str, course_id: str) -> Optional[CourseProgressDB]:
        result = await self.db.execute(
            select(CourseProgressDB).where(
                and_(
                    CourseProgressDB.user_id == user_id,
                    CourseProgressDB.course_id == course_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_progress(
        self,
        user_id: str,
        course_id: str,
        completed_sections: List[str],
        progress_percentage: int
    ) -> CourseProgressDB:
        """创建进度记录，唯一约束冲突时由flush抛出IntegrityError"""
        db_progress = CourseProgressDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            course_id=course_id,
            completed_sections=list(completed_sections),
            progress_percentage=progress_percentage,
            last_accessed_at=datetime.now()
        )
        self.db.add(db_progress)
        await self.db.flush()
        return db_progress

    async def save_progress(
        self,
        db_progress: CourseProgressDB,
        completed_sections: List[str],
        progress_percentage: int
    ) -> CourseProgressDB:
        """更新进度，版本号不一致时由flush抛出StaleDataError"""
        db_progress.completed_sections = list(completed_sections)
        db_progress.progress_percentage = progress_percentage
        db_progress.last_accessed_at = datetime.now()
        await self.db.flush()
        return db_progress

    async def get_progress_summary(self, course_id: str) -> Dict[str, Any]:
        """课程学习进度汇总"""
        result = await self.db.execute(
            select(
                func.count(CourseProgressDB.id).label("learners"),
                func.avg(CourseProgressDB.progress_percentage).label("average")
            ).where(CourseProgressDB.course_id == course_id)
        )
        row = result.fetchone()
        return {
            "learners": row.learners or 0,
            "average": round(float(row.average or 0), 2)
        }

    # ---------- 课程评价 ----------

    async def get_review(self, user_id: str, course_id: str) -> Optional[CourseReviewDB]:
        result = await self.db.execute(
            select(CourseReviewDB).where(
                and_(
                    CourseReviewDB.user_id == user_id,
                    CourseReviewDB.course_id == course_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_review(
        self,
        user_id: str,
        course_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> CourseReviewDB:
        """创建评价，唯一约束冲突时由flush抛出IntegrityError"""
        now = datetime.now()
        db_review = CourseReviewDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            course_id=course_id,
            rating=rating,
            comment=comment,
            created_at=now,
            updated_at=now
        )
        self.db.add(db_review)
        await self.db.flush()
        return db_review

    async def update_review(
        self,
        user_id: str,
        course_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> bool:
        result = await self.db.execute(
            update(CourseReviewDB)
            .where(
                and_(
                    CourseReviewDB.user_id == user_id,
                    CourseReviewDB.course_id == course_id
                )
            )
            .values(rating=rating, comment=comment, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_review_summary(self, course_id: str) -> Dict[str, Any]:
        """课程评价数量及平均分（保留两位小数）"""
        result = await self.db.execute(
            select(
                func.count(CourseReviewDB.id).label("count"),
                func.avg(CourseReviewDB.rating).label("average")
            ).where(CourseReviewDB.course_id == course_id)
        )
        row = result.fetchone()
        average = None
        if row.count:
            average = Decimal(str(row.average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return {"count": row.count or 0, "average": average}

    # ---------- 模型转换 ----------

    def enrollment_to_model(self, db_enrollment: EnrollmentDB) -> Enrollment:
        return Enrollment(
            id=db_enrollment.id,
            user_id=db_enrollment.user_id,
            course_id=db_enrollment.course_id,
            status=db_enrollment.status,
            enrolled_at=db_enrollment.enrolled_at,
            completed_at=db_enrollment.completed_at
        )

    def progress_to_model(self, db_progress: CourseProgressDB) -> CourseProgress:
        return CourseProgress(
            id=db_progress.id,
            user_id=db_progress.user_id,
            course_id=db_progress.course_id,
            completed_sections=list(db_progress.completed_sections or []),
            progress_percentage=db_progress.progress_percentage or 0,
            last_accessed_at=db_progress.last_accessed_at
        )

    def review_to_model(self, db_review: CourseReviewDB) -> CourseReview:
        return CourseReview(
            id=db_review.id,
            user_id=db_review.user_id,
            course_id=db_review.course_id,
            rating=db_review.rating,
            comment=db_review.comment,
            created_at=db_review.created_at,
            updated_at=db_review.updated_at
        )
