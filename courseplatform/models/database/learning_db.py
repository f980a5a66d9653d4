"""
学习相关数据库模型：报名、学习进度、课程评价
"""

from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from courseplatform.core.database import Base


class EnrollmentDB(Base):
    """课程报名表"""

    __tablename__ = "enrollments"

    id = Column(String(50), primary_key=True, comment="报名ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    course_id = Column(String(50), ForeignKey("courses.id"), nullable=False, index=True, comment="课程ID")
    status = Column(String(20), nullable=False, default="ACTIVE", index=True, comment="报名状态")
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now(), comment="报名时间")
    completed_at = Column(DateTime(timezone=True), comment="完成时间")

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_enrollment_user_course'),
    )


class CourseProgressDB(Base):
    """课程学习进度表"""

    __tablename__ = "course_progress"

    id = Column(String(50), primary_key=True, comment="进度ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    course_id = Column(String(50), ForeignKey("courses.id"), nullable=False, index=True, comment="课程ID")
    completed_sections = Column(JSON, default=list, comment="已完成章节ID列表")
    progress_percentage = Column(Integer, nullable=False, default=0, comment="完成百分比 0-100")
    last_accessed_at = Column(DateTime(timezone=True), server_default=func.now(), comment="最后访问时间")
    version = Column(Integer, nullable=False, default=1, comment="乐观锁版本号")

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_progress_user_course'),
    )

    __mapper_args__ = {"version_id_col": version}


class CourseReviewDB(Base):
    """课程评价表"""

    __tablename__ = "course_reviews"

    id = Column(String(50), primary_key=True, comment="评价ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    course_id = Column(String(50), ForeignKey("courses.id"), nullable=False, index=True, comment="课程ID")
    rating = Column(Integer, nullable=False, comment="评分 1-5")
    comment = Column(Text, comment="评价内容")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_review_user_course'),
    )
