"""
学习相关数据模型：报名、进度、评价
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class EnrollmentStatus(str, Enum):
    """报名状态枚举"""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    PAUSED = "PAUSED"


class EnrollmentAction(str, Enum):
    """报名状态操作"""
    COMPLETE = "complete"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    REACTIVATE = "reactivate"


class Enrollment(BaseModel):
    """报名模型"""

    id: str = Field(..., description="报名ID")
    user_id: str = Field(..., description="用户ID")
    course_id: str = Field(..., description="课程ID")
    status: EnrollmentStatus = Field(default=EnrollmentStatus.ACTIVE, description="报名状态")
    enrolled_at: Optional[datetime] = Field(None, description="报名时间")
    completed_at: Optional[datetime] = Field(None, description="完成时间")

    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE


class CourseProgress(BaseModel):
    """课程学习进度模型"""

    id: str = Field(..., description="进度ID")
    user_id: str = Field(..., description="用户ID")
    course_id: str = Field(..., description="课程ID")
    completed_sections: List[str] = Field(default_factory=list, description="已完成章节ID")
    progress_percentage: int = Field(default=0, ge=0, le=100, description="完成百分比")
    last_accessed_at: Optional[datetime] = Field(None, description="最后访问时间")

    @property
    def is_complete(self) -> bool:
        return self.progress_percentage >= 100


class CourseReview(BaseModel):
    """课程评价模型"""

    id: str = Field(..., description="评价ID")
    user_id: str = Field(..., description="用户ID")
    course_id: str = Field(..., description="课程ID")
    rating: int = Field(..., ge=1, le=5, description="评分")
    comment: Optional[str] = Field(None, description="评价内容")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CourseProgressOverview(BaseModel):
    """课程学习概况"""

    course_id: str
    enrollment_breakdown: Dict[str, int] = Field(default_factory=dict)
    learners_with_progress: int = 0
    average_progress: float = 0.0
    review_count: int = 0
    average_rating: Optional[Decimal] = None
