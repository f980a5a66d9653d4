"""
数据模型包初始化文件
"""

from .content import (
    CourseLevel,
    Category,
    CategoryCreate,
    Course,
    CourseCreate,
    CourseSection,
    CodeExample,
    Documentation,
    DocumentationCreate,
    DocumentSectionsUpdate,
    SectionUpdateResult
)
from .purchase import (
    PurchaseStatus,
    ProviderOutcome,
    EventResult,
    Purchase,
    ProviderEvent,
    ProviderEventResult,
    ProviderEventReceipt,
    ProviderEventLog
)
from .learning import (
    EnrollmentStatus,
    EnrollmentAction,
    Enrollment,
    CourseProgress,
    CourseReview,
    CourseProgressOverview
)
from .newsletter import NewsletterSubscriber

__all__ = [
    "CourseLevel",
    "Category",
    "CategoryCreate",
    "Course",
    "CourseCreate",
    "CourseSection",
    "CodeExample",
    "Documentation",
    "DocumentationCreate",
    "DocumentSectionsUpdate",
    "SectionUpdateResult",
    "PurchaseStatus",
    "ProviderOutcome",
    "EventResult",
    "Purchase",
    "ProviderEvent",
    "ProviderEventResult",
    "ProviderEventReceipt",
    "ProviderEventLog",
    "EnrollmentStatus",
    "EnrollmentAction",
    "Enrollment",
    "CourseProgress",
    "CourseReview",
    "CourseProgressOverview",
    "NewsletterSubscriber"
]
