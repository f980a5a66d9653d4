"""
数据库模型包初始化文件
"""

from .content_db import CategoryDB, CourseDB, CourseSectionDB, DocumentationDB, ContentGraphRevisionDB
from .purchase_db import PurchaseDB, ProviderEventLogDB
from .learning_db import EnrollmentDB, CourseProgressDB, CourseReviewDB
from .newsletter_db import NewsletterSubscriberDB

__all__ = [
    "CategoryDB",
    "CourseDB",
    "CourseSectionDB",
    "DocumentationDB",
    "ContentGraphRevisionDB",
    "PurchaseDB",
    "ProviderEventLogDB",
    "EnrollmentDB",
    "CourseProgressDB",
    "CourseReviewDB",
    "NewsletterSubscriberDB"
]
