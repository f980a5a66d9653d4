"""
服务包初始化文件
"""

from .common_cache import SimpleCache, report_cache
from .documentation_service import DocumentationService
from .entitlement_ledger import EntitlementLedger
from .enrollment_service import EnrollmentService
from .progress_tracker import ProgressTracker
from .reporting_service import ReportingService
from .newsletter_service import NewsletterService

__all__ = [
    "SimpleCache",
    "report_cache",
    "DocumentationService",
    "EntitlementLedger",
    "EnrollmentService",
    "ProgressTracker",
    "ReportingService",
    "NewsletterService"
]
