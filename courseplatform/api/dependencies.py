"""
路由依赖：从 app.state 取出在应用启动时创建的服务
"""

from fastapi import Request

from courseplatform.core.database import Database
from courseplatform.services.documentation_service import DocumentationService
from courseplatform.services.entitlement_ledger import EntitlementLedger


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_documentation_service(request: Request) -> DocumentationService:
    return request.app.state.documentation_service


def get_entitlement_ledger(request: Request) -> EntitlementLedger:
    return request.app.state.entitlement_ledger
