from fastapi import APIRouter, Depends

from courseplatform.api.dependencies import get_documentation_service, get_entitlement_ledger
from courseplatform.core.exceptions import NotFoundError
from courseplatform.models.content import Documentation, DocumentSectionsUpdate, SectionUpdateResult
from courseplatform.services.documentation_service import DocumentationService
from courseplatform.services.entitlement_ledger import EntitlementLedger

router = APIRouter(prefix="/documentation", tags=["文档"])


@router.get("/{doc_id}", response_model=Documentation)
async def get_documentation(
    doc_id: str,
    service: DocumentationService = Depends(get_documentation_service)
):
    """获取文档详情"""
    documentation = await service.get_documentation(doc_id)
    if documentation is None:
        raise NotFoundError("documentation", doc_id)
    return documentation


@router.put("/{doc_id}/sections", response_model=SectionUpdateResult)
async def update_document_sections(
    doc_id: str,
    payload: DocumentSectionsUpdate,
    service: DocumentationService = Depends(get_documentation_service)
):
    """修改子文档列表；自引用或形成环返回422，并发修改返回409"""
    return await service.update_document_sections(doc_id, payload.document_sections)


@router.get("/{doc_id}/access")
async def check_access(
    doc_id: str,
    user_id: str,
    ledger: EntitlementLedger = Depends(get_entitlement_ledger)
):
    """检查用户是否可以访问文档"""
    return {
        "document_id": doc_id,
        "user_id": user_id,
        "has_access": await ledger.has_access(user_id, doc_id)
    }
