"""
业务异常定义

ValidationError       调用方输入不合法，直接拒绝，无需重试
ConflictError         并发创建/更新冲突，调用方应重新读取后重试
LedgerError           支付事件对账异常（非法状态迁移、未知引用、金额不一致）
NotFoundError         引用的实体不存在
"""

from typing import Any, Dict, List, Optional


class CoursePlatformError(Exception):
    """业务异常基类"""

    code = "course_platform_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


# ---------- 输入校验类 ----------

class ValidationError(CoursePlatformError):
    code = "validation_error"


class SelfReferenceError(ValidationError):
    """文档引用了自身"""

    code = "self_reference"

    def __init__(self, doc_id: str):
        super().__init__(f"文档不能引用自身: {doc_id}", {"doc_id": doc_id, "path": [doc_id, doc_id]})
        self.doc_id = doc_id
        self.path = [doc_id, doc_id]


class CycleError(ValidationError):
    """文档引用关系形成环"""

    code = "cycle"

    def __init__(self, doc_id: str, path: List[str]):
        super().__init__(
            f"文档引用形成环: {' -> '.join(path)}",
            {"doc_id": doc_id, "path": list(path)}
        )
        self.doc_id = doc_id
        self.path = list(path)


class MutualReferenceError(ValidationError):
    """文档互相引用（仅在 reject 策略下抛出）"""

    code = "mutual_reference"

    def __init__(self, doc_id: str, mutual_ids: List[str]):
        super().__init__(
            f"文档 {doc_id} 与 {', '.join(mutual_ids)} 互相引用",
            {"doc_id": doc_id, "mutual_references": list(mutual_ids)}
        )
        self.mutual_ids = list(mutual_ids)


class UnknownSectionError(ValidationError):
    """引用了不存在的文档"""

    code = "unknown_section"

    def __init__(self, doc_id: str, missing_ids: List[str]):
        super().__init__(
            f"文档 {doc_id} 引用了不存在的文档: {', '.join(missing_ids)}",
            {"doc_id": doc_id, "missing": list(missing_ids)}
        )
        self.missing_ids = list(missing_ids)


class OutOfRangeError(ValidationError):
    code = "out_of_range"

    def __init__(self, field: str, value: Any, minimum: Any, maximum: Any):
        super().__init__(
            f"{field} 超出范围 [{minimum}, {maximum}]: {value}",
            {"field": field, "value": value, "min": minimum, "max": maximum}
        )


class NotFoundError(CoursePlatformError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} 不存在: {entity_id}", {"entity": entity, "id": entity_id})


# ---------- 并发冲突类 ----------

class ConflictError(CoursePlatformError):
    code = "conflict"


class GraphConflictError(ConflictError):
    """校验期间内容图被其他写入修改"""

    code = "graph_conflict"


class DuplicateReviewError(ConflictError):
    code = "duplicate_review"

    def __init__(self, user_id: str, course_id: str):
        super().__init__(
            f"用户 {user_id} 已评价过课程 {course_id}",
            {"user_id": user_id, "course_id": course_id}
        )


# ---------- 对账类 ----------

class LedgerError(CoursePlatformError):
    code = "ledger_error"


class InvalidTransitionError(LedgerError):
    """状态机不允许的迁移"""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, event: str):
        super().__init__(
            f"{entity} 状态不允许从 {current} 经 {event} 迁移",
            {"entity": entity, "current": current, "event": event}
        )
        self.current = current
        self.event = event


class UnknownReferenceError(LedgerError):
    code = "unknown_reference"

    def __init__(self, session_ref: Optional[str], payment_ref: Optional[str]):
        if session_ref or payment_ref:
            message = f"未找到对应的购买记录: session={session_ref}, payment={payment_ref}"
        else:
            message = "支付事件缺少 session_ref 和 payment_ref，无法匹配购买记录"
        super().__init__(message, {"session_ref": session_ref, "payment_ref": payment_ref})


class AmountMismatchError(LedgerError):
    code = "amount_mismatch"

    def __init__(self, purchase_id: str, expected: str, received: str):
        super().__init__(
            f"购买记录 {purchase_id} 金额不一致: 记录 {expected}, 事件 {received}",
            {"purchase_id": purchase_id, "expected": expected, "received": received}
        )
