"""
内容相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum


class CourseLevel(str, Enum):
    """课程难度枚举"""
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    BEGINNER_TO_ADVANCE = "BEGINNER_TO_ADVANCE"


def _normalize_slug(v: str) -> str:
    v = v.strip().lower()
    if not v or " " in v:
        raise ValueError('slug不能为空且不能包含空格')
    return v


class Category(BaseModel):
    """分类模型"""

    id: str = Field(..., description="分类ID")
    title: str = Field(..., min_length=1, max_length=200, description="分类名称")
    slug: str = Field(..., description="URL标识")
    order: int = Field(default=0, description="显示顺序")
    description: Optional[str] = Field(None, description="简短描述")
    content: Optional[str] = Field(None, description="详细内容")
    bg_color: Optional[str] = None
    icon: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryCreate(BaseModel):
    """创建分类请求"""

    title: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(...)
    order: int = Field(default=0)
    description: Optional[str] = None
    content: Optional[str] = None
    bg_color: Optional[str] = None
    icon: Optional[str] = None

    @validator('title')
    def strip_title(cls, v):
        return v.strip()

    @validator('slug')
    def validate_slug(cls, v):
        """slug统一小写"""
        return _normalize_slug(v)


class Course(BaseModel):
    """课程模型"""

    id: str = Field(..., description="课程ID")
    title: str = Field(..., description="课程名称")
    category_id: str = Field(..., description="分类ID")
    level: CourseLevel = Field(default=CourseLevel.BEGINNER, description="难度等级")
    rating: Decimal = Field(default=Decimal("0"), ge=0, le=5, description="课程评分")
    student_count: int = Field(default=0, ge=0, description="学员数量")
    price: Optional[Decimal] = Field(None, ge=0, description="价格")
    is_premium: bool = False
    is_published: bool = False
    description: Optional[str] = None
    duration: Optional[str] = None
    instructor: Optional[str] = None
    bg_color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CourseCreate(BaseModel):
    """创建课程请求"""

    title: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(...)
    level: CourseLevel = Field(default=CourseLevel.BEGINNER)
    price: Optional[Decimal] = Field(None, ge=0)
    is_premium: bool = False
    is_published: bool = False
    description: Optional[str] = None
    duration: Optional[str] = None
    instructor: Optional[str] = None
    bg_color: Optional[str] = None


class CourseSection(BaseModel):
    """课程章节模型"""

    id: str
    course_id: str
    title: str
    content: str = ""
    order: int = 0


class CodeExample(BaseModel):
    """代码示例"""

    title: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class Documentation(BaseModel):
    """文档模型"""

    id: str = Field(..., description="文档ID")
    title: str = Field(..., description="文档标题")
    slug: str = Field(..., description="URL标识")
    category_id: str = Field(..., description="分类ID")
    content: str = Field(..., description="文档内容")
    description: Optional[str] = None
    read_time: Optional[str] = None
    key_features: List[str] = Field(default_factory=list, description="核心要点")
    code_examples: List[CodeExample] = Field(default_factory=list, description="代码示例")
    quick_links: List[str] = Field(default_factory=list, description="快速链接")
    document_sections: List[str] = Field(default_factory=list, description="子文档ID列表")
    pro_tip: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, description="价格")
    currency: str = Field(default="usd", description="币种")
    stripe_price_id: Optional[str] = None
    is_published: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_free(self) -> bool:
        """未定价或价格为0的文档免费开放"""
        return self.price is None or self.price == 0


class DocumentationCreate(BaseModel):
    """创建文档请求"""

    title: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(...)
    category_id: str = Field(...)
    content: str = Field(..., min_length=1)
    description: Optional[str] = None
    read_time: Optional[str] = None
    key_features: List[str] = Field(default_factory=list)
    code_examples: List[CodeExample] = Field(default_factory=list)
    quick_links: List[str] = Field(default_factory=list)
    document_sections: List[str] = Field(default_factory=list)
    pro_tip: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field(default="usd")
    stripe_price_id: Optional[str] = None
    is_published: bool = True

    @validator('slug')
    def validate_slug(cls, v):
        return _normalize_slug(v)

    @validator('currency')
    def lowercase_currency(cls, v):
        return v.strip().lower()


class DocumentSectionsUpdate(BaseModel):
    """修改子文档列表请求"""

    document_sections: List[str] = Field(default_factory=list, description="新的子文档ID列表")


class SectionUpdateResult(BaseModel):
    """子文档修改结果"""

    documentation: Documentation
    mutual_references: List[str] = Field(default_factory=list, description="互相引用的文档ID（提示信息）")
    graph_revision: int = Field(..., description="写入后的内容图版本号")
