"""
内容相关数据库模型：分类、课程、课程章节、文档
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from courseplatform.core.database import Base


class CategoryDB(Base):
    """分类数据库表"""

    __tablename__ = "categories"

    id = Column(String(50), primary_key=True, comment="分类ID")
    title = Column(String(200), nullable=False, unique=True, comment="分类名称")
    slug = Column(String(200), nullable=False, unique=True, index=True, comment="URL标识(小写)")
    description = Column(Text, comment="简短描述")
    content = Column(Text, comment="详细内容")
    bg_color = Column(String(100), comment="背景色")
    icon = Column(String(100), comment="图标标识")
    order = Column(Integer, default=0, comment="显示顺序")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")


class CourseDB(Base):
    """课程数据库表"""

    __tablename__ = "courses"

    id = Column(String(50), primary_key=True, comment="课程ID")
    title = Column(String(200), nullable=False, comment="课程名称")
    category_id = Column(String(50), ForeignKey("categories.id"), nullable=False, index=True, comment="分类ID")
    description = Column(Text, comment="课程描述")
    level = Column(String(30), nullable=False, default="BEGINNER", comment="难度等级")
    rating = Column(Numeric(3, 2), default=0, comment="课程评分")
    student_count = Column(Integer, default=0, comment="学员数量")
    duration = Column(String(50), comment="课程时长")
    instructor = Column(String(100), comment="讲师")
    bg_color = Column(String(100), comment="背景色")
    price = Column(Numeric(10, 2), comment="价格")
    is_premium = Column(Boolean, default=False, comment="是否付费课程")
    is_published = Column(Boolean, default=False, index=True, comment="是否发布")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")


class CourseSectionDB(Base):
    """课程章节数据库表"""

    __tablename__ = "course_sections"

    id = Column(String(50), primary_key=True, comment="章节ID")
    course_id = Column(String(50), ForeignKey("courses.id"), nullable=False, index=True, comment="课程ID")
    title = Column(String(200), nullable=False, comment="章节标题")
    content = Column(Text, nullable=False, default="", comment="章节内容")
    order = Column(Integer, default=0, comment="显示顺序")
    # 同一order下按插入先后排序
    position = Column(Integer, nullable=False, default=0, comment="插入序号")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    __table_args__ = (
        Index('idx_course_section_order', 'course_id', 'order', 'position'),
    )


class DocumentationDB(Base):
    """文档数据库表"""

    __tablename__ = "documentation"

    id = Column(String(50), primary_key=True, comment="文档ID")
    title = Column(String(200), nullable=False, comment="文档标题")
    slug = Column(String(200), nullable=False, unique=True, index=True, comment="URL标识(小写)")
    category_id = Column(String(50), ForeignKey("categories.id"), nullable=False, index=True, comment="分类ID")
    description = Column(Text, comment="简短描述")
    content = Column(Text, nullable=False, comment="文档内容")
    read_time = Column(String(50), comment="阅读时长")

    # JSON数组字段
    key_features = Column(JSON, default=list, comment="核心要点")
    code_examples = Column(JSON, default=list, comment="代码示例")
    quick_links = Column(JSON, default=list, comment="快速链接")
    # 子文档ID列表（自引用，只存ID）
    document_sections = Column(JSON, default=list, comment="子文档ID列表")

    pro_tip = Column(Text, comment="提示")
    price = Column(Numeric(10, 2), comment="价格")
    currency = Column(String(10), nullable=False, default="usd", comment="币种")
    stripe_price_id = Column(String(100), comment="支付平台价格ID")
    is_published = Column(Boolean, default=True, index=True, comment="是否发布")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")


class ContentGraphRevisionDB(Base):
    """内容图版本号（单行表），每次修改文档引用关系时比较并递增"""

    __tablename__ = "content_graph_revision"

    id = Column(Integer, primary_key=True, comment="固定为1")
    revision = Column(Integer, nullable=False, default=0, comment="版本号")
