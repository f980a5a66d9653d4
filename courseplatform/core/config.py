from pydantic_settings import BaseSettings
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class MutualReferencePolicy(str, Enum):
    """文档互相引用处理策略"""
    WARN = "warn"  # 记录警告并放行
    REJECT = "reject"  # 直接拒绝写入


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Course Platform Core"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "course_platform_db"
    db_user: str = "course_platform_user"
    db_password: str = "course_platform_password"
    db_pool_timeout: int = 10

    # Redis配置 (报表缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    cache_enabled: bool = False
    cache_ttl: int = 300
    cache_socket_timeout: int = 5

    # 内容图校验
    mutual_reference_policy: MutualReferencePolicy = MutualReferencePolicy.WARN

    # 乐观并发写入的最大重试次数
    max_write_retries: int = 3

    # 支付
    default_currency: str = "usd"

    # 日志配置
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()
