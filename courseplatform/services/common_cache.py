"""
报表缓存
报表查询的旁路缓存，key 统一为 "<范围>:<实体ID>:<报表>:<参数...>"，
写入方按 "<范围>:<实体ID>:*" 整体清除。Redis 不可用时视为未命中，不影响查询
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from courseplatform.core.config import settings

logger = logging.getLogger(__name__)

# 可选参数缺省时在key中的占位
ANY = "all"


def report_key(scope: str, entity_id: str, report: str, *params: Any) -> str:
    """报表缓存key，None参数记为 all"""
    parts = [scope, entity_id, report]
    parts.extend(ANY if param is None else str(param) for param in params)
    return ":".join(parts)


def report_pattern(scope: str, entity_id: str) -> str:
    return f"{scope}:{entity_id}:*"


def user_cache_pattern(user_id: str) -> str:
    """用户购买变化时需要清除的报表"""
    return report_pattern("user", user_id)


def document_cache_pattern(document_id: str) -> str:
    return report_pattern("document", document_id)


def course_cache_pattern(course_id: str) -> str:
    return report_pattern("course", course_id)


class SimpleCache:
    """带前缀和过期时间的JSON缓存"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = ""):
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    def _full_key(self, key: str) -> str:
        return self.key_prefix + key

    async def init_redis(self) -> None:
        """按配置建立连接并确认可用，连接失败时抛出"""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                settings.redis_url_computed,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=settings.cache_socket_timeout,
                socket_connect_timeout=settings.cache_socket_timeout,
                retry_on_timeout=True
            )

        try:
            await self.redis_client.ping()
        except Exception as e:
            logger.error(f"报表缓存连接失败: {e}")
            raise
        logger.info(f"报表缓存已连接, 前缀: {self.key_prefix or '(无)'}")

    async def close_redis(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None

    async def ping(self) -> bool:
        """健康检查用，失败返回False"""
        if self.redis_client is None:
            return False
        try:
            return bool(await self.redis_client.ping())
        except Exception as e:
            logger.warning(f"报表缓存不可用: {e}")
            return False

    async def get(self, key: str) -> Optional[Any]:
        if self.redis_client is None:
            return None
        try:
            raw = await self.redis_client.get(self._full_key(key))
        except Exception as e:
            logger.warning(f"读取报表缓存失败, 按未命中处理 {key}: {e}")
            return None
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """写入JSON，Decimal/datetime等按字符串保存"""
        if self.redis_client is None:
            return False
        payload = json.dumps(value, default=str, ensure_ascii=False)
        try:
            await self.redis_client.setex(self._full_key(key), ttl, payload)
        except Exception as e:
            logger.warning(f"写入报表缓存失败 {key}: {e}")
            return False
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """清除匹配的key，返回删除数量"""
        if self.redis_client is None:
            return 0
        try:
            keys = [key async for key in self.redis_client.scan_iter(match=self._full_key(pattern))]
            return await self.redis_client.delete(*keys) if keys else 0
        except Exception as e:
            logger.warning(f"清除报表缓存失败 {pattern}: {e}")
            return 0


# 应用共享的报表缓存，连接在应用启动时建立
report_cache = SimpleCache(key_prefix="report:")
