"""
折扣码解析服务

把用户输入的折扣码规范化后做一次键值读取，判断是否存在、是否启用、是否在生效期内。
三种失败原因只写日志，对外统一为同一条提示，避免被用来枚举有效折扣码。
解析没有副作用，可以在用户输入时高频调用。
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from app.core.config import settings
from app.models.discount_code import DiscountCode, normalize_code
from app.models.evaluation import Resolution, ResolveMiss
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.services.common_cache import SimpleCache, discount_cache
from app.utils.clock import store_now

logger = logging.getLogger(__name__)


class CodeResolver:
    """折扣码解析器"""

    def __init__(self, discount_repo: DiscountCodeRepository, cache: Optional[SimpleCache] = None):
        self.discount_repo = discount_repo
        self.cache = cache if cache is not None else discount_cache
        self.cache_prefix = "code"
        self.cache_ttl = settings.discount_cache_ttl

    def _cache_key(self, code: str) -> str:
        return f"{self.cache_prefix}:{code}"

    async def _load(self, code: str, use_cache: bool) -> Optional[DiscountCode]:
        """读取折扣码定义，只缓存命中的定义"""
        cache_key = self._cache_key(code)

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return DiscountCode.model_validate(cached)

        db_code = await self.discount_repo.get_by_code(code)
        if not db_code:
            return None

        discount = self.discount_repo.to_model(db_code)

        if use_cache:
            await self.cache.set(cache_key, discount.model_dump(mode="json"), ttl=self.cache_ttl)

        return discount

    async def invalidate(self, code: str) -> None:
        await self.cache.delete(self._cache_key(normalize_code(code)))

    async def resolve(
        self,
        raw_code: Optional[str],
        now: Optional[datetime] = None,
        use_cache: bool = False
    ) -> Resolution:
        """
        解析单个折扣码

        Args:
            raw_code: 用户输入的折扣码
            now: 当前时间，默认取门店时区的当前时间
            use_cache: 是否允许从缓存读取定义（仅实时校验接口使用，下单时必须读库）
        """
        raw = raw_code or ""
        code = normalize_code(raw)

        if not code:
            logger.info("折扣码解析失败: 空输入")
            return Resolution(raw_code=raw, normalized_code=code, miss_reason=ResolveMiss.NOT_FOUND)

        discount = await self._load(code, use_cache)

        if discount is None:
            miss = ResolveMiss.NOT_FOUND
        elif not discount.active:
            miss = ResolveMiss.INACTIVE
        elif not discount.is_within_window(now or store_now()):
            miss = ResolveMiss.OUTSIDE_WINDOW
        else:
            return Resolution(raw_code=raw, normalized_code=code, discount=discount)

        logger.info(f"折扣码解析失败 {code}: {miss.value}")
        return Resolution(raw_code=raw, normalized_code=code, miss_reason=miss)

    async def resolve_many(
        self,
        raw_codes: Sequence[Optional[str]],
        now: Optional[datetime] = None,
        use_cache: bool = False
    ) -> List[Resolution]:
        """按输入顺序依次解析"""
        now = now or store_now()
        return [await self.resolve(raw, now=now, use_cache=use_cache) for raw in raw_codes]
