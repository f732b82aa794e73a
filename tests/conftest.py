"""
测试配置文件 - pytest fixtures和共用配置
"""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import Base, build_engine
from app.models.cart import CartLine, CartSnapshot
from app.models.discount_code import DiscountCode, DiscountCodeCreate, PercentageOff
from app.models.database import DiscountCodeDB, RedemptionDB, RedemptionReversalDB, OrderDB, OrderItemDB  # noqa: F401
from app.services.common_cache import SimpleCache


# 配置pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class NullCache(SimpleCache):
    """不连接Redis的缓存，所有读取都未命中"""

    def _client(self):
        return None


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """
    测试数据库引擎

    默认每个测试一个aiosqlite文件库；设置TEST_DATABASE_URL可改用PostgreSQL。
    """
    test_db_url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'discounts.db'}"

    engine = build_engine(test_db_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """测试session工厂，并发测试中每个任务使用独立会话"""
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """测试数据库会话"""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def null_cache():
    return NullCache(key_prefix="discount:")


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_cart():
    """构造购物车快照"""

    def _make(lines=None, shipping_cost: str = "60", guest_email: Optional[str] = None) -> CartSnapshot:
        lines = lines if lines is not None else [("vitamins", "120.00", 1), ("minerals", "80.00", 1)]
        return CartSnapshot(
            lines=[
                CartLine(
                    product_id=f"prod_{index}",
                    name=f"{category} product",
                    category=category,
                    unit_price=Decimal(price),
                    quantity=quantity,
                )
                for index, (category, price, quantity) in enumerate(lines, start=1)
            ],
            shipping_cost=Decimal(shipping_cost),
            guest_email=guest_email,
        )

    return _make


@pytest.fixture
def sample_cart(make_cart) -> CartSnapshot:
    """小计R200，运费R60"""
    return make_cart()


@pytest.fixture
def make_code():
    """构造折扣码领域对象（服务层测试用，不写库）"""

    def _make(code: str = "WELCOME10", kind=None, **overrides) -> DiscountCode:
        data = {
            "discount_code_id": f"dc_{code.lower()}",
            "code": code,
            "kind": kind or PercentageOff(rate=Decimal("0.10")),
            "starts_at": FIXED_NOW - timedelta(days=1),
            "ends_at": FIXED_NOW + timedelta(days=30),
            "per_customer_cap": None,
        }
        data.update(overrides)
        return DiscountCode(**data)

    return _make


@pytest.fixture
def make_code_create():
    """构造写库用的折扣码数据"""

    def _make(code: str = "WELCOME10", kind=None, **overrides) -> DiscountCodeCreate:
        data = {
            "code": code,
            "kind": kind or PercentageOff(rate=Decimal("0.10")),
            "starts_at": FIXED_NOW - timedelta(days=1),
            "ends_at": FIXED_NOW + timedelta(days=30),
            "per_customer_cap": None,
        }
        data.update(overrides)
        return DiscountCodeCreate(**data)

    return _make
