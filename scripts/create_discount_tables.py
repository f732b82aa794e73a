"""
折扣码引擎数据库表创建脚本
"""

import asyncio
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy import text
from app.core.config import settings
from app.core.database import Base, build_engine, is_sqlite_url
from app.models.discount_code import DiscountCodeCreate, FixedAmountOff, FreeShipping, PercentageOff
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.utils.clock import store_now

# 导入所有数据库模型以确保表被注册
from app.models.database import DiscountCodeDB, RedemptionDB, RedemptionReversalDB, OrderDB, OrderItemDB  # noqa: F401


async def create_database_if_not_exists():
    """创建数据库（如果不存在），SQLite跳过"""
    if is_sqlite_url(settings.database_url_computed):
        return

    # 连接到PostgreSQL服务器（不指定数据库）
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")

    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f"CREATE DATABASE {settings.db_name}"))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables():
    """创建所有数据表"""
    engine = build_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("所有数据表创建成功")

    await engine.dispose()


def sample_codes():
    now = store_now()
    return [
        DiscountCodeCreate(
            code="WELCOME10",
            kind=PercentageOff(rate=Decimal("0.10")),
            per_customer_cap=1,
            stackable=True,
            description="新客户首单9折",
        ),
        DiscountCodeCreate(
            code="VITAMINS15",
            kind=PercentageOff(rate=Decimal("0.15")),
            applicable_categories=["vitamins", "minerals"],
            min_spend=Decimal("200"),
            stackable=True,
            per_customer_cap=None,
            description="维生素与矿物质满R200享85折",
        ),
        DiscountCodeCreate(
            code="SAVE50",
            kind=FixedAmountOff(amount=Decimal("50")),
            min_spend=Decimal("300"),
            excluded_categories=["gift-cards"],
            global_redemption_cap=500,
            description="满R300减R50，礼品卡除外",
        ),
        DiscountCodeCreate(
            code="FREESHIP",
            kind=FreeShipping(),
            min_spend=Decimal("150"),
            starts_at=now,
            ends_at=now + timedelta(days=30),
            per_customer_cap=None,
            description="30天内满R150免运费",
        ),
    ]


async def insert_sample_codes():
    """插入示例折扣码"""
    engine = build_engine(settings.database_url_computed)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_maker() as session:
        repo = DiscountCodeRepository(session)
        for data in sample_codes():
            if await repo.get_by_code(data.code):
                print(f"折扣码已存在: {data.code}")
                continue
            await repo.create(data)
            print(f"插入折扣码: {data.code}")
        await session.commit()

    await engine.dispose()


async def main():
    """主函数"""
    print("开始创建折扣码引擎数据库表...")

    try:
        await create_database_if_not_exists()
        await create_tables()
        await insert_sample_codes()

        print("折扣码引擎数据库初始化完成！")

    except Exception as e:
        print(f"数据库初始化失败: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
