"""
折扣码数据库操作层
"""

import uuid
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.discount_code import (
    DiscountCode,
    DiscountCodeCreate,
    DiscountKindType,
    FixedAmountOff,
    FreeShipping,
    PercentageOff,
    normalize_code,
)
from app.models.database.discount_code_db import DiscountCodeDB
from app.utils.clock import ensure_aware


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc)


class DiscountCodeRepository:
    """折扣码数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[DiscountCodeDB]:
        """根据规范化后的折扣码获取（单次键值读取）"""
        result = await self.db.execute(
            select(DiscountCodeDB)
            .where(DiscountCodeDB.code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, discount_code_id: str) -> Optional[DiscountCodeDB]:
        """根据ID获取折扣码"""
        result = await self.db.execute(
            select(DiscountCodeDB)
            .where(DiscountCodeDB.discount_code_id == discount_code_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, data: DiscountCodeCreate) -> DiscountCodeDB:
        """写入折扣码，写入时同样做规范化"""
        kind = data.kind
        if isinstance(kind, PercentageOff):
            value = kind.rate
        elif isinstance(kind, FixedAmountOff):
            value = kind.amount
        else:
            value = None

        db_code = DiscountCodeDB(
            discount_code_id=f"dc_{uuid.uuid4().hex[:16]}",
            code=normalize_code(data.code),
            kind=kind.type,
            value=value,
            min_spend=data.min_spend,
            applicable_categories=list(data.applicable_categories),
            excluded_categories=list(data.excluded_categories),
            starts_at=_to_utc(data.starts_at),
            ends_at=_to_utc(data.ends_at),
            active=data.active,
            global_redemption_cap=data.global_redemption_cap,
            per_customer_cap=data.per_customer_cap,
            stackable=data.stackable,
            redemption_count=0,
            description=data.description,
        )
        self.db.add(db_code)
        await self.db.flush()
        await self.db.refresh(db_code)
        return db_code

    async def claim_slot(self, discount_code_id: str) -> bool:
        """
        原子条件更新占用一个兑换名额

        UPDATE ... SET redemption_count = redemption_count + 1
        WHERE id = :id AND (cap IS NULL OR redemption_count < cap)

        返回False表示名额已满（或折扣码不存在），不做先读后写。
        """
        result = await self.db.execute(
            update(DiscountCodeDB)
            .where(
                and_(
                    DiscountCodeDB.discount_code_id == discount_code_id,
                    or_(
                        DiscountCodeDB.global_redemption_cap.is_(None),
                        DiscountCodeDB.redemption_count < DiscountCodeDB.global_redemption_cap,
                    ),
                )
            )
            .values(redemption_count=DiscountCodeDB.redemption_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_slot(self, discount_code_id: str) -> bool:
        """归还一个兑换名额，计数不会低于0"""
        result = await self.db.execute(
            update(DiscountCodeDB)
            .where(
                and_(
                    DiscountCodeDB.discount_code_id == discount_code_id,
                    DiscountCodeDB.redemption_count > 0,
                )
            )
            .values(redemption_count=DiscountCodeDB.redemption_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_redemption_count(self, discount_code_id: str) -> int:
        result = await self.db.execute(
            select(DiscountCodeDB.redemption_count).where(DiscountCodeDB.discount_code_id == discount_code_id)
        )
        return result.scalar() or 0

    def to_model(self, db_code: DiscountCodeDB) -> DiscountCode:
        """转换为Pydantic模型"""
        kind_type = DiscountKindType(db_code.kind)
        if kind_type == DiscountKindType.PERCENTAGE:
            kind = PercentageOff(rate=Decimal(db_code.value))
        elif kind_type == DiscountKindType.FIXED_AMOUNT:
            kind = FixedAmountOff(amount=Decimal(db_code.value))
        else:
            kind = FreeShipping()

        return DiscountCode(
            discount_code_id=db_code.discount_code_id,
            code=db_code.code,
            kind=kind,
            min_spend=db_code.min_spend,
            applicable_categories=db_code.applicable_categories or [],
            excluded_categories=db_code.excluded_categories or [],
            starts_at=ensure_aware(db_code.starts_at),
            ends_at=ensure_aware(db_code.ends_at),
            active=db_code.active,
            global_redemption_cap=db_code.global_redemption_cap,
            per_customer_cap=db_code.per_customer_cap,
            stackable=db_code.stackable,
            redemption_count=db_code.redemption_count or 0,
            description=db_code.description,
            created_at=ensure_aware(db_code.created_at),
            updated_at=ensure_aware(db_code.updated_at),
        )
