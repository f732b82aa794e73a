"""
兑换记录数据库操作层

兑换记录只追加；撤销通过补偿事件表记录，不删除也不修改原记录。
"""

import uuid
from typing import Any, Dict, List, Optional
from decimal import Decimal

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.redemption import Redemption, RedemptionReversal
from app.models.database.redemption_db import RedemptionDB, RedemptionReversalDB


class RedemptionRepository:
    """兑换记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _active_query(self, *conditions):
        """未被撤销的兑换记录"""
        return (
            select(func.count(RedemptionDB.redemption_id))
            .select_from(RedemptionDB)
            .outerjoin(RedemptionReversalDB, RedemptionReversalDB.redemption_id == RedemptionDB.redemption_id)
            .where(and_(RedemptionReversalDB.reversal_id.is_(None), *conditions))
        )

    async def count_active_for_customer(
        self,
        discount_code_id: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> int:
        """
        统计客户对某折扣码的有效兑换次数

        登录客户按customer_id统计；访客只能按邮箱尽力统计，无法保证。
        """
        if customer_id:
            identity = RedemptionDB.customer_id == customer_id
        elif customer_email:
            identity = RedemptionDB.customer_email == customer_email.strip().lower()
        else:
            return 0

        result = await self.db.execute(
            self._active_query(RedemptionDB.discount_code_id == discount_code_id, identity)
        )
        return result.scalar() or 0

    async def add(
        self,
        discount_code_id: str,
        code: str,
        order_id: str,
        amount_discounted: Decimal,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> RedemptionDB:
        """追加一条兑换记录"""
        redemption = RedemptionDB(
            redemption_id=f"rd_{uuid.uuid4().hex[:16]}",
            discount_code_id=discount_code_id,
            code=code,
            customer_id=customer_id,
            customer_email=customer_email.strip().lower() if customer_email else None,
            order_id=order_id,
            amount_discounted=amount_discounted,
        )
        self.db.add(redemption)
        await self.db.flush()
        await self.db.refresh(redemption)
        return redemption

    async def get_active_for_order(self, order_id: str) -> List[RedemptionDB]:
        """获取订单下尚未撤销的兑换记录"""
        result = await self.db.execute(
            select(RedemptionDB)
            .outerjoin(RedemptionReversalDB, RedemptionReversalDB.redemption_id == RedemptionDB.redemption_id)
            .where(
                and_(
                    RedemptionDB.order_id == order_id,
                    RedemptionReversalDB.reversal_id.is_(None),
                )
            )
            .order_by(RedemptionDB.created_at, RedemptionDB.redemption_id)
        )
        return list(result.scalars().all())

    async def add_reversal(self, redemption_id: str, reason: str) -> RedemptionReversalDB:
        """追加补偿事件，每条兑换记录最多撤销一次（唯一约束保证）"""
        reversal = RedemptionReversalDB(
            reversal_id=f"rv_{uuid.uuid4().hex[:16]}",
            redemption_id=redemption_id,
            reason=reason,
        )
        self.db.add(reversal)
        await self.db.flush()
        await self.db.refresh(reversal)
        return reversal

    async def get_stats(self, discount_code_id: str) -> Dict[str, Any]:
        """获取折扣码兑换统计"""
        totals = await self.db.execute(
            select(
                func.count(RedemptionDB.redemption_id).label("total_committed"),
                func.count(RedemptionReversalDB.reversal_id).label("total_reversed"),
            )
            .select_from(RedemptionDB)
            .outerjoin(RedemptionReversalDB, RedemptionReversalDB.redemption_id == RedemptionDB.redemption_id)
            .where(RedemptionDB.discount_code_id == discount_code_id)
        )
        totals_row = totals.fetchone()

        active = await self.db.execute(
            select(
                func.sum(RedemptionDB.amount_discounted).label("total_discounted"),
                func.count(func.distinct(RedemptionDB.customer_id)).label("unique_customers"),
            )
            .select_from(RedemptionDB)
            .outerjoin(RedemptionReversalDB, RedemptionReversalDB.redemption_id == RedemptionDB.redemption_id)
            .where(
                and_(
                    RedemptionDB.discount_code_id == discount_code_id,
                    RedemptionReversalDB.reversal_id.is_(None),
                )
            )
        )
        active_row = active.fetchone()

        return {
            "total_committed": totals_row.total_committed or 0,
            "total_reversed": totals_row.total_reversed or 0,
            "total_discounted": Decimal(str(active_row.total_discounted or 0)),
            "unique_customers": active_row.unique_customers or 0,
        }

    def to_model(self, db_redemption: RedemptionDB) -> Redemption:
        """转换为Pydantic模型"""
        return Redemption.model_validate(db_redemption)

    def reversal_to_model(self, db_reversal: RedemptionReversalDB) -> RedemptionReversal:
        return RedemptionReversal.model_validate(db_reversal)
