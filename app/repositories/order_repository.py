"""
订单数据库操作层
"""

from typing import Optional
from datetime import datetime, timezone

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.cart import AppliedCode
from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from app.models.database.order_db import OrderDB, OrderItemDB
from app.utils.clock import ensure_aware


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_order_id(self, order_id: str) -> Optional[OrderDB]:
        """根据订单ID获取订单（包含订单项）"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.order_items))
            .where(OrderDB.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_order_with_items(self, order: Order) -> OrderDB:
        """创建订单及订单项，金额取自价格明细快照"""
        db_order = OrderDB(
            order_id=order.order_id,
            customer_id=order.customer_id,
            customer_email=order.customer_email,
            subtotal=order.subtotal,
            discount_total=order.discount_total,
            shipping_cost=order.shipping_cost,
            tax_amount=order.tax_amount,
            total=order.total,
            applied_codes=[applied.model_dump(mode="json") for applied in order.applied_codes],
            order_status=order.order_status.value,
            payment_status=order.payment_status.value,
        )
        self.db.add(db_order)
        await self.db.flush()

        for item in order.order_items:
            self.db.add(OrderItemDB(
                item_id=item.item_id,
                order_id=db_order.order_id,
                product_id=item.product_id,
                product_name=item.product_name,
                category=item.category,
                unit_price=item.unit_price,
                quantity=item.quantity,
            ))
        await self.db.flush()

        return db_order

    async def update_payment_status(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        order_status: Optional[OrderStatus] = None,
        paid_at: Optional[datetime] = None
    ) -> bool:
        """更新支付状态，只允许从待支付状态迁移"""
        now = datetime.now(timezone.utc)
        update_data = {"payment_status": payment_status.value, "updated_at": now}

        if order_status:
            update_data["order_status"] = order_status.value
        if paid_at:
            update_data["paid_at"] = paid_at

        result = await self.db.execute(
            update(OrderDB)
            .where(
                and_(
                    OrderDB.order_id == order_id,
                    OrderDB.payment_status == PaymentStatus.PENDING.value,
                )
            )
            .values(**update_data)
            .execution_options(synchronize_session=False)
        )

        return result.rowcount > 0

    async def cancel_order(self, order_id: str, reason: str = "") -> bool:
        """取消订单（已支付订单不可取消）"""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(OrderDB)
            .where(
                and_(
                    OrderDB.order_id == order_id,
                    OrderDB.order_status == OrderStatus.PENDING_PAYMENT.value,
                )
            )
            .values(
                order_status=OrderStatus.CANCELLED.value,
                cancel_reason=reason,
                cancelled_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        return result.rowcount > 0

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        items = [
            OrderItem(
                item_id=db_item.item_id,
                product_id=db_item.product_id,
                product_name=db_item.product_name or "",
                category=db_item.category,
                unit_price=db_item.unit_price,
                quantity=db_item.quantity,
            )
            for db_item in db_order.order_items
        ]

        return Order(
            order_id=db_order.order_id,
            customer_id=db_order.customer_id,
            customer_email=db_order.customer_email,
            order_items=items,
            subtotal=db_order.subtotal,
            discount_total=db_order.discount_total or 0,
            shipping_cost=db_order.shipping_cost or 0,
            tax_amount=db_order.tax_amount or 0,
            total=db_order.total,
            applied_codes=[AppliedCode.model_validate(applied) for applied in (db_order.applied_codes or [])],
            order_status=db_order.order_status,
            payment_status=db_order.payment_status,
            created_at=ensure_aware(db_order.created_at),
            updated_at=ensure_aware(db_order.updated_at),
            paid_at=ensure_aware(db_order.paid_at),
            cancelled_at=ensure_aware(db_order.cancelled_at),
        )
