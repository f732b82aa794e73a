"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"

    # 主键和客户信息
    order_id = Column(String(50), primary_key=True, comment="订单ID")
    customer_id = Column(String(50), index=True, comment="客户ID，访客为空")
    customer_email = Column(String(255), comment="客户邮箱")

    # 金额快照，下单后不再根据折扣引擎重新计算
    subtotal = Column(Numeric(12, 2), nullable=False, comment="商品小计")
    discount_total = Column(Numeric(14, 4), default=0, comment="商品折扣")
    shipping_cost = Column(Numeric(12, 2), default=0, comment="运费")
    tax_amount = Column(Numeric(14, 4), default=0, comment="税额")
    total = Column(Numeric(12, 2), nullable=False, comment="应付总额")
    applied_codes = Column(JSON, comment="应用的折扣码快照")

    # 订单状态
    order_status = Column(String(20), default="pending_payment", index=True, comment="订单状态")
    payment_status = Column(String(20), default="pending", index=True, comment="支付状态")
    cancel_reason = Column(String(200), comment="取消原因")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    paid_at = Column(DateTime(timezone=True), comment="支付时间")
    cancelled_at = Column(DateTime(timezone=True), comment="取消时间")

    # 关系映射
    order_items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '订单主表'}
    )


class OrderItemDB(Base):
    """订单项目数据库表"""

    __tablename__ = "order_items"

    item_id = Column(String(50), primary_key=True, comment="项目ID")
    order_id = Column(String(50), ForeignKey("orders.order_id"), nullable=False, index=True, comment="订单ID")

    # 商品信息
    product_id = Column(String(50), nullable=False, comment="商品ID")
    product_name = Column(String(200), nullable=False, default="", comment="商品名称")
    category = Column(String(50), nullable=False, comment="品类")

    # 价格信息
    unit_price = Column(Numeric(12, 2), nullable=False, comment="单价")
    quantity = Column(Integer, default=1, comment="数量")

    order = relationship("OrderDB", back_populates="order_items")

    __table_args__ = (
        {'comment': '订单项目表'}
    )
