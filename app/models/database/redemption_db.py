"""
兑换记录数据库模型（只追加）
"""

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from app.core.database import Base


class RedemptionDB(Base):
    """兑换记录表"""

    __tablename__ = "redemptions"

    redemption_id = Column(String(50), primary_key=True, comment="兑换记录ID")
    discount_code_id = Column(
        String(50), ForeignKey("discount_codes.discount_code_id"), nullable=False, index=True, comment="折扣码ID"
    )
    code = Column(String(64), nullable=False, comment="折扣码")
    customer_id = Column(String(50), index=True, comment="客户ID，访客为空")
    customer_email = Column(String(255), index=True, comment="客户邮箱")
    order_id = Column(String(50), nullable=False, index=True, comment="关联订单ID")
    amount_discounted = Column(Numeric(14, 4), nullable=False, comment="折扣金额")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="兑换时间")

    __table_args__ = (
        Index("ix_redemptions_code_customer", "discount_code_id", "customer_id"),
        {'comment': '折扣码兑换记录表'}
    )


class RedemptionReversalDB(Base):
    """兑换补偿事件表"""

    __tablename__ = "redemption_reversals"

    reversal_id = Column(String(50), primary_key=True, comment="补偿记录ID")
    redemption_id = Column(
        String(50), ForeignKey("redemptions.redemption_id"), nullable=False, unique=True, comment="兑换记录ID"
    )
    reason = Column(String(100), nullable=False, comment="补偿原因")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="补偿时间")

    __table_args__ = (
        {'comment': '兑换补偿事件表'}
    )
