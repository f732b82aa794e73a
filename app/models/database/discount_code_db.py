"""
折扣码数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class DiscountCodeDB(Base):
    """折扣码数据库表"""

    __tablename__ = "discount_codes"

    # 主键和基本信息
    discount_code_id = Column(String(50), primary_key=True, comment="折扣码ID")
    code = Column(String(64), nullable=False, unique=True, index=True, comment="规范化后的折扣码")

    # 折扣类型: percentage存比例(0-1), fixed_amount存金额, free_shipping为空
    kind = Column(String(20), nullable=False, comment="折扣类型")
    value = Column(Numeric(12, 4), comment="折扣值")

    # 适用条件
    min_spend = Column(Numeric(12, 2), comment="最低消费金额")
    applicable_categories = Column(JSON, comment="适用品类")
    excluded_categories = Column(JSON, comment="排除品类")

    # 有效期
    starts_at = Column(DateTime(timezone=True), index=True, comment="生效时间")
    ends_at = Column(DateTime(timezone=True), index=True, comment="失效时间")
    active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")

    # 使用限制
    global_redemption_cap = Column(Integer, comment="全局兑换上限")
    per_customer_cap = Column(Integer, comment="单客户兑换上限")
    stackable = Column(Boolean, nullable=False, default=False, comment="是否可叠加")
    redemption_count = Column(Integer, nullable=False, default=0, comment="已兑换次数")

    description = Column(Text, comment="描述")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        CheckConstraint("redemption_count >= 0", name="ck_discount_codes_count_non_negative"),
        CheckConstraint(
            "global_redemption_cap IS NULL OR redemption_count <= global_redemption_cap",
            name="ck_discount_codes_count_within_cap"
        ),
        {'comment': '折扣码表'}
    )
