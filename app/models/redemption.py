"""
兑换记录相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class RedemptionState(str, Enum):
    """单次结账中每个折扣码的状态"""
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMMITTED = "committed"
    COMMIT_FAILED = "commit_failed"


# 允许的状态迁移，COMMITTED之后没有出口（取消/退款走补偿流程）
REDEMPTION_TRANSITIONS = {
    RedemptionState.PROPOSED: {RedemptionState.ACCEPTED, RedemptionState.REJECTED},
    RedemptionState.ACCEPTED: {RedemptionState.COMMITTED, RedemptionState.COMMIT_FAILED},
    RedemptionState.REJECTED: set(),
    RedemptionState.COMMITTED: set(),
    RedemptionState.COMMIT_FAILED: set(),
}


def advance_state(current: RedemptionState, target: RedemptionState) -> RedemptionState:
    """推进状态，不允许的迁移直接报错"""
    if target not in REDEMPTION_TRANSITIONS[current]:
        raise ValueError(f"illegal redemption transition {current.value} -> {target.value}")
    return target


class Redemption(BaseModel):
    """兑换记录（只追加，不修改不删除）"""

    model_config = ConfigDict(from_attributes=True)

    redemption_id: str = Field(..., description="兑换记录ID")
    discount_code_id: str = Field(..., description="折扣码ID")
    code: str = Field(..., description="折扣码")
    customer_id: Optional[str] = Field(None, description="客户ID，访客为空")
    customer_email: Optional[str] = Field(None, description="客户邮箱")
    order_id: str = Field(..., description="关联订单ID")
    amount_discounted: Decimal = Field(..., ge=0, description="折扣金额")
    created_at: Optional[datetime] = None


class RedemptionReversal(BaseModel):
    """兑换补偿事件（支付失败、取消、退款）"""

    model_config = ConfigDict(from_attributes=True)

    reversal_id: str
    redemption_id: str
    reason: str
    created_at: Optional[datetime] = None


class RedemptionStats(BaseModel):
    """折扣码兑换统计"""

    discount_code_id: str
    code: str
    redemption_count: int
    global_redemption_cap: Optional[int]
    remaining: Optional[int]
    total_committed: int
    total_reversed: int
    total_discounted: Decimal
    unique_customers: int
