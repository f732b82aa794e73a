"""
订单快照相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, model_validator
from enum import Enum

from app.models.cart import AppliedCode, CartPriceBreakdown
from app.models.redemption import Redemption, RedemptionState


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING_PAYMENT = "pending_payment"  # 待支付
    PAID = "paid"  # 已支付
    CANCELLED = "cancelled"  # 已取消


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"  # 待支付
    PAID = "paid"  # 已支付
    FAILED = "failed"  # 支付失败


class OrderItem(BaseModel):
    """订单项目模型"""

    item_id: str = Field(..., description="项目ID")
    product_id: str = Field(..., description="商品ID")
    product_name: str = Field(default="", description="商品名称")
    category: str = Field(..., description="品类")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    quantity: int = Field(default=1, ge=1, description="数量")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Order(BaseModel):
    """订单模型，金额字段是下单时价格明细的不可变快照"""

    order_id: str = Field(..., description="订单ID")
    customer_id: Optional[str] = Field(None, description="客户ID")
    customer_email: Optional[str] = Field(None, description="客户邮箱")
    order_items: List[OrderItem] = Field(default_factory=list, description="订单项目列表")
    subtotal: Decimal = Field(..., ge=0, description="商品小计")
    discount_total: Decimal = Field(default=Decimal("0"), ge=0, description="商品折扣")
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0, description="运费")
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, description="税额")
    total: Decimal = Field(..., ge=0, description="应付总额")
    applied_codes: List[AppliedCode] = Field(default_factory=list, description="应用的折扣码")
    order_status: OrderStatus = Field(default=OrderStatus.PENDING_PAYMENT, description="订单状态")
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="支付状态")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_total(self):
        """验证最终金额计算"""
        expected = self.subtotal - self.discount_total + self.shipping_cost + self.tax_amount
        expected = max(expected, Decimal("0"))
        if abs(self.total - expected) > Decimal("0.01"):  # 允许1分钱误差
            raise ValueError("order total does not match its breakdown")
        return self

    @property
    def discount_codes(self) -> List[str]:
        return [applied.code for applied in self.applied_codes]

    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def is_cancelled(self) -> bool:
        return self.order_status == OrderStatus.CANCELLED


class CheckoutResult(BaseModel):
    """结账定单结果"""

    order: Order
    breakdown: CartPriceBreakdown
    redemptions: List[Redemption] = Field(default_factory=list)
    code_states: Dict[str, RedemptionState] = Field(default_factory=dict)
