"""
购物车快照与价格明细模型
"""

from decimal import Decimal
from typing import List, Optional, Set
from pydantic import BaseModel, Field, field_validator

from app.models.discount_code import DiscountKindType


class CartLine(BaseModel):
    """购物车商品行"""

    product_id: str = Field(..., description="商品ID")
    name: str = Field(default="", description="商品名称")
    category: str = Field(..., min_length=1, description="品类标签")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    quantity: int = Field(default=1, ge=1, description="数量")

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    """结账时的购物车快照，由购物车/结账接口提供"""

    lines: List[CartLine] = Field(default_factory=list, description="商品行")
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0, description="预估运费")
    guest_email: Optional[str] = Field(None, description="访客邮箱")

    @property
    def subtotal(self) -> Decimal:
        """商品小计（折扣前、运费前）"""
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def categories(self) -> Set[str]:
        return {line.category for line in self.lines}


class AppliedCode(BaseModel):
    """价格明细中已应用的折扣码"""

    code: str
    kind: DiscountKindType
    discount_amount: Decimal = Field(..., ge=0, description="全精度折扣金额")


class CartPriceBreakdown(BaseModel):
    """
    价格明细，每次重新计算，不单独持久化

    subtotal 始终是折扣前商品小计；tax_base 是折扣后的应税金额；
    total 是唯一做过两位小数舍入的字段。
    """

    subtotal: Decimal = Field(..., ge=0, description="折扣前商品小计")
    original_shipping_cost: Decimal = Field(..., ge=0, description="原始运费")
    shipping_cost: Decimal = Field(..., ge=0, description="应付运费")
    discount_total: Decimal = Field(default=Decimal("0"), ge=0, description="商品折扣合计")
    tax_base: Decimal = Field(..., ge=0, description="应税金额")
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, description="税率")
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, description="税额")
    applied_codes: List[AppliedCode] = Field(default_factory=list, description="按输入顺序应用的折扣码")
    total: Decimal = Field(..., ge=0, description="应付总额")

    @property
    def codes(self) -> List[str]:
        return [applied.code for applied in self.applied_codes]

    @property
    def shipping_discount(self) -> Decimal:
        return self.original_shipping_cost - self.shipping_cost

    @property
    def savings(self) -> Decimal:
        """总节省金额（商品折扣+运费减免）"""
        return self.discount_total + self.shipping_discount
