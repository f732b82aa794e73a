"""
折扣码解析与资格评估结果模型
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from app.models.cart import CartPriceBreakdown, CartSnapshot
from app.models.discount_code import AppliedCodeView, DiscountCode


class ResolveMiss(str, Enum):
    """解析失败的内部原因，仅用于日志"""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    OUTSIDE_WINDOW = "outside_window"


class RejectionReason(str, Enum):
    """评估拒绝原因"""
    INVALID_CODE = "INVALID_CODE"
    EXPIRED = "EXPIRED"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    BELOW_MIN_SPEND = "BELOW_MIN_SPEND"
    CATEGORY_EXCLUDED = "CATEGORY_EXCLUDED"
    CATEGORY_NOT_APPLICABLE = "CATEGORY_NOT_APPLICABLE"
    CAP_REACHED = "CAP_REACHED"
    NOT_STACKABLE = "NOT_STACKABLE"


# 不存在/停用/过期统一提示，避免被用来枚举有效折扣码
GENERIC_REJECTION_MESSAGE = "This code can't be applied."


class Resolution(BaseModel):
    """折扣码解析结果"""

    raw_code: str = Field(..., description="用户输入")
    normalized_code: str = Field(..., description="规范化后的折扣码")
    discount: Optional[DiscountCode] = Field(None, description="命中的折扣码")
    miss_reason: Optional[ResolveMiss] = Field(None, description="未命中原因")

    @property
    def found(self) -> bool:
        return self.discount is not None

    @property
    def user_message(self) -> Optional[str]:
        return None if self.found else GENERIC_REJECTION_MESSAGE


class Rejection(BaseModel):
    """单个折扣码的拒绝结果"""

    code: str
    reason: RejectionReason
    message: str
    min_spend_required: Optional[Decimal] = None


class EvaluationResult(BaseModel):
    """资格评估结果：按输入顺序接受的折扣码与被拒绝的折扣码"""

    accepted: List[DiscountCode] = Field(default_factory=list)
    rejected: List[Rejection] = Field(default_factory=list)

    @property
    def all_accepted(self) -> bool:
        return not self.rejected

    def rejection_for(self, code: str) -> Optional[Rejection]:
        return next((r for r in self.rejected if r.code == code), None)


class DiscountValidationRequest(BaseModel):
    """折扣码校验接口请求"""

    codes: List[str] = Field(..., min_length=1, description="本次提交的折扣码")
    applied_codes: List[str] = Field(default_factory=list, description="购物车中已应用的折扣码")
    cart: CartSnapshot
    customer_id: Optional[str] = None


class DiscountValidationResponse(BaseModel):
    """折扣码校验接口响应"""

    valid: bool
    accepted: List[AppliedCodeView] = Field(default_factory=list)
    rejections: List[Rejection] = Field(default_factory=list)
    breakdown: CartPriceBreakdown
