"""
折扣码相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Annotated, Iterable, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum

from app.core.config import settings


class DiscountKindType(str, Enum):
    """折扣类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣
    FIXED_AMOUNT = "fixed_amount"  # 固定金额折扣
    FREE_SHIPPING = "free_shipping"  # 免运费


class PercentageOff(BaseModel):
    """按比例折扣，rate为0-1之间的小数"""

    type: Literal["percentage"] = "percentage"
    rate: Decimal = Field(..., gt=0, le=1, description="折扣比例")


class FixedAmountOff(BaseModel):
    """固定金额折扣"""

    type: Literal["fixed_amount"] = "fixed_amount"
    amount: Decimal = Field(..., gt=0, description="折扣金额")


class FreeShipping(BaseModel):
    """免运费"""

    type: Literal["free_shipping"] = "free_shipping"


DiscountKind = Annotated[
    Union[PercentageOff, FixedAmountOff, FreeShipping],
    Field(discriminator="type")
]


def normalize_code(raw_code: Optional[str], case_insensitive: Optional[bool] = None) -> str:
    """规范化折扣码：去除首尾空白，大小写不敏感时统一为大写"""
    if case_insensitive is None:
        case_insensitive = settings.discount_case_insensitive
    code = (raw_code or "").strip()
    return code.upper() if case_insensitive else code


def normalize_categories(categories: Optional[Iterable[str]]) -> List[str]:
    """品类标签统一为小写并去重，保持原有顺序"""
    seen = []
    for category in categories or []:
        tag = (category or "").strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class DiscountCode(BaseModel):
    """折扣码基础模型"""

    discount_code_id: str = Field(..., description="折扣码ID")
    code: str = Field(..., min_length=1, max_length=64, description="折扣码")
    kind: DiscountKind = Field(..., description="折扣类型及参数")
    min_spend: Optional[Decimal] = Field(None, ge=0, description="最低消费金额")
    applicable_categories: List[str] = Field(default_factory=list, description="适用品类")
    excluded_categories: List[str] = Field(default_factory=list, description="排除品类")
    starts_at: Optional[datetime] = Field(None, description="生效时间")
    ends_at: Optional[datetime] = Field(None, description="失效时间")
    active: bool = Field(default=True, description="是否启用")
    global_redemption_cap: Optional[int] = Field(None, ge=0, description="全局兑换上限")
    per_customer_cap: Optional[int] = Field(None, ge=1, description="单客户兑换上限")
    stackable: bool = Field(default=False, description="是否可叠加")
    redemption_count: int = Field(default=0, ge=0, description="已兑换次数")
    description: Optional[str] = Field(None, max_length=500, description="描述")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("applicable_categories", "excluded_categories", mode="before")
    @classmethod
    def _normalize_categories(cls, v):
        return normalize_categories(v)

    @model_validator(mode="after")
    def _validate_window(self):
        """验证生效区间"""
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be later than starts_at")
        return self

    @property
    def kind_type(self) -> DiscountKindType:
        return DiscountKindType(self.kind.type)

    def is_within_window(self, now: datetime) -> bool:
        """检查当前时间是否在生效区间内"""
        if self.starts_at and now < self.starts_at:
            return False
        if self.ends_at and now > self.ends_at:
            return False
        return True

    def has_global_capacity(self) -> bool:
        """全局上限是否仍有余量（评估阶段仅作参考）"""
        return self.global_redemption_cap is None or self.redemption_count < self.global_redemption_cap

    def excludes_any(self, categories: Iterable[str]) -> bool:
        excluded = set(self.excluded_categories)
        return any(category in excluded for category in categories)

    def matches_any(self, categories: Iterable[str]) -> bool:
        if not self.applicable_categories:
            return True  # 无限制则适用于所有品类
        applicable = set(self.applicable_categories)
        return any(category in applicable for category in categories)


class DiscountCodeCreate(BaseModel):
    """创建折扣码模型（供种子脚本和测试使用，后台管理不在本服务范围内）"""

    code: str = Field(..., min_length=1, max_length=64)
    kind: DiscountKind
    min_spend: Optional[Decimal] = Field(None, ge=0)
    applicable_categories: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    active: bool = True
    global_redemption_cap: Optional[int] = Field(None, ge=0)
    per_customer_cap: Optional[int] = Field(default_factory=lambda: settings.default_per_customer_cap, ge=1)
    stackable: bool = False
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("applicable_categories", "excluded_categories", mode="before")
    @classmethod
    def _normalize_categories(cls, v):
        return normalize_categories(v)


class AppliedCodeView(BaseModel):
    """对外展示的折扣码摘要"""

    code: str
    kind: DiscountKindType
    stackable: bool

    @classmethod
    def from_discount(cls, discount: DiscountCode) -> "AppliedCodeView":
        return cls(code=discount.code, kind=discount.kind_type, stackable=discount.stackable)
