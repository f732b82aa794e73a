"""
价格计算服务

纯函数：根据已接受的折扣码（按输入顺序）计算价格明细。
百分比折扣作用于前面折扣之后的剩余小计（逐级复合，不是相加），
中间金额保持全精度，只在最终总额处舍入一次。
"""

from decimal import Decimal
from typing import Optional, Sequence

from app.core.config import settings
from app.models.cart import AppliedCode, CartPriceBreakdown, CartSnapshot
from app.models.discount_code import DiscountCode, FixedAmountOff, FreeShipping, PercentageOff
from app.utils.money import ZERO, D, clamp_non_negative, round_money


class PriceAdjuster:
    """价格计算器"""

    def __init__(self, tax_rate: Optional[Decimal] = None):
        self.tax_rate = D(settings.tax_rate if tax_rate is None else tax_rate)

    def breakdown_for(self, cart: CartSnapshot) -> CartPriceBreakdown:
        """未应用任何折扣码的价格明细"""
        return self._build(cart.subtotal, cart.shipping_cost, cart.shipping_cost, [])

    def _build(
        self,
        subtotal: Decimal,
        original_shipping: Decimal,
        shipping: Decimal,
        applied: Sequence[AppliedCode],
        running: Optional[Decimal] = None
    ) -> CartPriceBreakdown:
        tax_base = clamp_non_negative(subtotal if running is None else running)
        tax_amount = tax_base * self.tax_rate
        total = round_money(clamp_non_negative(tax_base + shipping + tax_amount))

        return CartPriceBreakdown(
            subtotal=subtotal,
            original_shipping_cost=original_shipping,
            shipping_cost=shipping,
            discount_total=subtotal - tax_base,
            tax_base=tax_base,
            tax_rate=self.tax_rate,
            tax_amount=tax_amount,
            applied_codes=list(applied),
            total=total,
        )

    def apply(self, breakdown: CartPriceBreakdown, accepted: Sequence[DiscountCode]) -> CartPriceBreakdown:
        """
        在价格明细上依次应用折扣码

        总是从breakdown的原始小计和原始运费重新计算，重复调用或去掉某个折扣码后
        重新计算都不会累积误差。
        """
        subtotal = breakdown.subtotal
        original_shipping = breakdown.original_shipping_cost
        running = subtotal
        shipping = original_shipping
        applied = []

        for discount in accepted:
            kind = discount.kind
            if isinstance(kind, FreeShipping):
                amount = shipping
                shipping = ZERO
            elif isinstance(kind, PercentageOff):
                amount = running * kind.rate
                running -= amount
            elif isinstance(kind, FixedAmountOff):
                amount = min(kind.amount, running)
                running -= amount
            else:
                raise TypeError(f"unsupported discount kind: {type(kind).__name__}")

            applied.append(AppliedCode(code=discount.code, kind=discount.kind_type, discount_amount=amount))

        return self._build(subtotal, original_shipping, shipping, applied, running)
