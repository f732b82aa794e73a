"""
折扣码资格与叠加评估服务

按用户输入顺序逐个评估候选折扣码，每个折扣码在第一个不满足的条件处停止：
有效期 -> 重复 -> 最低消费 -> 品类 -> 单客户上限 -> 全局上限 -> 叠加规则。
已接受的折扣码会加入本次叠加组合，参与后续候选码的叠加判断。

业务规则不满足属于预期结果，以Rejection数据返回，不抛异常。
全局上限在这里只是参考判断，真正的保证在提交时的原子条件更新。
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from app.core.config import settings
from app.models.cart import CartSnapshot
from app.models.discount_code import DiscountCode
from app.models.evaluation import (
    GENERIC_REJECTION_MESSAGE,
    EvaluationResult,
    Rejection,
    RejectionReason,
    Resolution,
)
from app.repositories.redemption_repository import RedemptionRepository
from app.utils.clock import store_now
from app.utils.money import format_money

logger = logging.getLogger(__name__)

Candidate = Union[Resolution, DiscountCode]


class EligibilityEvaluator:
    """折扣码资格评估器"""

    def __init__(self, redemption_repo: RedemptionRepository):
        self.redemption_repo = redemption_repo

    def _reject(
        self,
        code: str,
        reason: RejectionReason,
        message: str = GENERIC_REJECTION_MESSAGE,
        min_spend_required: Optional[Decimal] = None
    ) -> Rejection:
        logger.info(f"折扣码评估拒绝 {code}: {reason.value}")
        return Rejection(code=code, reason=reason, message=message, min_spend_required=min_spend_required)

    async def _check_customer_cap(
        self,
        discount: DiscountCode,
        customer_id: Optional[str],
        customer_email: Optional[str]
    ) -> bool:
        """单客户上限；访客只能按邮箱尽力判断，没有任何身份信息时跳过"""
        if discount.per_customer_cap is None:
            return True
        if not customer_id and not customer_email:
            return True

        used = await self.redemption_repo.count_active_for_customer(
            discount.discount_code_id,
            customer_id=customer_id,
            customer_email=None if customer_id else customer_email,
        )
        return used < discount.per_customer_cap

    def _check_stacking(self, discount: DiscountCode, stack: List[DiscountCode]) -> Optional[str]:
        """返回不可叠加时的提示文案，可叠加返回None"""
        if not stack:
            return None
        if not discount.stackable or any(not applied.stackable for applied in stack):
            return "This code can't be combined with other discount codes."
        if len(stack) + 1 > settings.discount_max_stack:
            return f"You can combine at most {settings.discount_max_stack} discount codes."
        return None

    async def _evaluate_one(
        self,
        discount: DiscountCode,
        cart: CartSnapshot,
        customer_id: Optional[str],
        stack: List[DiscountCode],
        now: datetime
    ) -> Optional[Rejection]:
        code = discount.code

        # 0. 解析之后可能已停用或过期
        if not discount.active or not discount.is_within_window(now):
            return self._reject(code, RejectionReason.EXPIRED)
        if any(applied.code == code for applied in stack):
            return self._reject(code, RejectionReason.DUPLICATE_CODE, "This code is already applied.")

        # 1. 最低消费按折扣前、运费前的商品小计判断
        subtotal = cart.subtotal
        if discount.min_spend is not None and subtotal < discount.min_spend:
            shortfall = discount.min_spend - subtotal
            return self._reject(
                code,
                RejectionReason.BELOW_MIN_SPEND,
                f"Spend at least {format_money(discount.min_spend, settings.currency)} to use this code. "
                f"Add {format_money(shortfall, settings.currency)} more to your cart.",
                min_spend_required=discount.min_spend,
            )

        # 2. 品类：排除优先于适用
        categories = cart.categories
        if discount.excludes_any(categories):
            blocked = sorted(category for category in categories if category in discount.excluded_categories)
            return self._reject(
                code,
                RejectionReason.CATEGORY_EXCLUDED,
                f"This code can't be used with {', '.join(blocked)} items in your cart.",
            )
        if not discount.matches_any(categories):
            return self._reject(
                code,
                RejectionReason.CATEGORY_NOT_APPLICABLE,
                f"This code only applies to {', '.join(discount.applicable_categories)} products.",
            )

        # 3. 单客户上限
        if not await self._check_customer_cap(discount, customer_id, cart.guest_email):
            return self._reject(
                code,
                RejectionReason.CAP_REACHED,
                "You've already used this code the maximum number of times.",
            )

        # 4. 全局上限（参考）
        if not discount.has_global_capacity():
            return self._reject(code, RejectionReason.CAP_REACHED, "This code is no longer available.")

        # 5. 叠加规则
        stacking_message = self._check_stacking(discount, stack)
        if stacking_message:
            return self._reject(code, RejectionReason.NOT_STACKABLE, stacking_message)

        return None

    async def evaluate(
        self,
        cart: CartSnapshot,
        customer_id: Optional[str],
        candidates: Sequence[Candidate],
        already_applied: Optional[Sequence[DiscountCode]] = None,
        now: Optional[datetime] = None
    ) -> EvaluationResult:
        """
        评估候选折扣码

        Args:
            cart: 购物车快照
            customer_id: 登录客户ID，访客为None（使用cart.guest_email尽力判断）
            candidates: 按输入顺序的候选折扣码（解析结果或折扣码）
            already_applied: 购物车中已应用的折扣码
            now: 评估时间，默认取门店时区当前时间
        """
        now = now or store_now()
        stack: List[DiscountCode] = list(already_applied or [])
        result = EvaluationResult()

        for candidate in candidates:
            if isinstance(candidate, Resolution):
                if not candidate.found:
                    result.rejected.append(
                        self._reject(candidate.normalized_code or candidate.raw_code, RejectionReason.INVALID_CODE)
                    )
                    continue
                discount = candidate.discount
            else:
                discount = candidate

            rejection = await self._evaluate_one(discount, cart, customer_id, stack, now)
            if rejection:
                result.rejected.append(rejection)
                continue

            result.accepted.append(discount)
            stack.append(discount)

        return result
