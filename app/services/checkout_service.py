"""
结账服务

串联 解析 -> 资格评估 -> 价格计算 -> 兑换提交：
- preview: 实时校验折扣码，无副作用，可走缓存
- finalize_order: 重新读库评估，在同一事务中创建订单快照并提交兑换
- mark_paid / handle_payment_failure: 支付结果回调，失败时撤销兑换归还名额
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BusinessException,
    CapExceededAtCommit,
    DiscountRuleViolation,
    InternalPersistenceError,
    OrderNotFound,
)
from app.models.cart import CartPriceBreakdown, CartSnapshot
from app.models.discount_code import AppliedCodeView, normalize_code
from app.models.evaluation import DiscountValidationResponse, EvaluationResult, Resolution
from app.models.order import CheckoutResult, Order, OrderItem, OrderStatus, PaymentStatus
from app.models.redemption import RedemptionState, RedemptionStats, advance_state
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.redemption_repository import RedemptionRepository
from app.services.code_resolver import CodeResolver
from app.services.common_cache import SimpleCache
from app.services.eligibility_evaluator import EligibilityEvaluator
from app.services.price_adjuster import PriceAdjuster
from app.services.redemption_service import RedemptionService
from app.utils.clock import store_now

logger = structlog.get_logger()


def _track_evaluation(
    resolutions: Sequence[Resolution],
    evaluation: EvaluationResult
) -> Dict[str, RedemptionState]:
    """记录每个折扣码的评估状态"""
    states = {}
    accepted = {discount.code for discount in evaluation.accepted}
    for resolution in resolutions:
        code = resolution.normalized_code
        if code in states:
            continue
        target = RedemptionState.ACCEPTED if code in accepted else RedemptionState.REJECTED
        states[code] = advance_state(RedemptionState.PROPOSED, target)
    return states


class CheckoutService:
    """结账服务"""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[SimpleCache] = None,
        price_adjuster: Optional[PriceAdjuster] = None
    ):
        self.db = db
        self.discount_repo = DiscountCodeRepository(db)
        self.redemption_repo = RedemptionRepository(db)
        self.order_repo = OrderRepository(db)
        self.resolver = CodeResolver(self.discount_repo, cache)
        self.evaluator = EligibilityEvaluator(self.redemption_repo)
        self.price_adjuster = price_adjuster or PriceAdjuster()
        self.redemption_service = RedemptionService(self.discount_repo, self.redemption_repo, cache)

    async def _resolve_and_evaluate(
        self,
        cart: CartSnapshot,
        raw_codes: Sequence[str],
        customer_id: Optional[str],
        now: datetime,
        use_cache: bool
    ):
        resolutions = await self.resolver.resolve_many(raw_codes, now=now, use_cache=use_cache)
        evaluation = await self.evaluator.evaluate(cart, customer_id, resolutions, [], now=now)
        breakdown = self.price_adjuster.apply(self.price_adjuster.breakdown_for(cart), evaluation.accepted)
        return resolutions, evaluation, breakdown

    async def preview(
        self,
        cart: CartSnapshot,
        raw_codes: Sequence[str],
        customer_id: Optional[str] = None,
        applied_codes: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None
    ) -> DiscountValidationResponse:
        """
        实时校验折扣码并返回价格预览

        已应用的折扣码放在新输入之前一起重新评估，购物车变化后不再满足条件的折扣码会被拒绝。
        不写任何数据。
        """
        now = now or store_now()
        candidates = list(applied_codes or []) + list(raw_codes)
        _, evaluation, breakdown = await self._resolve_and_evaluate(
            cart, candidates, customer_id, now, use_cache=True
        )

        return DiscountValidationResponse(
            valid=evaluation.all_accepted,
            accepted=[AppliedCodeView.from_discount(discount) for discount in evaluation.accepted],
            rejections=evaluation.rejected,
            breakdown=breakdown,
        )

    def _build_order(
        self,
        cart: CartSnapshot,
        breakdown: CartPriceBreakdown,
        customer_id: Optional[str],
        customer_email: Optional[str]
    ) -> Order:
        """按价格明细生成订单快照"""
        return Order(
            order_id=f"ord_{uuid.uuid4().hex[:16]}",
            customer_id=customer_id,
            customer_email=customer_email,
            order_items=[
                OrderItem(
                    item_id=f"oi_{uuid.uuid4().hex[:16]}",
                    product_id=line.product_id,
                    product_name=line.name,
                    category=line.category,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                )
                for line in cart.lines
            ],
            subtotal=breakdown.subtotal,
            discount_total=breakdown.discount_total,
            shipping_cost=breakdown.shipping_cost,
            tax_amount=breakdown.tax_amount,
            total=breakdown.total,
            applied_codes=breakdown.applied_codes,
        )

    async def finalize_order(
        self,
        cart: CartSnapshot,
        raw_codes: Sequence[str],
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CheckoutResult:
        """
        下单

        折扣码定义重新读库（不走缓存）并完整评估；任何折扣码被拒绝都抛出DiscountRuleViolation。
        订单快照与兑换记录在同一事务中提交，提交时名额不足抛出CapExceededAtCommit并回滚，
        调用方需要重新计价后才能继续支付。
        """
        now = now or store_now()
        customer_email = customer_email or cart.guest_email
        log = logger.bind(customer_id=customer_id, codes=list(raw_codes))

        resolutions, evaluation, breakdown = await self._resolve_and_evaluate(
            cart, raw_codes, customer_id, now, use_cache=False
        )
        states = _track_evaluation(resolutions, evaluation)

        if evaluation.rejected:
            log.info("下单时折扣码评估未通过", rejected=[r.code for r in evaluation.rejected])
            await self.db.rollback()
            raise DiscountRuleViolation([r.model_dump(mode="json") for r in evaluation.rejected])

        order = self._build_order(cart, breakdown, customer_id, customer_email)
        log = log.bind(order_id=order.order_id)

        try:
            await self.order_repo.create_order_with_items(order)
            redemptions = await self.redemption_service.commit(
                evaluation.accepted,
                breakdown,
                order.order_id,
                customer_id=customer_id,
                customer_email=customer_email,
            )
            await self.db.commit()
        except CapExceededAtCommit as e:
            await self.db.rollback()
            states[e.discount_code] = advance_state(states[e.discount_code], RedemptionState.COMMIT_FAILED)
            e.details["code_states"] = {code: state.value for code, state in states.items()}
            log.warning("下单失败，折扣码名额已满", code=e.discount_code, scope=e.scope)
            raise
        except InternalPersistenceError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("订单写入失败", error=str(e))
            raise InternalPersistenceError("create_order") from e

        for discount in evaluation.accepted:
            states[discount.code] = advance_state(states[discount.code], RedemptionState.COMMITTED)

        log.info("订单已创建", total=str(order.total), redemptions=len(redemptions))
        return CheckoutResult(order=order, breakdown=breakdown, redemptions=redemptions, code_states=states)

    async def _load_order(self, order_id: str) -> Order:
        db_order = await self.order_repo.get_by_order_id(order_id)
        if not db_order:
            raise OrderNotFound(order_id)
        return self.order_repo.to_model(db_order)

    async def mark_paid(self, order_id: str) -> Order:
        """支付成功回调，重复回调不会报错"""
        try:
            updated = await self.order_repo.update_payment_status(
                order_id,
                PaymentStatus.PAID,
                order_status=OrderStatus.PAID,
                paid_at=datetime.now(timezone.utc),
            )
            order = await self._load_order(order_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("订单支付状态更新失败", order_id=order_id, error=str(e))
            raise InternalPersistenceError("mark_paid") from e

        if not updated:
            logger.info("订单支付状态未变化", order_id=order_id, payment_status=order.payment_status.value)
        return order

    async def handle_payment_failure(self, order_id: str, reason: str = "payment_failed") -> Order:
        """
        支付失败或取消：撤销兑换、归还名额并取消订单，在同一事务中完成

        已支付订单不能走这个流程；已取消订单重复调用不会重复归还名额。
        只有待支付->已取消的条件更新命中后才归还名额，支付回调与这里并发时以先落库的一方为准。
        """
        try:
            cancelled = await self.order_repo.cancel_order(order_id, reason)
            if cancelled:
                reversals = await self.redemption_service.release(order_id, reason)
                await self.order_repo.update_payment_status(order_id, PaymentStatus.FAILED)
                order = await self._load_order(order_id)
                await self.db.commit()
            else:
                await self.db.rollback()
        except InternalPersistenceError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("订单取消失败", order_id=order_id, error=str(e))
            raise InternalPersistenceError("handle_payment_failure") from e

        if not cancelled:
            order = await self._load_order(order_id)
            if order.is_paid():
                logger.warning("订单已支付，拒绝撤销兑换", order_id=order_id, reason=reason)
                raise BusinessException(
                    message="Paid orders can't be cancelled here.",
                    code="ORDER_ALREADY_PAID",
                    status_code=409,
                    details={"order_id": order_id},
                )
            logger.info("订单已取消，跳过重复处理", order_id=order_id, order_status=order.order_status.value)
            return order

        logger.info("订单已取消", order_id=order_id, reason=reason, released=len(reversals))
        return order

    async def get_redemption_stats(self, raw_code: str) -> Optional[RedemptionStats]:
        """获取折扣码兑换统计"""
        db_code = await self.discount_repo.get_by_code(normalize_code(raw_code))
        if not db_code:
            return None

        stats = await self.redemption_repo.get_stats(db_code.discount_code_id)
        cap = db_code.global_redemption_cap
        count = db_code.redemption_count or 0

        return RedemptionStats(
            discount_code_id=db_code.discount_code_id,
            code=db_code.code,
            redemption_count=count,
            global_redemption_cap=cap,
            remaining=None if cap is None else max(cap - count, 0),
            **stats,
        )

