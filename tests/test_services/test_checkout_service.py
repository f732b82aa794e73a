"""
CheckoutService结账流程测试（真实数据库）
"""

import pytest
from decimal import Decimal

from app.core.exceptions import (
    BusinessException,
    CapExceededAtCommit,
    DiscountRuleViolation,
    OrderNotFound,
)
from app.models.discount_code import FixedAmountOff, FreeShipping, PercentageOff
from app.models.evaluation import RejectionReason, Resolution
from app.models.order import OrderStatus, PaymentStatus
from app.models.redemption import RedemptionState
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.services.checkout_service import CheckoutService
from app.services.price_adjuster import PriceAdjuster


@pytest.mark.asyncio
class TestCheckoutService:
    """CheckoutService测试类"""

    @pytest.fixture
    def service(self, db_session, null_cache):
        return CheckoutService(db_session, cache=null_cache, price_adjuster=PriceAdjuster(tax_rate=Decimal("0")))

    async def _seed(self, db_session, *codes):
        repo = DiscountCodeRepository(db_session)
        for data in codes:
            await repo.create(data)
        await db_session.commit()

    async def test_preview_is_side_effect_free(self, service, db_session, sample_cart, make_code_create, now):
        await self._seed(db_session, make_code_create("WELCOME10", global_redemption_cap=5))

        response = await service.preview(sample_cart, [" welcome10"], customer_id="cust_1", now=now)

        assert response.valid
        assert [a.code for a in response.accepted] == ["WELCOME10"]
        assert response.breakdown.total == Decimal("240.00")
        db_code = await service.discount_repo.get_by_code("WELCOME10")
        assert db_code.redemption_count == 0

    async def test_preview_reports_rejections_with_breakdown(
        self, service, db_session, sample_cart, make_code_create, now
    ):
        await self._seed(
            db_session,
            make_code_create("WELCOME10"),
            make_code_create("BIGSPEND", kind=FixedAmountOff(amount=Decimal("50")), min_spend=Decimal("500")),
        )

        response = await service.preview(sample_cart, ["BIGSPEND", "nope"], applied_codes=["WELCOME10"], now=now)

        assert not response.valid
        assert [a.code for a in response.accepted] == ["WELCOME10"]
        reasons = {r.code: r.reason for r in response.rejections}
        assert reasons == {"BIGSPEND": RejectionReason.BELOW_MIN_SPEND, "NOPE": RejectionReason.INVALID_CODE}
        assert response.breakdown.codes == ["WELCOME10"]

    async def test_finalize_creates_order_and_redemptions(
        self, service, db_session, sample_cart, make_code_create, now
    ):
        await self._seed(
            db_session,
            make_code_create("WELCOME10", stackable=True),
            make_code_create("FREESHIP", kind=FreeShipping(), stackable=True),
        )

        result = await service.finalize_order(
            sample_cart, ["welcome10", "FREESHIP"], customer_id="cust_1", customer_email="c@example.com", now=now
        )

        assert result.order.total == Decimal("180.00")
        assert result.order.shipping_cost == Decimal("0")
        assert result.order.discount_codes == ["WELCOME10", "FREESHIP"]
        assert [r.code for r in result.redemptions] == ["WELCOME10", "FREESHIP"]
        assert result.code_states == {
            "WELCOME10": RedemptionState.COMMITTED,
            "FREESHIP": RedemptionState.COMMITTED,
        }

        stored = await service.order_repo.get_by_order_id(result.order.order_id)
        assert service.order_repo.to_model(stored).total == Decimal("180.00")
        stats = await service.get_redemption_stats("welcome10")
        assert stats.redemption_count == 1
        assert stats.total_committed == 1

    async def test_finalize_rejects_stack_that_no_longer_evaluates(
        self, service, db_session, make_cart, make_code_create, now
    ):
        await self._seed(db_session, make_code_create("BIGSPEND", min_spend=Decimal("500")))

        with pytest.raises(DiscountRuleViolation) as exc_info:
            await service.finalize_order(make_cart(), ["BIGSPEND"], customer_id="cust_1", now=now)

        assert exc_info.value.rejections[0]["reason"] == RejectionReason.BELOW_MIN_SPEND.value
        assert (await service.get_redemption_stats("BIGSPEND")).total_committed == 0

    async def test_finalize_rolls_back_when_cap_lost_at_commit(
        self, service, db_session, sample_cart, make_code_create, now
    ):
        """评估通过但提交时名额已被占用：整单回滚，不留订单和兑换记录"""
        await self._seed(db_session, make_code_create("LAST", global_redemption_cap=1))
        stale = service.discount_repo.to_model(await service.discount_repo.get_by_code("LAST"))
        await service.discount_repo.claim_slot(stale.discount_code_id)
        await db_session.commit()

        # 模拟评估时读到的还是旧计数
        async def stale_resolve_many(raw_codes, now=None, use_cache=False):
            return [Resolution(raw_code=raw, normalized_code="LAST", discount=stale) for raw in raw_codes]

        service.resolver.resolve_many = stale_resolve_many

        with pytest.raises(CapExceededAtCommit) as exc_info:
            await service.finalize_order(sample_cart, ["LAST"], customer_id="cust_2", now=now)

        assert exc_info.value.scope == "global"
        assert exc_info.value.details["code_states"] == {"LAST": RedemptionState.COMMIT_FAILED.value}
        stats = await service.get_redemption_stats("LAST")
        assert stats.redemption_count == 1
        assert stats.total_committed == 0
        assert stats.remaining == 0

    async def test_per_customer_cap_blocks_second_order(
        self, service, db_session, sample_cart, make_code_create, now
    ):
        await self._seed(db_session, make_code_create("ONCE", per_customer_cap=1))

        await service.finalize_order(sample_cart, ["ONCE"], customer_id="cust_1", now=now)

        with pytest.raises(DiscountRuleViolation) as exc_info:
            await service.finalize_order(sample_cart, ["ONCE"], customer_id="cust_1", now=now)

        assert exc_info.value.rejections[0]["reason"] == RejectionReason.CAP_REACHED.value

    async def test_payment_failure_releases_redemptions(
        self, service, db_session, sample_cart, make_code_create, now
    ):
        await self._seed(db_session, make_code_create("ONCE", per_customer_cap=1, global_redemption_cap=1))
        result = await service.finalize_order(sample_cart, ["ONCE"], customer_id="cust_1", now=now)

        order = await service.handle_payment_failure(result.order.order_id, "payment_failed")

        assert order.order_status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.FAILED
        stats = await service.get_redemption_stats("ONCE")
        assert stats.redemption_count == 0
        assert stats.total_reversed == 1
        assert stats.remaining == 1

        again = await service.handle_payment_failure(result.order.order_id, "payment_failed")
        assert again.is_cancelled()
        assert (await service.get_redemption_stats("ONCE")).redemption_count == 0

        retry = await service.finalize_order(sample_cart, ["ONCE"], customer_id="cust_1", now=now)
        assert retry.order.discount_codes == ["ONCE"]

    async def test_mark_paid(self, service, db_session, sample_cart, make_code_create, now):
        await self._seed(db_session, make_code_create("WELCOME10", kind=PercentageOff(rate=Decimal("0.10"))))
        result = await service.finalize_order(sample_cart, ["WELCOME10"], customer_id="cust_1", now=now)

        order = await service.mark_paid(result.order.order_id)

        assert order.is_paid()
        assert order.paid_at is not None
        with pytest.raises(BusinessException) as exc_info:
            await service.handle_payment_failure(result.order.order_id)
        assert exc_info.value.code == "ORDER_ALREADY_PAID"

    async def test_payment_failure_after_concurrent_payment_keeps_redemption(
        self, service, db_session, session_factory, null_cache, sample_cart, make_code_create, now
    ):
        """支付回调先落库时，失败回调不能撤销兑换也不能归还名额"""
        await self._seed(db_session, make_code_create("ONCE", per_customer_cap=1, global_redemption_cap=1))
        result = await service.finalize_order(sample_cart, ["ONCE"], customer_id="cust_1", now=now)

        real_cancel = service.order_repo.cancel_order

        # 支付成功回调在失败处理开始写库前提交
        async def paid_then_cancel(order_id, reason=""):
            async with session_factory() as other:
                await CheckoutService(other, cache=null_cache).mark_paid(order_id)
            return await real_cancel(order_id, reason)

        service.order_repo.cancel_order = paid_then_cancel

        with pytest.raises(BusinessException) as exc_info:
            await service.handle_payment_failure(result.order.order_id, "payment_failed")

        assert exc_info.value.code == "ORDER_ALREADY_PAID"
        stored = service.order_repo.to_model(await service.order_repo.get_by_order_id(result.order.order_id))
        assert stored.is_paid()
        stats = await service.get_redemption_stats("ONCE")
        assert stats.redemption_count == 1
        assert stats.total_reversed == 0
        assert stats.remaining == 0

    async def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            await service.handle_payment_failure("ord_missing")
        with pytest.raises(OrderNotFound):
            await service.mark_paid("ord_missing")

    async def test_stats_for_unknown_code(self, service):
        assert await service.get_redemption_stats("NOPE") is None
