"""
RedemptionRepository兑换记录测试，以及并发提交测试
"""

import asyncio
import pytest
from decimal import Decimal

from app.core.exceptions import CapExceededAtCommit
from app.models.cart import CartPriceBreakdown
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.redemption_repository import RedemptionRepository
from app.services.redemption_service import RedemptionService


@pytest.mark.asyncio
class TestRedemptionRepository:
    """RedemptionRepository测试类"""

    @pytest.fixture
    def discount_repo(self, db_session):
        return DiscountCodeRepository(db_session)

    @pytest.fixture
    def repo(self, db_session):
        return RedemptionRepository(db_session)

    async def _add(self, repo, db_code, order_id, customer_id=None, customer_email=None, amount="20"):
        return await repo.add(
            discount_code_id=db_code.discount_code_id,
            code=db_code.code,
            order_id=order_id,
            amount_discounted=Decimal(amount),
            customer_id=customer_id,
            customer_email=customer_email,
        )

    async def test_count_active_for_customer(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("ONCE"))
        await self._add(repo, db_code, "ord_1", customer_id="cust_1")
        await self._add(repo, db_code, "ord_2", customer_id="cust_1")
        await self._add(repo, db_code, "ord_3", customer_id="cust_2")

        assert await repo.count_active_for_customer(db_code.discount_code_id, customer_id="cust_1") == 2
        assert await repo.count_active_for_customer(db_code.discount_code_id, customer_id="cust_3") == 0

    async def test_guest_count_by_email_is_case_insensitive(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("GUEST"))
        await self._add(repo, db_code, "ord_1", customer_email="Guest@Example.com")

        count = await repo.count_active_for_customer(db_code.discount_code_id, customer_email=" guest@example.COM")

        assert count == 1

    async def test_no_identity_counts_nothing(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("ANON"))
        await self._add(repo, db_code, "ord_1")

        assert await repo.count_active_for_customer(db_code.discount_code_id) == 0

    async def test_reversed_redemptions_do_not_count(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("REVERSE"))
        first = await self._add(repo, db_code, "ord_1", customer_id="cust_1")
        await self._add(repo, db_code, "ord_2", customer_id="cust_1")

        await repo.add_reversal(first.redemption_id, "payment_failed")

        assert await repo.count_active_for_customer(db_code.discount_code_id, customer_id="cust_1") == 1
        active = await repo.get_active_for_order("ord_1")
        assert active == []
        assert [r.order_id for r in await repo.get_active_for_order("ord_2")] == ["ord_2"]

    async def test_get_stats(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("STATS"))
        first = await self._add(repo, db_code, "ord_1", customer_id="cust_1", amount="20")
        await self._add(repo, db_code, "ord_2", customer_id="cust_2", amount="15.5")
        await self._add(repo, db_code, "ord_3", customer_id="cust_2", amount="10")
        await repo.add_reversal(first.redemption_id, "cancelled")

        stats = await repo.get_stats(db_code.discount_code_id)

        assert stats["total_committed"] == 3
        assert stats["total_reversed"] == 1
        assert stats["total_discounted"] == Decimal("25.5")
        assert stats["unique_customers"] == 1

    async def test_to_model(self, repo, discount_repo, make_code_create):
        db_code = await discount_repo.create(make_code_create("MODEL"))
        db_redemption = await self._add(repo, db_code, "ord_1", customer_email="A@B.com")

        redemption = repo.to_model(db_redemption)

        assert redemption.code == "MODEL"
        assert redemption.customer_email == "a@b.com"
        assert redemption.amount_discounted == Decimal("20")


@pytest.mark.asyncio
class TestConcurrentRedemption:
    """并发提交：名额上限在竞争下不会被超出"""

    @pytest.fixture
    def breakdown(self):
        return CartPriceBreakdown(
            subtotal=Decimal("200"),
            original_shipping_cost=Decimal("0"),
            shipping_cost=Decimal("0"),
            tax_base=Decimal("200"),
            total=Decimal("200.00"),
        )

    async def _create_code(self, session_factory, data):
        async with session_factory() as session:
            repo = DiscountCodeRepository(session)
            db_code = await repo.create(data)
            discount = repo.to_model(db_code)
            await session.commit()
        return discount

    async def test_fifty_concurrent_commits_against_cap_of_ten(
        self, session_factory, null_cache, make_code_create, breakdown
    ):
        """50个并发提交，上限10：恰好10个成功，40个CapExceededAtCommit，计数为10"""
        discount = await self._create_code(session_factory, make_code_create("RACE", global_redemption_cap=10))

        async def attempt(index: int) -> bool:
            async with session_factory() as session:
                service = RedemptionService(
                    DiscountCodeRepository(session), RedemptionRepository(session), null_cache
                )
                try:
                    await service.commit([discount], breakdown, f"ord_{index}", customer_id=f"cust_{index}")
                    await session.commit()
                    return True
                except CapExceededAtCommit:
                    await session.rollback()
                    return False

        results = await asyncio.gather(*(attempt(i) for i in range(50)))

        assert results.count(True) == 10
        assert results.count(False) == 40

        async with session_factory() as session:
            discount_repo = DiscountCodeRepository(session)
            stats = await RedemptionRepository(session).get_stats(discount.discount_code_id)
            assert await discount_repo.get_redemption_count(discount.discount_code_id) == 10
            assert stats["total_committed"] == 10

    async def test_release_returns_slot(self, session_factory, null_cache, make_code_create, breakdown):
        discount = await self._create_code(session_factory, make_code_create("SINGLE", global_redemption_cap=1))

        async with session_factory() as session:
            service = RedemptionService(DiscountCodeRepository(session), RedemptionRepository(session), null_cache)
            await service.commit([discount], breakdown, "ord_1", customer_id="cust_1")
            await session.commit()

            with pytest.raises(CapExceededAtCommit):
                await service.commit([discount], breakdown, "ord_2", customer_id="cust_2")
            await session.rollback()

            reversals = await service.release("ord_1", "payment_failed")
            await session.commit()
            assert len(reversals) == 1

            again = await service.release("ord_1", "payment_failed")
            await session.commit()
            assert again == []

            redemptions = await service.commit([discount], breakdown, "ord_2", customer_id="cust_2")
            await session.commit()
            assert len(redemptions) == 1
            assert await DiscountCodeRepository(session).get_redemption_count(discount.discount_code_id) == 1
