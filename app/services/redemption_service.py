"""
折扣码兑换提交与补偿服务

提交：在下单事务中，按输入顺序对每个折扣码执行一次原子条件更新占用名额，
然后写入兑换记录。条件更新未命中说明并发竞争失败，抛出CapExceededAtCommit，
由调用方回滚整个事务并重新计价。

补偿：支付失败、取消或退款时，为订单下尚未撤销的兑换记录追加补偿事件并归还名额，
重复调用不会重复归还。
"""

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import CapExceededAtCommit, InternalPersistenceError
from app.models.cart import CartPriceBreakdown
from app.models.discount_code import DiscountCode
from app.models.redemption import Redemption, RedemptionReversal
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.redemption_repository import RedemptionRepository
from app.services.common_cache import SimpleCache, discount_cache
from app.utils.money import ZERO

logger = structlog.get_logger()


class RedemptionService:
    """兑换提交服务"""

    def __init__(
        self,
        discount_repo: DiscountCodeRepository,
        redemption_repo: RedemptionRepository,
        cache: Optional[SimpleCache] = None
    ):
        self.discount_repo = discount_repo
        self.redemption_repo = redemption_repo
        self.cache = cache if cache is not None else discount_cache

    async def _invalidate(self, code: str) -> None:
        await self.cache.delete(f"code:{code}")

    async def commit(
        self,
        accepted: Sequence[DiscountCode],
        breakdown: CartPriceBreakdown,
        order_id: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> List[Redemption]:
        """
        提交兑换

        必须在下单的同一事务中调用。先执行条件更新（同时锁住折扣码行），
        再在锁内复核单客户上限，最后写入兑换记录。任一步失败都由调用方回滚整个事务。
        """
        amounts: Dict[str, Decimal] = {
            applied.code: applied.discount_amount for applied in breakdown.applied_codes
        }
        redemptions = []

        for discount in accepted:
            log = logger.bind(code=discount.code, order_id=order_id, customer_id=customer_id)
            try:
                claimed = await self.discount_repo.claim_slot(discount.discount_code_id)
                if not claimed:
                    log.warning("折扣码全局名额已满，提交失败")
                    raise CapExceededAtCommit(discount.code, scope="global")

                if discount.per_customer_cap is not None and (customer_id or customer_email):
                    used = await self.redemption_repo.count_active_for_customer(
                        discount.discount_code_id,
                        customer_id=customer_id,
                        customer_email=None if customer_id else customer_email,
                    )
                    if used >= discount.per_customer_cap:
                        log.warning("客户已达到兑换上限，提交失败", used=used, cap=discount.per_customer_cap)
                        raise CapExceededAtCommit(discount.code, scope="customer")

                db_redemption = await self.redemption_repo.add(
                    discount_code_id=discount.discount_code_id,
                    code=discount.code,
                    order_id=order_id,
                    amount_discounted=amounts.get(discount.code, ZERO),
                    customer_id=customer_id,
                    customer_email=customer_email,
                )
            except SQLAlchemyError as e:
                log.error("兑换记录写入失败", error=str(e))
                raise InternalPersistenceError("commit_redemption") from e

            redemptions.append(self.redemption_repo.to_model(db_redemption))
            await self._invalidate(discount.code)
            log.info("折扣码兑换已提交", redemption_id=db_redemption.redemption_id)

        return redemptions

    async def release(self, order_id: str, reason: str) -> List[RedemptionReversal]:
        """撤销订单下的兑换并归还名额，已撤销的记录会被跳过"""
        log = logger.bind(order_id=order_id, reason=reason)
        reversals = []

        try:
            active = await self.redemption_repo.get_active_for_order(order_id)
            for db_redemption in active:
                db_reversal = await self.redemption_repo.add_reversal(db_redemption.redemption_id, reason)
                released = await self.discount_repo.release_slot(db_redemption.discount_code_id)
                if not released:
                    log.warning("折扣码计数已为0，未归还名额", code=db_redemption.code)
                reversals.append(self.redemption_repo.reversal_to_model(db_reversal))
                await self._invalidate(db_redemption.code)
        except SQLAlchemyError as e:
            log.error("兑换补偿写入失败", error=str(e))
            raise InternalPersistenceError("release_redemption") from e

        log.info("订单兑换已撤销", released=len(reversals))
        return reversals
