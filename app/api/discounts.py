"""
折扣码校验接口

购物车输入折扣码时实时调用，只做解析、评估和价格预览，不写任何数据。
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.models.evaluation import DiscountValidationRequest, DiscountValidationResponse
from app.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/discounts", tags=["折扣码"])


@router.post("/validate", response_model=DiscountValidationResponse)
async def validate_discount_codes(
    request: DiscountValidationRequest,
    db: AsyncSession = Depends(get_db_session)
) -> DiscountValidationResponse:
    """校验折扣码并返回重新计算后的价格明细"""
    service = CheckoutService(db)
    response = await service.preview(
        request.cart,
        request.codes,
        customer_id=request.customer_id,
        applied_codes=request.applied_codes,
    )
    logger.info(
        f"折扣码校验完成: accepted={[a.code for a in response.accepted]}, "
        f"rejected={[r.code for r in response.rejections]}"
    )
    return response
