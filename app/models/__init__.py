"""
数据模型包初始化文件
"""

from .discount_code import (
    DiscountCode,
    DiscountCodeCreate,
    DiscountKind,
    DiscountKindType,
    PercentageOff,
    FixedAmountOff,
    FreeShipping,
    normalize_code,
)
from .cart import CartLine, CartSnapshot, AppliedCode, CartPriceBreakdown
from .evaluation import Resolution, ResolveMiss, Rejection, RejectionReason, EvaluationResult
from .redemption import Redemption, RedemptionReversal, RedemptionState, RedemptionStats
from .order import Order, OrderItem, OrderStatus, PaymentStatus, CheckoutResult

__all__ = [
    "DiscountCode",
    "DiscountCodeCreate",
    "DiscountKind",
    "DiscountKindType",
    "PercentageOff",
    "FixedAmountOff",
    "FreeShipping",
    "normalize_code",
    "CartLine",
    "CartSnapshot",
    "AppliedCode",
    "CartPriceBreakdown",
    "Resolution",
    "ResolveMiss",
    "Rejection",
    "RejectionReason",
    "EvaluationResult",
    "Redemption",
    "RedemptionReversal",
    "RedemptionState",
    "RedemptionStats",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "CheckoutResult",
]
