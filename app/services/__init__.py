"""
服务包初始化文件
"""

from .common_cache import SimpleCache, discount_cache
from .code_resolver import CodeResolver
from .eligibility_evaluator import EligibilityEvaluator
from .price_adjuster import PriceAdjuster
from .redemption_service import RedemptionService
from .checkout_service import CheckoutService

__all__ = [
    "SimpleCache",
    "discount_cache",
    "CodeResolver",
    "EligibilityEvaluator",
    "PriceAdjuster",
    "RedemptionService",
    "CheckoutService",
]
