"""
仓库包初始化文件 - 数据库访问层
"""

from .discount_code_repository import DiscountCodeRepository
from .redemption_repository import RedemptionRepository
from .order_repository import OrderRepository

__all__ = [
    "DiscountCodeRepository",
    "RedemptionRepository",
    "OrderRepository",
]
