"""
数据库模型包初始化文件
"""

from .discount_code_db import DiscountCodeDB
from .redemption_db import RedemptionDB, RedemptionReversalDB
from .order_db import OrderDB, OrderItemDB

__all__ = [
    "DiscountCodeDB",
    "RedemptionDB",
    "RedemptionReversalDB",
    "OrderDB",
    "OrderItemDB",
]
