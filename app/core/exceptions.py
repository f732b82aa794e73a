"""
折扣码引擎异常定义

业务规则不通过（最低消费、品类、上限、叠加）属于预期结果，由评估器以数据形式返回；
这里只定义需要打断流程的异常。
"""

from typing import Any, Dict, List, Optional


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        message: str,
        code: str = "BUSINESS_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class CapExceededAtCommit(BusinessException):
    """提交时兑换上限已满（并发竞争失败），调用方必须重新计价后才能继续支付"""

    def __init__(self, discount_code: str, scope: str = "global"):
        super().__init__(
            message="This code is no longer available. Your total has been updated, please review before paying.",
            code="CAP_EXCEEDED_AT_COMMIT",
            status_code=409,
            details={"discount_code": discount_code, "scope": scope}
        )
        self.discount_code = discount_code
        self.scope = scope


class DiscountRuleViolation(BusinessException):
    """下单时折扣组合不再满足规则"""

    def __init__(self, rejections: List[Dict[str, Any]]):
        super().__init__(
            message="One or more discount codes can no longer be applied.",
            code="DISCOUNT_RULE_VIOLATION",
            status_code=422,
            details={"rejections": rejections}
        )
        self.rejections = rejections


class OrderNotFound(BusinessException):
    """订单不存在"""

    def __init__(self, order_id: str):
        super().__init__(
            message=f"Order {order_id} not found",
            code="ORDER_NOT_FOUND",
            status_code=404,
            details={"order_id": order_id}
        )


class InternalPersistenceError(BusinessException):
    """存储层失败，整个结账步骤中止"""

    def __init__(self, operation: str):
        super().__init__(
            message="Something went wrong while saving your order. Please try again.",
            code="INTERNAL_PERSISTENCE_ERROR",
            status_code=503,
            details={"operation": operation}
        )
        self.operation = operation
