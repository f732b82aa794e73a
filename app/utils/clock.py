"""
时区工具：有效期判断统一使用服务端配置的门店时区，而不是客户端时区
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings

logger = logging.getLogger(__name__)


def store_timezone(tz_name: Optional[str] = None) -> tzinfo:
    """获取门店时区，配置无效时回退到UTC"""
    name = tz_name or settings.store_timezone
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning(f"无效的时区配置 {name}，回退到UTC")
        return timezone.utc


def store_now(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(store_timezone(tz_name))


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """数据库返回的无时区时间按UTC处理"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
