"""Per-user daily request quota"""
from datetime import date
from typing import Optional

from .config import config
from .db import database
from .db.models import Identity, UsageReport
from .langfuse_config import trace_step
from .utils.structured_logger import get_logger

logger = get_logger(__name__)


async def check_and_consume(identity: Identity, today: Optional[date] = None) -> bool:
    """
    Let a request through and count it against today's quota

    Admins are always allowed and never counted. Everyone else gets
    config.DAILY_REQUEST_LIMIT requests per server-local calendar day; a
    denied request leaves the counter untouched.

    Args:
        identity: the verified caller
        today: the day to count against (defaults to the local date)

    Returns:
        bool: True when the request may proceed
    """
    today = today or date.today()

    with trace_step("rate-limit-check", user_id=identity.user_id, is_admin=identity.is_admin) as span:
        if identity.is_admin:
            allowed = True
        else:
            allowed = await database.consume_daily_request(identity.user_id, today, config.DAILY_REQUEST_LIMIT)
        if span is not None:
            span.update(output={"allowed": allowed})

    if not allowed:
        logger.warning("Daily request limit reached", user_id=identity.user_id, limit=config.DAILY_REQUEST_LIMIT)
    return allowed


async def get_usage(identity: Identity, today: Optional[date] = None) -> UsageReport:
    today = today or date.today()
    used = await database.get_user_requests_today(identity.user_id, today)
    return UsageReport(used=used, limit=config.DAILY_REQUEST_LIMIT, is_admin=identity.is_admin)
