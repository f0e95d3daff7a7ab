"""
Subscription Jobs

Background jobs for the rental lifecycle:
- Expire active subscriptions that have reached their end date
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from aquarent.database import get_db_session
from aquarent.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


async def expire_due_subscriptions() -> Dict[str, Any]:
    """
    Expire subscriptions whose end_date has passed.

    Runs daily. Each subscription is moved to expired in its own
    transaction and its customer is notified.
    """
    logger.info("Starting subscription expiry sweep...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        expired = await SubscriptionService(session).expire_due_subscriptions(now=start_time)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Subscription expiry sweep finished: {len(expired)} expired in {duration:.2f}s")
    return {"expired_count": len(expired), "subscription_ids": expired}
