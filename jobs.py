"""
Periodic maintenance started with the application.

Each job is a plain function so it can be called directly; `run_periodically`
wraps one in an asyncio loop that runs it in a worker thread on a fixed
interval. A failed run is logged and the loop carries on; nothing retries.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Callable, List

import database
import notifications
import orders
from config import ORDER_CLEANUP_INTERVAL, TOKEN_CLEANUP_INTERVAL, UNPAID_ORDER_TTL_MINUTES
from schemas import OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)


def purge_revoked_tokens() -> int:
    """Drop revoked-token rows whose token would have expired anyway."""
    result = database.get_db()["revoked_token"].delete_many({"expires_at": {"$lt": database.now()}})
    if result.deleted_count:
        logger.info("Purged %d expired revoked token(s)", result.deleted_count)
    return result.deleted_count


def cancel_unpaid_orders(ttl_minutes: int = UNPAID_ORDER_TTL_MINUTES) -> int:
    """Cancel online-payment orders left unpaid past the TTL and put their stock back."""
    cutoff = database.now() - timedelta(minutes=ttl_minutes)
    stale = database.get_db()["order"].find({
        "paymentMethod": {"$in": [m.value for m in orders.ONLINE_METHODS]},
        "status": OrderStatus.PENDING.value,
        "paymentStatus": PaymentStatus.PENDING.value,
        "created_at": {"$lt": cutoff},
    })
    cancelled = 0
    for order in list(stale):
        if not orders.cancel_order(order, PaymentStatus.FAILED):
            continue
        cancelled += 1
        order["status"] = OrderStatus.CANCELLED.value
        notifications.order_status_changed(
            order, f"Your order {order['_id']} was cancelled because payment was not completed in time")
    if cancelled:
        logger.info("Cancelled %d unpaid order(s)", cancelled)
    return cancelled


async def run_periodically(job: Callable[[], int], interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(job)
        except Exception:
            logger.exception("Background job %s failed", job.__name__)


def start_jobs() -> List[asyncio.Task]:
    return [
        asyncio.create_task(run_periodically(purge_revoked_tokens, TOKEN_CLEANUP_INTERVAL)),
        asyncio.create_task(run_periodically(cancel_unpaid_orders, ORDER_CLEANUP_INTERVAL)),
    ]
