import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from seminar_api.config import settings
from seminar_api.database import get_db_connection
from seminar_api.models.job import ReconciliationResult, SweepResult
from seminar_api.models.order import OrderStatus, TransitionEvidence
from seminar_api.services import orders_service, notification_service
from seminar_api.services.notification_service import NotificationKind

logger = logging.getLogger(__name__)

JOB_NAME = "unpaid_notice"


async def expire_stale_orders(now: Optional[datetime] = None) -> SweepResult:
    """
    Expire deferred-payment orders whose payment window has elapsed.

    - Moves PENDING konbini orders older than the window to EXPIRED
    - Releases their stock through the transition
    - Safe to run repeatedly; already expired orders are skipped
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=settings.deferred_payment_window_days)
    result = SweepResult()

    async with get_db_connection(use_transaction=False) as conn:
        candidates = await conn.fetch("""
            SELECT id, order_number, created_at
            FROM orders
            WHERE status = 'PENDING'
              AND payment_method = ANY($1::text[])
              AND created_at < $2
            ORDER BY created_at
            LIMIT $3
        """, settings.deferred_payment_methods, cutoff, settings.reconciliation_batch_size)

    if not candidates:
        logger.info("No stale deferred-payment orders found")
        return result

    for order in candidates:
        try:
            transition = await orders_service.transition(
                order['id'],
                OrderStatus.EXPIRED,
                TransitionEvidence(reason="payment_window_elapsed", occurred_at=now)
            )
            if not transition.applied:
                continue

            result.processed += 1
            result.order_numbers.append(order['order_number'])
            await notification_service.notify(order['id'], NotificationKind.ORDER_EXPIRED)

        except Exception as e:
            result.errors += 1
            logger.error(f"Error expiring order {order['order_number']}: {e}")

    logger.info(f"Expiry sweep complete: {result.processed} orders expired, {result.errors} errors")
    return result


async def send_unpaid_notices(now: Optional[datetime] = None) -> SweepResult:
    """
    Remind buyers with unpaid deferred orders.

    One reminder per order per day offset; the claim row in order_notices
    is what makes a second run on the same day send nothing.
    """
    now = now or datetime.now(timezone.utc)
    notice_days = sorted(set(settings.unpaid_notice_days))
    result = SweepResult()
    if not notice_days:
        return result

    window_start = now - timedelta(days=settings.deferred_payment_window_days)
    newest = now - timedelta(days=notice_days[0])

    async with get_db_connection(use_transaction=False) as conn:
        candidates = await conn.fetch("""
            SELECT id, order_number, created_at
            FROM orders
            WHERE status = 'PENDING'
              AND payment_method = ANY($1::text[])
              AND created_at >= $2
              AND created_at < $3
            ORDER BY created_at
            LIMIT $4
        """, settings.unpaid_notice_methods, window_start, newest, settings.reconciliation_batch_size)

    for order in candidates:
        day_offset = (now - order['created_at']).days
        if day_offset not in notice_days:
            continue

        try:
            async with get_db_connection() as conn:
                claim = await conn.fetchrow("""
                    INSERT INTO order_notices (order_id, notice_kind, day_offset)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (order_id, notice_kind, day_offset) DO NOTHING
                    RETURNING id
                """, order['id'], NotificationKind.UNPAID_REMINDER.value, day_offset)

            if not claim:
                continue

            await notification_service.notify(
                order['id'], NotificationKind.UNPAID_REMINDER, {"day_offset": day_offset}
            )
            result.processed += 1
            result.order_numbers.append(order['order_number'])

        except Exception as e:
            result.errors += 1
            logger.error(f"Error sending unpaid notice for {order['order_number']}: {e}")

    logger.info(f"Unpaid notice sweep complete: {result.processed} reminders, {result.errors} errors")
    return result


async def _write_job_log(result: ReconciliationResult, error: Optional[str]) -> None:
    try:
        async with get_db_connection() as conn:
            await conn.execute("""
                INSERT INTO job_logs (
                    job_name, status, started_at, completed_at,
                    processed_count, error_count, details, error
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
                result.job_name, result.status, result.started_at, result.completed_at,
                result.processed_count, result.error_count,
                {
                    "expired": result.expired.order_numbers,
                    "reminded": result.reminders.order_numbers,
                },
                error
            )
    except Exception as e:
        logger.error(f"Could not write job log for {result.job_name}: {e}")


async def run_unpaid_job(now: Optional[datetime] = None) -> ReconciliationResult:
    """Run the expiry and reminder sweeps and record the run in job_logs"""
    now = now or datetime.now(timezone.utc)
    started_at = datetime.now(timezone.utc)
    logger.info(f"Starting job: {JOB_NAME}")

    expired = SweepResult()
    reminders = SweepResult()
    status = "COMPLETED"
    error = None

    try:
        expired = await expire_stale_orders(now)
        reminders = await send_unpaid_notices(now)
    except Exception as e:
        status = "FAILED"
        error = str(e)
        logger.error(f"Job failed: {JOB_NAME}: {e}", exc_info=True)

    result = ReconciliationResult(
        job_name=JOB_NAME,
        status=status,
        started_at=started_at,
        completed_at=datetime.now(timezone.utc),
        expired=expired,
        reminders=reminders
    )
    await _write_job_log(result, error)

    if status == "COMPLETED":
        logger.info(
            f"Job completed: {JOB_NAME} "
            f"({expired.processed} expired, {reminders.processed} reminders, {result.error_count} errors)"
        )
    return result


async def run_reconciliation_loop():
    """
    Main reconciliation loop that runs continuously.
    """
    interval = settings.reconciliation_interval_seconds
    logger.info(f"Starting reconciliation background task every {interval}s...")

    while True:
        try:
            await run_unpaid_job()
        except Exception as e:
            logger.error(f"Error in reconciliation loop: {e}")

        await asyncio.sleep(interval)
