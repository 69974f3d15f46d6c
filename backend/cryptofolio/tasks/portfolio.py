"""
Portfolio tick and maintenance tasks for the Celery scheduler backend.

The beat schedule fires ``run_tick`` every tick interval. A Redis lock
stands in for the in-process RUNNING guard, so a firing that arrives while
another worker is still ticking is skipped.
"""
import asyncio
import logging
import time
from datetime import date
from typing import Optional

from cryptofolio.scheduler.celery_app import app
from cryptofolio.core.config import settings
from cryptofolio.core.metrics import metrics
from cryptofolio.core.redis import LockNames, StreamNames, get_redis
from cryptofolio.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)


@app.task(name="cryptofolio.tasks.portfolio.run_tick")
def run_tick():
    """
    Scheduled portfolio tick.

    Returns:
        dict with status and, when the tick ran, its NAV figures
    """
    r = get_redis()
    lock = r.lock(LockNames.PORTFOLIO_TICK, timeout=settings.TICK_LOCK_TIMEOUT_SEC)
    if not lock.acquire(blocking=False):
        logger.warning("Skipping scheduled tick: previous tick still running")
        metrics.tick_skipped("celery", "tick in progress")
        return {"status": "skipped"}

    started = time.monotonic()
    try:
        view = asyncio.run(PortfolioService().run_tick())
    except Exception as e:
        logger.exception("Scheduled tick failed")
        metrics.tick_failed("celery", str(e))
        try:
            r.xadd(StreamNames.ALERTS, {
                "level": "ERROR",
                "title": "Portfolio Tick Failed",
                "message": str(e),
            })
        except Exception as publish_error:
            logger.error(f"Failed to publish alert: {publish_error}")
        return {"status": "failed", "error": str(e)}
    finally:
        if lock.owned():
            lock.release()
        else:
            logger.warning("Tick lock expired before the tick finished")

    if view is None:
        return {"status": "completed"}

    metrics.tick_completed(
        "celery", view.ending_nav, view.growth_percent, (time.monotonic() - started) * 1000
    )
    return {
        "status": "completed",
        "date": str(view.date),
        "minute_key": view.minute_key,
        "ending_nav": view.ending_nav,
        "growth_percent": view.growth_percent,
        "price_source": view.price_source,
    }


@app.task(name="cryptofolio.tasks.portfolio.seed_allocations")
def seed_allocations(on_date: Optional[str] = None):
    """
    Create the configured allocations sized from the initial NAV.

    Args:
        on_date: ISO date for the allocation rows (default: today, UTC)
    """
    target = date.fromisoformat(on_date) if on_date else None
    return asyncio.run(PortfolioService().seed_allocations(target))


@app.task(name="cryptofolio.tasks.portfolio.reset_portfolio")
def reset_portfolio():
    """
    Reset the portfolio to a cold start.

    WARNING: This deletes all allocations, their history, snapshots, asset rows
    and chart points.
    """
    return asyncio.run(PortfolioService().reset())
