"""
Background portfolio valuation refresh using APScheduler.
Runs periodically to revalue every open position at current market prices.
"""

import time
import logging
import sys
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from config import get_settings
from db_engine import init_db
from services.market_data import YFinancePriceOracle
from services.position_book import PositionBook

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
JOB_ID = 'portfolio_price_refresh'


def configure_logging(level: Optional[str] = None):
    """Configure root logging for the monitor process."""
    level = level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        force=True
    )


def refresh_portfolio_prices(position_book: Optional[PositionBook] = None) -> int:
    """
    Main job function to revalue all open positions.
    Called by the scheduler at configured intervals.

    Returns:
        Number of positions revalued
    """
    logger.info("=" * 60)
    logger.info("Starting portfolio price refresh...")
    logger.info("=" * 60)

    book = position_book or PositionBook(price_oracle=YFinancePriceOracle())
    updated = book.update_prices()

    logger.info("=" * 60)
    logger.info(f"Portfolio price refresh complete. Positions revalued: {updated}")
    logger.info("=" * 60)
    return updated


def start_price_scheduler(position_book: Optional[PositionBook] = None, run_immediately: bool = True) -> BackgroundScheduler:
    """
    Start the background scheduler for portfolio revaluation.
    Runs every settings.price_refresh_minutes minutes.
    """
    settings = get_settings()
    book = position_book or PositionBook(price_oracle=YFinancePriceOracle())
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        refresh_portfolio_prices,
        trigger=IntervalTrigger(minutes=settings.price_refresh_minutes),
        kwargs={'position_book': book},
        id=JOB_ID,
        name='Portfolio Price Refresh',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    if run_immediately:
        logger.info("Running initial price refresh on startup...")
        refresh_portfolio_prices(book)

    scheduler.start()
    logger.info(
        f"Price refresh scheduler started. Running every {settings.price_refresh_minutes} minutes."
    )

    return scheduler


def run_one_time_refresh() -> int:
    """Run a single price refresh (useful for cron or manual runs)."""
    logger.info("Running one-time price refresh...")
    return refresh_portfolio_prices()


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    load_dotenv()
    configure_logging()
    init_db()

    if argv and argv[0] == "--once":
        # Run once and exit
        run_one_time_refresh()
        return

    # Run continuous scheduler
    scheduler = start_price_scheduler()
    print("\n" + "=" * 60)
    print("Portfolio price monitor is running...")
    print("Press Ctrl+C to stop.")
    print("=" * 60 + "\n")
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down price monitor...")
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    main()
