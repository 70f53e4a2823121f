import asyncio
import logging
import sys

from ticket_bot.config import get_settings
from ticket_bot.db.connection import close_pool
from ticket_bot.db.repositories import TicketQueries
from ticket_bot.db.store import SqliteStore


async def main():
    """Initialize the ticket database and report its state."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logger = logging.getLogger(__name__)

    tickets = TicketQueries(SqliteStore())
    try:
        total = await tickets.count()
        open_count = await tickets.count({"status": "open"})
        logger.info(
            "Database %s ready: %d ticket(s), %d open", settings.db.path, total, open_count
        )
    finally:
        await close_pool()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Stopped.")
