"""
QuizRank - Application Entry Point
==================================

Bootstrap
---------
- Logging setup
- Application context (config validation, storage, remote source, engine)
- Snapshot statistics
- Graceful shutdown
"""

import asyncio
import sys

from quizrank.core.infra.application_context import ApplicationContext
from quizrank.core.logging.logger import get_logger, setup_logging, shutdown_logging

logger = get_logger(__name__)


async def main() -> int:
    """
    QuizRank entry point.

    Lifecycle:
        1. Initialize the application context
        2. Log the current ranking statistics
        3. Shut down gracefully

    Returns:
        Process exit code (0 on success, 1 if initialization failed)
    """
    context = ApplicationContext()

    try:
        await context.initialize()
    except RuntimeError as exc:
        logger.critical(f"Fatal startup error: {exc}")
        return 1

    try:
        stats = context.engine.stats()
        logger.info("Ranking statistics", extra={"stats": stats.to_dict()})
        for entry in context.engine.global_top(10):
            logger.info(
                "#%d %s (%d points, %s)",
                entry.position,
                entry.display_name,
                entry.total_points,
                entry.trend.value,
            )
    finally:
        await context.shutdown()

    return 0


def run() -> int:
    setup_logging()
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped via keyboard interrupt.")
        return 0
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(run())
