"""
Health check module for Docker health checks and monitoring.
Verifies database connectivity and that the price table exists.
"""

import asyncio
import sys

from src.database.service import price_store
from src.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


async def health_check() -> bool:
    """
    Perform health check of the service.
    """
    try:
        return await price_store.health_check()
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return False
    finally:
        await price_store.close()


async def main():
    """
    Main health check entry point for command line usage.
    """
    setup_logging()
    is_healthy = await health_check()

    if is_healthy:
        logger.info("Health check passed")
        sys.exit(0)
    else:
        logger.error("Health check failed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
