"""
Rate lookup entry point.

    python main.py Summer FloatingPointResort SingletonRoom
"""

import argparse
import asyncio
import sys

from loguru import logger

from pricing.models import RateQuery
from pricing.services import ServiceError, create_pricing_service
from pricing.settings import global_settings
from pricing.utils import configure_logging


async def main(period: str, hotel: str, room: str) -> int:
    """Fetch and print one rate."""
    configure_logging(global_settings.log_level, serialize=global_settings.log_json)
    service = create_pricing_service(global_settings)

    try:
        rate = await service.fetch_rate(RateQuery(period=period, hotel=hotel, room=room))
        print(rate)
        return 0
    except ServiceError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        logger.debug(f"Health: {await service.get_health_status()}")
        await service.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Look up a hotel room rate")
    parser.add_argument("period")
    parser.add_argument("hotel")
    parser.add_argument("room")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.period, args.hotel, args.room)))
