"""
Job feeder: publishes the addresses to probe onto the job channel
"""

import asyncio
import logging
from typing import Iterable, Optional

from .channels import Cancelled, Channel
from .models import Address

logger = logging.getLogger(__name__)


class JobFeeder:
    """Single writer of the job channel"""

    def __init__(self, addresses: Iterable[Address]):
        self._addresses = addresses
        self.published = 0

    async def run(self, jobs: Channel, cancel: Optional[asyncio.Event] = None) -> int:
        """
        Publish every address in order, then close the channel

        The channel is closed exactly once, whether the sequence ran out or
        ``cancel`` fired while waiting for room.

        Returns:
            Number of addresses published
        """
        try:
            for address in self._addresses:
                if cancel is not None and cancel.is_set():
                    break
                await jobs.send(address, cancel)
                self.published += 1
        except Cancelled:
            logger.debug(f"Feeder stopped by cancellation after {self.published} addresses")
        finally:
            await jobs.close()

        logger.debug(f"Feeder done: {self.published} addresses published")
        return self.published
