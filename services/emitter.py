"""Emission boundary: one formatted record per swap event."""

import asyncio
import time
from typing import Optional
import structlog

from models.swap import SwapEvent
from .broadcaster import SwapBroadcaster
from .price_engine import PriceEngine

logger = structlog.get_logger()


class ThroughputCounter:
    """Processed swap counter shared by all units."""

    def __init__(self):
        self.count = 0
        self.started_at = time.monotonic()

    def increment(self) -> int:
        self.count += 1
        return self.count

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def rate(self) -> float:
        elapsed = self.elapsed()
        return self.count / elapsed if elapsed > 0 else 0.0

    async def run_reporter(self, interval: float = 10.0) -> None:
        while True:
            await asyncio.sleep(interval)
            logger.info("Swap throughput",
                       processed=self.count,
                       elapsed_seconds=round(self.elapsed(), 1),
                       rate=round(self.rate(), 3))


class SwapEmitter:
    """
    Render swap events and hand them to the log and the broadcaster.

    Rendering happens under the market lock so reserves and prices in a
    record always belong to the same update.
    """

    def __init__(
        self,
        price_engine: PriceEngine,
        display_format: str = "pretty",
        broadcaster: Optional[SwapBroadcaster] = None
    ):
        self.price_engine = price_engine
        self.display_format = display_format
        self.broadcaster = broadcaster
        self.emitted = 0

    def render(self, event: SwapEvent, display_format: Optional[str] = None) -> str:
        display_format = display_format or self.display_format
        if display_format == "csv":
            return event.csv(self.price_engine)
        if display_format == "verbose":
            return event.verbose()
        if display_format == "longpretty":
            return event.long_pretty()
        return event.pretty(self.price_engine)

    async def emit(self, event: SwapEvent) -> str:
        """Emit ``event`` exactly once and return its CSV record."""
        async with self.price_engine.lock:
            display = self.render(event)
            record = event.csv(self.price_engine)

        logger.info(display, tx=event.hash_b64)

        if self.broadcaster is not None:
            self.broadcaster.publish(record)

        self.emitted += 1
        return record
