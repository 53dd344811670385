import asyncio
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
import structlog

from models.transaction import Transaction
from utils.addresses import friendly, parse_address
from utils.exceptions import ProtocolDecodeError, StartupError, UnsupportedMetadataKind
from utils.logging import bind_unit_context
from .context import WatcherContext


logger = structlog.get_logger()


class TransactionState(str, Enum):
    """Terminal and intermediate states of one transaction's processing."""
    RECEIVED = "received"
    REJECTED = "rejected"
    DECODING = "decoding"
    RESOLVING = "resolving"
    EMITTED = "emitted"
    FAILED = "failed"


class SwapWatcherService:
    """Watches the DEX router account and emits one record per swap."""

    def __init__(self, context: WatcherContext):
        self.context = context
        self.settings = context.settings
        self.dex_address = parse_address(self.settings.dex_address)

        self.is_running = False
        self.tasks: List[asyncio.Task] = []
        self.units: Set[asyncio.Task] = set()
        self.last_processed_lt: Optional[int] = None
        self.head_seqno: Optional[int] = None
        self.outcomes: Counter = Counter()

        limit = self.settings.max_concurrent_swaps
        self._semaphore: Optional[asyncio.Semaphore] = asyncio.Semaphore(limit) if limit > 0 else None

    async def connect(self) -> int:
        """
        Open collaborators and read the starting position.

        Returns:
            Logical time of the router's last transaction

        Raises:
            StartupError: chain access is unreachable or the router account is unknown
        """
        try:
            logger.info("Connecting to all services...")
            await self.context.chain.connect()
            await self.context.metadata.connect()

            self.head_seqno = await self.context.chain.get_masterchain_seqno()
            state = await self.context.chain.get_account_state(self.dex_address)
        except Exception as e:
            await self._disconnect()
            raise StartupError(f"failed to start watcher: {e}") from e

        if not state.is_active:
            await self._disconnect()
            raise StartupError(f"router account {friendly(self.dex_address)} is not active")

        logger.info("All services connected successfully",
                   masterchain_seqno=self.head_seqno,
                   dex=friendly(self.dex_address),
                   last_lt=state.last_transaction_lt)
        return state.last_transaction_lt

    async def start(self) -> None:
        """Start the watcher and run until stopped."""
        from_lt = await self.connect()
        self.is_running = True

        logger.info("Creating background worker tasks...")
        self.tasks = [
            asyncio.create_task(
                self.context.price_engine.run_anchor_refresh(
                    self.context.pool_cache.pools(),
                    self.settings.anchor_refresh_interval_seconds
                ),
                name="anchor-refresh"
            ),
            asyncio.create_task(
                self.context.counter.run_reporter(self.settings.throughput_report_interval_seconds),
                name="throughput-reporter"
            ),
            asyncio.create_task(self.run_ingestion(from_lt), name="ingestion"),
        ]

        logger.info("Swap watcher fully started and running",
                   total_workers=len(self.tasks),
                   from_lt=from_lt,
                   display=self.settings.display_format,
                   max_concurrent_swaps=self.settings.max_concurrent_swaps,
                   swap_timeout_seconds=self.settings.swap_timeout_seconds)

        await asyncio.gather(*self.tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel background tasks and in-flight units, then disconnect."""
        if not self.is_running and not self.tasks:
            logger.info("Swap watcher already stopped")
            return

        start_time = datetime.utcnow()
        self.is_running = False

        pending = self.tasks + list(self.units)
        logger.info("Cancelling worker tasks",
                   workers=len(self.tasks),
                   units=len(self.units))
        for task in pending:
            task.cancel()

        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.warning("Worker task stopped with error", error=str(result))

        self.tasks = []
        self.units.clear()

        await self._disconnect()

        shutdown_duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info("Swap watcher stopped successfully",
                   processed=self.context.counter.count,
                   last_processed_lt=self.last_processed_lt,
                   shutdown_duration_seconds=shutdown_duration)

    async def _disconnect(self) -> None:
        for service_name, collaborator in (("chain", self.context.chain), ("metadata", self.context.metadata)):
            try:
                await collaborator.disconnect()
            except Exception as e:
                logger.error("Error disconnecting from service",
                           service=service_name,
                           error=str(e))

    async def run_ingestion(self, from_lt: int) -> None:
        """Consume the router transaction stream, one unit per accepted transaction."""
        logger.info("Ingestion worker started", dex=friendly(self.dex_address), from_lt=from_lt)

        async for tx in self.context.chain.subscribe_transactions(self.dex_address, from_lt):
            self.handle_transaction(tx)
            self.last_processed_lt = tx.lt

    def handle_transaction(self, tx: Transaction) -> Optional[asyncio.Task]:
        """Filter ``tx`` and spawn its processing unit when it looks like a swap."""
        self.outcomes[TransactionState.RECEIVED] += 1

        if not self.context.parser.accepts(tx):
            self.outcomes[TransactionState.REJECTED] += 1
            return None

        task = asyncio.create_task(self._process_unit(tx), name=f"swap-{tx.lt}")
        self.units.add(task)
        task.add_done_callback(self.units.discard)
        return task

    async def _process_unit(self, tx: Transaction) -> None:
        # Failures stay inside the unit, the stream and sibling units carry on
        bind_unit_context(lt=tx.lt)
        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    await self._run_with_timeout(tx)
            else:
                await self._run_with_timeout(tx)
        except ProtocolDecodeError as e:
            self.outcomes[TransactionState.FAILED] += 1
            logger.debug("Failed to decode swap", tx=tx.hash_b64, error=str(e))
        except UnsupportedMetadataKind as e:
            self.outcomes[TransactionState.FAILED] += 1
            logger.warning("Unsupported jetton content, swap dropped", tx=tx.hash_b64, error=str(e))
        except asyncio.TimeoutError:
            self.outcomes[TransactionState.FAILED] += 1
            logger.error("Swap processing timed out",
                        tx=tx.hash_b64,
                        timeout_seconds=self.settings.swap_timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.outcomes[TransactionState.FAILED] += 1
            logger.error("Failed to process swap", tx=tx.hash_b64, error=str(e))

    async def _run_with_timeout(self, tx: Transaction) -> None:
        timeout = self.settings.swap_timeout_seconds
        if timeout and timeout > 0:
            await asyncio.wait_for(self.process_transaction(tx), timeout=timeout)
        else:
            await self.process_transaction(tx)

    async def process_transaction(self, tx: Transaction) -> str:
        """Decode, resolve and emit one accepted transaction."""
        self.outcomes[TransactionState.DECODING] += 1
        event = await self.context.assembler.assemble(tx)

        self.outcomes[TransactionState.RESOLVING] += 1
        record = await self.context.emitter.emit(event)

        self.context.counter.increment()
        self.outcomes[TransactionState.EMITTED] += 1
        return record

    async def drain(self) -> None:
        """Wait until every in-flight unit has finished."""
        while self.units:
            await asyncio.gather(*list(self.units), return_exceptions=True)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self.is_running else "stopped",
            "timestamp": datetime.utcnow().isoformat(),
            "dex": friendly(self.dex_address),
            "head_seqno": self.head_seqno,
            "last_processed_lt": self.last_processed_lt,
            "processed": self.context.counter.count,
            "rate": round(self.context.counter.rate(), 3),
            "in_flight": len(self.units),
            "pools": len(self.context.pool_cache),
            "wallets": len(self.context.resolver),
            "anchor_refreshes": self.context.price_engine.anchor_refreshes,
            "outcomes": {state.value: count for state, count in self.outcomes.items()},
        }
