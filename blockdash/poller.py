"""Periodic block height poller feeding a refresh sink."""
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Tuple

from blockdash.errors import DashboardError, NetworkError, ParseError
from blockdash.state import BlockSnapshot, RefreshSink
from blockdash.utils.blockchain_client import BlockchainClient

logger = logging.getLogger(__name__)

ErrorHook = Callable[[Exception], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollerState(enum.Enum):
    IDLE = "idle"          # no timer registered
    ARMED = "armed"        # waiting for the next tick
    FETCHING = "fetching"  # a poll cycle is in flight


@dataclass
class PollStats:
    succeeded: int = 0
    failed: int = 0
    discarded: int = 0


class Poller:
    """Polls the chain height on a fixed interval and updates the sink.

    Cycles never overlap: the wait for the next tick starts only once the
    current cycle has resolved. Each ``start()`` opens a new generation;
    results from an older generation are dropped, so nothing reaches the
    sink after ``stop()``.
    """

    def __init__(
        self,
        client: BlockchainClient,
        sink: RefreshSink,
        interval: float = 20.0,
        fetch_block: bool = True,
        fetch_timeout: Optional[float] = None,
        on_error: Optional[ErrorHook] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the poller.

        Args:
            client: Client used for chain reads
            sink: Sink receiving successful poll results
            interval: Seconds between cycles
            fetch_block: Also fetch the block object for each new height
            fetch_timeout: Deadline in seconds for one cycle, ``None`` for no deadline
            on_error: Called with the exception of every failed cycle
            clock: Source of update timestamps
            sleep: Timer used between cycles
        """
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.client = client
        self.sink = sink
        self.interval = interval
        self.fetch_block = fetch_block
        self.fetch_timeout = fetch_timeout
        self.on_error = on_error
        self.stats = PollStats()
        self._clock = clock
        self._sleep = sleep
        self._state = PollerState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def running(self) -> bool:
        return self._state is not PollerState.IDLE

    def start(self) -> None:
        """Arm the timer and run the first cycle right away.

        Must be called from a running event loop.

        Raises:
            PollerConflictError: If another poller already drives the sink
            RuntimeError: If no event loop is running
        """
        if self.running:
            logger.warning("Poller already running, ignoring start()")
            return
        loop = asyncio.get_running_loop()
        self.sink.claim(self)
        self._generation += 1
        self._state = PollerState.ARMED
        self._task = loop.create_task(self._run(self._generation))
        logger.info(f"Polling {self.client.node_url} every {self.interval}s (generation {self._generation})")

    def stop(self) -> None:
        """Cancel the timer. In-flight results are discarded."""
        if not self.running:
            return
        self._generation += 1
        self._state = PollerState.IDLE
        if self._task is not None:
            self._task.cancel()
        self.sink.release(self)
        logger.info("Polling stopped")

    async def aclose(self) -> None:
        """Stop and wait for the polling task to finish."""
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            await self._cycle(generation)
            if generation != self._generation:
                break
            await self._sleep(self.interval)

    async def _fetch(self) -> Tuple[int, Optional[BlockSnapshot]]:
        number = await self.client.get_block_number()
        block = await self.client.get_block(number) if self.fetch_block else None
        return number, block

    async def _cycle(self, generation: int) -> bool:
        self._state = PollerState.FETCHING
        try:
            if self.fetch_timeout is None:
                number, block = await self._fetch()
            else:
                try:
                    number, block = await asyncio.wait_for(self._fetch(), self.fetch_timeout)
                except asyncio.TimeoutError as e:
                    raise NetworkError(f"Poll cycle timed out after {self.fetch_timeout}s", cause=e) from e
        except Exception as e:
            if generation != self._generation:
                self.stats.discarded += 1
                return False
            self._state = PollerState.ARMED
            self._fail(generation, e)
            return False

        if generation != self._generation:
            self.stats.discarded += 1
            logger.debug(f"Discarding block {number} from stale generation {generation}")
            return False

        self._state = PollerState.ARMED
        self.sink.update(
            latest_block_number=number,
            last_update_time=self._clock(),
            latest_block=block,
        )
        self.stats.succeeded += 1
        logger.debug(f"Block height {number}")
        return True

    def _fail(self, generation: int, error: Exception) -> None:
        self.stats.failed += 1
        if isinstance(error, (NetworkError, ParseError)):
            logger.warning(f"Poll cycle failed (generation {generation}): {error}")
        elif isinstance(error, DashboardError):
            logger.error(f"Poll cycle failed (generation {generation}): {error}")
        else:
            logger.exception(f"Unexpected error in poll cycle (generation {generation})")
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("Poll error hook failed")
