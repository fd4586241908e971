"""
Poll Manager - runs named, independently scheduled polls with exponential backoff.

Each registered poll wraps one unit of work (usually a query against the Unraid
server) and keeps its own interval, error count and timer. A failing poll backs
off without affecting any other poll.

Scheduling:
    - All polls share the running asyncio event loop (no locks across polls)
    - start() runs the work once right away, then every current_interval seconds
    - Each run re-arms a single loop.call_later() handle when it finishes, so a
      poll never has more than one live timer and never overlaps itself
    - Different polls run independently and may have requests in flight at once
    - Plain (blocking) callables run in a thread pool, coroutine functions run on
      the loop

Backoff:
    - Success: consecutive_errors = 0, current_interval = base_interval
    - Failure: consecutive_errors += 1,
      current_interval = clamp(base_interval * backoff_multiplier ** consecutive_errors,
                               min_interval, max_interval)
    - With the defaults (base 1s, multiplier 2, max 30s): 1, 2, 4, 8, 16, 30, 30, ...
    - After max_retries consecutive failures the poll stops and stays registered;
      call start() again once the server is reachable

Cancellation:
    stop() and unregister() cancel the pending timer. A run already in flight is
    not interrupted, it is just not rescheduled.
"""
import asyncio
import inspect
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

PollWork = Callable[[], Union[Awaitable[Any], Any]]

# Common base intervals in seconds
POLL_INTERVALS = {
    'system': 30.0,    # CPU, memory
    'storage': 300.0,  # array, disks - changes slowly
    'docker': 60.0,
    'vms': 60.0,
}


class PollConfig(BaseModel):
    """Cadence and retry settings for one poll (seconds)."""
    base_interval: float = Field(gt=0)
    min_interval: float = Field(default=1.0, gt=0)
    max_interval: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    backoff_multiplier: float = Field(default=2.0, ge=1)

    @model_validator(mode='after')
    def _check_bounds(self):
        if self.min_interval > self.max_interval:
            raise ValueError(f"min_interval ({self.min_interval}) is greater than max_interval ({self.max_interval})")
        return self

    def clamp(self, interval: float) -> float:
        return max(self.min_interval, min(interval, self.max_interval))

    def backoff(self, consecutive_errors: int) -> float:
        return self.clamp(self.base_interval * self.backoff_multiplier ** consecutive_errors)


class PollState(BaseModel):
    """Snapshot of a poll for status reporting."""
    id: str
    is_running: bool = False
    current_interval: float
    consecutive_errors: int = 0
    last_success: Optional[datetime] = None
    last_error: Optional[datetime] = None
    last_error_message: Optional[str] = None


class _Poll:
    def __init__(self, poll_id: str, work: PollWork, config: PollConfig):
        self.id = poll_id
        self.work = work
        self.config = config
        self.state = PollState(id=poll_id, current_interval=config.clamp(config.base_interval))
        self.handle: Optional[asyncio.TimerHandle] = None
        self.lock = asyncio.Lock()


class PollManager:
    """Manages named polls, each with its own exponential backoff."""

    def __init__(self, executor: Optional[Executor] = None, max_workers: Optional[int] = None):
        """
        Args:
            executor    = Executor for blocking work (a thread pool is created on first use if not given)
            max_workers = Size of the thread pool created when no executor is given
        """
        self._polls: Dict[str, _Poll] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._executor = executor
        self._owns_executor = executor is None
        self._max_workers = max_workers

    def __contains__(self, poll_id: str) -> bool:
        return poll_id in self._polls

    @property
    def poll_ids(self) -> List[str]:
        return list(self._polls)

    def register(self, poll_id: str, work: PollWork, config: Optional[PollConfig] = None, **kwargs) -> None:
        """
        Register (or replace) a poll. The poll is not started.

        Args:
            poll_id = Unique name for the poll
            work    = Coroutine function or blocking callable taking no arguments
            config  = PollConfig, or pass its fields as keyword arguments
        """
        if config is None:
            config = PollConfig(**kwargs)
        self.stop(poll_id)
        self._polls[poll_id] = _Poll(poll_id, work, config)
        logger.debug(f"Registered poll: {poll_id} with base interval {config.base_interval}s")

    def start(self, poll_id: str) -> None:
        """Run the poll once now (without waiting for it) and schedule the next run."""
        poll = self._polls.get(poll_id)
        if poll is None:
            logger.warning(f"Cannot start unknown poll: {poll_id}")
            return
        if poll.state.is_running:
            logger.debug(f"Poll {poll_id} already running")
            return

        poll.state.is_running = True
        poll.state.consecutive_errors = 0
        poll.state.current_interval = poll.config.clamp(poll.config.base_interval)

        self._spawn(poll)
        self._arm(poll)
        logger.info(f"Started poll: {poll_id} (every {poll.state.current_interval}s)")

    def stop(self, poll_id: str) -> None:
        """Cancel the poll's timer. The poll stays registered. Unknown ids are ignored."""
        poll = self._polls.get(poll_id)
        if poll is not None:
            self._stop(poll)

    def stop_all(self) -> None:
        for poll in list(self._polls.values()):
            self._stop(poll)
        logger.debug("Stopped all polls")

    def unregister(self, poll_id: str) -> None:
        poll = self._polls.pop(poll_id, None)
        if poll is not None:
            self._stop(poll)
            logger.debug(f"Unregistered poll: {poll_id}")

    def get_state(self, poll_id: str) -> Optional[PollState]:
        poll = self._polls.get(poll_id)
        return poll.state.model_copy() if poll is not None else None

    def get_all_states(self) -> Dict[str, PollState]:
        return {poll_id: poll.state.model_copy() for poll_id, poll in self._polls.items()}

    async def force_run(self, poll_id: str) -> None:
        """Run the poll now, outside its schedule, with normal success/failure bookkeeping."""
        poll = self._polls.get(poll_id)
        if poll is None:
            logger.warning(f"Cannot run unknown poll: {poll_id}")
            return
        await self._run(poll)

    def shutdown(self) -> None:
        """Stop every poll and release the thread pool if this manager created it."""
        self.stop_all()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info("Poll manager shutdown complete")

    # Internals

    def _is_current(self, poll: _Poll) -> bool:
        return self._polls.get(poll.id) is poll

    def _stop(self, poll: _Poll) -> None:
        if poll.handle is not None:
            poll.handle.cancel()
            poll.handle = None
        if poll.state.is_running:
            poll.state.is_running = False
            logger.debug(f"Stopped poll: {poll.id}")

    def _arm(self, poll: _Poll) -> None:
        if poll.handle is not None:
            poll.handle.cancel()
        loop = asyncio.get_running_loop()
        poll.handle = loop.call_later(poll.state.current_interval, self._on_timer, poll)

    def _spawn(self, poll: _Poll) -> None:
        task = asyncio.get_running_loop().create_task(self._run(poll))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_timer(self, poll: _Poll) -> None:
        poll.handle = None
        if not poll.state.is_running or not self._is_current(poll):
            return
        if poll.lock.locked():
            # Previous run still in flight, it re-arms the timer when done
            logger.debug(f"Poll {poll.id} still running, skipping tick")
            return
        self._spawn(poll)

    async def _run(self, poll: _Poll) -> None:
        async with poll.lock:
            await self._execute(poll)
        if poll.state.is_running and self._is_current(poll):
            self._arm(poll)

    async def _execute(self, poll: _Poll) -> None:
        state, config = poll.state, poll.config
        try:
            await self._call(poll.work)
        except Exception as exc:
            state.consecutive_errors += 1
            state.last_error = datetime.now(timezone.utc)
            state.last_error_message = str(exc) or exc.__class__.__name__
            state.current_interval = config.backoff(state.consecutive_errors)
            logger.debug(f"Poll {poll.id} error ({state.consecutive_errors}/{config.max_retries}), "
                         f"next interval: {state.current_interval}s - {state.last_error_message}")
            if state.consecutive_errors >= config.max_retries:
                logger.warning(f"Poll {poll.id} failed {state.consecutive_errors} times in a row - stopping")
                self._stop(poll)
            return

        if state.consecutive_errors:
            logger.debug(f"Poll {poll.id} recovered after {state.consecutive_errors} failures")
        state.consecutive_errors = 0
        state.current_interval = config.clamp(config.base_interval)
        state.last_success = datetime.now(timezone.utc)

    async def _call(self, work: PollWork) -> Any:
        if inspect.iscoroutinefunction(work) or inspect.iscoroutinefunction(getattr(work, '__call__', None)):
            return await work()
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._get_executor(), work)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="pyunraid-poll")
        return self._executor
