"""
Rebase queue: moves stop-loss/target legs onto the broker-confirmed fill price.

One engine owns one FIFO queue and one worker. Tasks are processed strictly
one at a time, including the whole polling sequence, so no two broker
modify-calls are ever in flight together. Queued tasks live in memory only
and are lost on restart.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Dict, FrozenSet, List, Optional, Set
from .brokers import BrokerClient
from .calculator import risk_prices
from .config import RebaseConfig
from .context import WorkContext, clear_current_work, set_current_work
from .exceptions import InvalidStateTransition
from .logger import AppLogger
from .models import (
    AccountConfig,
    BrokerOrderStatus,
    OrderStatus,
    QueueStatus,
    RebaseResult,
    RebaseState,
    Signal,
    UpdateResult,
)
from .rate_limiter import TokenBucket

app_logger = AppLogger(__name__)

# Lifecycle edges. POLLING -> POLLING is one more status poll.
ALLOWED_TRANSITIONS: Dict[RebaseState, FrozenSet[RebaseState]] = {
    RebaseState.QUEUED: frozenset({RebaseState.POLLING}),
    RebaseState.POLLING: frozenset({
        RebaseState.POLLING,
        RebaseState.SKIPPED,
        RebaseState.REBASING,
        RebaseState.ABANDONED,
    }),
    RebaseState.REBASING: frozenset({RebaseState.REBASED, RebaseState.REBASE_FAILED}),
    RebaseState.SKIPPED: frozenset(),
    RebaseState.REBASED: frozenset(),
    RebaseState.REBASE_FAILED: frozenset(),
    RebaseState.ABANDONED: frozenset(),
}


@dataclass
class RebaseTask:
    """Work item owned by the engine once enqueued"""
    order_id: str
    account: AccountConfig
    original_alert_price: float
    signal: Signal
    client_id: str
    account_id: int
    max_attempts: int
    attempts_made: int = 0
    state: RebaseState = RebaseState.QUEUED
    enqueued_at: datetime = field(default_factory=datetime.now)
    history: List[RebaseState] = field(default_factory=lambda: [RebaseState.QUEUED])

    def transition(self, new_state: RebaseState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransition(self.order_id, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def record_attempt(self) -> int:
        if self.attempts_made >= self.max_attempts:
            raise InvalidStateTransition(self.order_id, self.state.value, "POLLING (attempt budget exhausted)")
        self.attempts_made += 1
        return self.attempts_made


@dataclass
class PollOutcome:
    fill_price: Optional[float] = None
    last_status: Optional[BrokerOrderStatus] = None
    error: Optional[str] = None
    terminal_failure: bool = False


def deviation_percentage(actual_entry_price: float, original_alert_price: float) -> float:
    return abs(actual_entry_price - original_alert_price) / original_alert_price * 100


class RebaseQueueEngine:
    """Single-worker FIFO queue that rebases stop-loss/target after fills"""

    def __init__(self, broker: BrokerClient, config: Optional[RebaseConfig] = None,
                 rate_limiter: Optional[TokenBucket] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self.broker = broker
        self.config = config or RebaseConfig()
        self.rate_limiter = rate_limiter
        self._sleep = sleep or asyncio.sleep
        self._queue: asyncio.Queue[RebaseTask] = asyncio.Queue()
        self._pending_order_ids: Set[str] = set()
        self._results: Deque[RebaseResult] = deque(maxlen=self.config.max_results)
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional[RebaseTask] = None
        self._completed_count = 0

    # Public contract

    def enqueue(self, order_id: str, account_config: AccountConfig, original_alert_price: float,
                client_id: str, account_id: int, signal: Signal) -> Optional[RebaseTask]:
        """
        Append a task to the tail of the queue and return immediately.

        Returns:
            The queued task, or None when the account has rebasing disabled
            or the order is already queued or in flight.
        """
        if original_alert_price is None or original_alert_price <= 0:
            raise ValueError(f"Invalid original alert price {original_alert_price} for order {order_id}")

        if not account_config.rebase_enabled:
            app_logger.log_info(f"TP/SL rebasing is disabled for account {client_id}, not queueing order {order_id}")
            return None

        if order_id in self._pending_order_ids:
            app_logger.log_warning(f"Order {order_id} already in rebase queue, skipping")
            return None

        task = RebaseTask(
            order_id=order_id,
            account=account_config,
            original_alert_price=original_alert_price,
            signal=signal,
            client_id=client_id,
            account_id=account_id,
            max_attempts=self.config.max_attempts,
        )
        self._pending_order_ids.add(order_id)
        self._queue.put_nowait(task)
        app_logger.log_info(f"Added order {order_id} to rebase queue ({self._queue.qsize()} items in queue)")
        return task

    def queue_status(self) -> QueueStatus:
        return QueueStatus(
            length=self._queue.qsize(),
            is_worker_busy=self._current is not None,
            completed_count=self._completed_count,
        )

    def get_results(self) -> List[RebaseResult]:
        return list(self._results)

    def get_result_for_order(self, order_id: str) -> Optional[RebaseResult]:
        for result in reversed(self._results):
            if result.order_id == order_id:
                return result
        return None

    def clear_results(self) -> None:
        self._results.clear()

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker loop on the running event loop"""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run(), name="rebase-queue-worker")
        app_logger.log_info("Rebase queue worker started")

    async def stop(self) -> None:
        """Cancel the worker. Queued tasks wait for the next start()."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        dropped = self._queue.qsize()
        if dropped:
            app_logger.log_warning(f"Rebase queue stopped with {dropped} tasks still queued")
        app_logger.log_info("Rebase queue worker stopped")

    async def wait_until_idle(self, timeout: Optional[float] = None) -> List[RebaseResult]:
        """Wait until every queued task has reached a terminal state"""
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            app_logger.log_warning(f"Timeout waiting for rebase completion after {timeout}s")
        return self.get_results()

    # Worker

    async def _run(self) -> None:
        while True:
            task = await self._queue.get()
            self._current = task
            try:
                result = await self._process_safely(task)
                self._results.append(result)
                self._completed_count += 1
            finally:
                self._current = None
                self._pending_order_ids.discard(task.order_id)
                self._queue.task_done()

            # Pace the broker between tasks
            await self._sleep(self.config.inter_task_delay_seconds)

    async def _process_safely(self, task: RebaseTask) -> RebaseResult:
        set_current_work(WorkContext(
            account_id=task.account_id,
            client_id=task.client_id,
            order_id=task.order_id,
            stage='rebase',
        ))
        try:
            return await self.process_task(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            app_logger.log_error(f"Unexpected error processing rebase for order {task.order_id}: {e}", exc_info=True)
            if task.state == RebaseState.REBASING:
                task.transition(RebaseState.REBASE_FAILED)
            elif task.state == RebaseState.POLLING:
                task.transition(RebaseState.ABANDONED)
            return self._result(task, success=False, error=f"Unexpected error during rebase: {e}")
        finally:
            clear_current_work()

    async def process_task(self, task: RebaseTask) -> RebaseResult:
        """Drive one task from QUEUED to a terminal state"""
        app_logger.log_info(
            f"Processing rebase for order {task.order_id} "
            f"(alert price {task.original_alert_price:.2f}, {task.signal})"
        )

        outcome = await self._poll_fill_price(task)

        if outcome.fill_price is None:
            task.transition(RebaseState.ABANDONED)
            if outcome.terminal_failure:
                error = f"Order {task.order_id} {outcome.last_status.status} at broker; not retrying"
            else:
                error = f"No valid entry price after {task.attempts_made} attempts"
                if outcome.error:
                    error += f" (last error: {outcome.error})"
                elif outcome.last_status is not None:
                    error += f" (last status: {outcome.last_status.status})"
            app_logger.log_error(f"Abandoned rebase for order {task.order_id}: {error}")
            return self._result(task, success=False, error=error)

        entry_price = outcome.fill_price
        deviation = deviation_percentage(entry_price, task.original_alert_price)
        original_sl, original_tp = risk_prices(
            task.original_alert_price, task.signal,
            task.account.stop_loss_percentage, task.account.target_price_percentage
        )
        threshold = task.account.rebase_threshold_percentage

        if deviation < threshold:
            task.transition(RebaseState.SKIPPED)
            message = (f"Price deviation ({deviation:.2f}%) below threshold ({threshold}%), "
                       f"no rebase needed")
            app_logger.log_info(f"Order {task.order_id}: {message}")
            return self._result(
                task, success=True, message=message,
                actual_entry_price=entry_price, deviation_percentage=deviation,
                original_target=original_tp, original_stop_loss=original_sl,
            )

        task.transition(RebaseState.REBASING)
        new_sl, new_tp = risk_prices(
            entry_price, task.signal,
            task.account.stop_loss_percentage, task.account.target_price_percentage
        )
        app_logger.log_info(
            f"Rebasing order {task.order_id}: entry {entry_price:.2f} vs alert "
            f"{task.original_alert_price:.2f} ({deviation:.2f}%), "
            f"TP {original_tp:.2f} -> {new_tp:.2f}, SL {original_sl:.2f} -> {new_sl:.2f}"
        )

        errors = []
        tp_error = await self._apply_update('target', lambda: self.broker.update_target_price(
            task.account, task.order_id, new_tp))
        if tp_error:
            errors.append(f"TP update failed: {tp_error}")

        trailing_jump = task.account.min_trail_jump if task.account.enable_trailing_stop_loss else None
        sl_error = await self._apply_update('stop-loss', lambda: self.broker.update_stop_loss(
            task.account, task.order_id, new_sl, trailing_jump))
        if sl_error:
            errors.append(f"SL update failed: {sl_error}")

        diagnostics = dict(
            actual_entry_price=entry_price, deviation_percentage=deviation,
            original_target=original_tp, original_stop_loss=original_sl,
            new_target=new_tp, new_stop_loss=new_sl,
        )

        if errors:
            task.transition(RebaseState.REBASE_FAILED)
            error = f"Rebase failure: {', '.join(errors)}"
            app_logger.log_error(f"Order {task.order_id}: {error}")
            return self._result(task, success=False, error=error, **diagnostics)

        task.transition(RebaseState.REBASED)
        app_logger.log_info(f"TP/SL rebase completed successfully for order {task.order_id}")
        return self._result(
            task, success=True,
            message="TP/SL rebased successfully based on actual entry price",
            **diagnostics
        )

    async def _poll_fill_price(self, task: RebaseTask) -> PollOutcome:
        outcome = PollOutcome()

        while task.attempts_made < task.max_attempts:
            if task.attempts_made > 0:
                await self._sleep(self.config.attempt_delay_seconds)

            task.transition(RebaseState.POLLING)
            attempt = task.record_attempt()

            try:
                await self._acquire()
                status = await self.broker.get_order_status(task.account, task.order_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome.error = str(e)
                app_logger.log_warning(
                    f"Order status lookup failed for {task.order_id} "
                    f"(attempt {attempt}/{task.max_attempts}): {e}"
                )
                continue

            outcome.last_status = status
            outcome.error = None

            if OrderStatus.is_terminal_failure(status.status):
                outcome.terminal_failure = True
                return outcome

            fill_price = status.fill_price
            if fill_price is not None:
                app_logger.log_debug(
                    f"Order {task.order_id} filled at {fill_price:.2f} (attempt {attempt}/{task.max_attempts})"
                )
                outcome.fill_price = fill_price
                return outcome

            app_logger.log_info(
                f"Order {task.order_id} has no fill price yet (status '{status.status}', "
                f"attempt {attempt}/{task.max_attempts})"
            )

        return outcome

    async def _apply_update(self, leg: str, call: Callable[[], Awaitable[UpdateResult]]) -> Optional[str]:
        """Run one broker modify-call; returns an error message or None"""
        try:
            await self._acquire()
            result = await call()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return str(e)

        if not result.success:
            return result.error or f"{leg} update rejected"
        return None

    async def _acquire(self) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

    def _result(self, task: RebaseTask, success: bool, **kwargs) -> RebaseResult:
        return RebaseResult(
            order_id=task.order_id,
            account_id=task.account_id,
            client_id=task.client_id,
            state=task.state,
            success=success,
            attempts_made=task.attempts_made,
            **kwargs
        )
