"""Order dispatcher: fans an alert out to every eligible account in parallel"""

import asyncio
from typing import List, Optional
from .brokers import BrokerClient
from .calculator import PositionCalculator, limit_order_price
from .context import WorkContext, set_current_work
from .logger import AppLogger
from .models import AccountConfig, Alert, DispatchResult, DispatchSummary, PositionCalculation
from .rebase_queue import RebaseQueueEngine
from .stores import DuplicateOrderCache

app_logger = AppLogger(__name__)

REASON_INACTIVE = "account is inactive"
REASON_DUPLICATE_TICKER = "ticker already ordered today"


class OrderDispatcher:
    """
    Places one order per eligible account and hands fills to the rebase queue.

    Accounts never share state, so placements run concurrently and each
    account's failure stays with that account.
    """

    def __init__(self, broker: BrokerClient, rebase_engine: RebaseQueueEngine,
                 ticker_cache: DuplicateOrderCache,
                 calculator: Optional[PositionCalculator] = None):
        self.broker = broker
        self.rebase_engine = rebase_engine
        self.ticker_cache = ticker_cache
        self.calculator = calculator or PositionCalculator()

    async def dispatch(self, alert: Alert, accounts: List[AccountConfig]) -> List[DispatchResult]:
        """One DispatchResult per account, in input order"""
        app_logger.log_info(
            f"Dispatching {alert.signal} {alert.ticker} @ {alert.price:.2f} "
            f"({alert.strategy}) to {len(accounts)} accounts"
        )

        tasks = [self._dispatch_account(alert, account) for account in accounts]

        # Execute all accounts in parallel
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for account, outcome in zip(accounts, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                app_logger.log_error(f"Dispatch failed for account {account.client_id}: {outcome}")
                outcome = self._result(alert, account, placed=False, error=str(outcome))
            results.append(outcome)
        return results

    async def _dispatch_account(self, alert: Alert, account: AccountConfig) -> DispatchResult:
        set_current_work(WorkContext(
            account_id=account.account_id,
            client_id=account.client_id,
            ticker=alert.ticker,
            stage='dispatch',
        ))

        if not account.is_active:
            return self._result(alert, account, placed=False, excluded_reason=REASON_INACTIVE)

        if account.allow_duplicate_tickers:
            return await self._size_and_place(alert, account)

        # Reserve before placing so concurrent alerts for the ticker cannot both pass
        if not await self.ticker_cache.reserve_ticker(alert.ticker, account.account_id):
            app_logger.log_warning(
                f"Skipping {alert.ticker} for account {account.client_id}: {REASON_DUPLICATE_TICKER}"
            )
            return self._result(alert, account, placed=False, excluded_reason=REASON_DUPLICATE_TICKER)

        try:
            result = await self._size_and_place(alert, account)
        except Exception:
            await self._release(alert, account)
            raise
        if not result.placed:
            await self._release(alert, account)
        return result

    async def _size_and_place(self, alert: Alert, account: AccountConfig) -> DispatchResult:
        position = self.calculator.calculate(alert, account)
        if not position.can_place_order:
            return self._result(alert, account, placed=False, position=position,
                                excluded_reason=position.reason)

        return await self._place(alert, account, position)

    async def _release(self, alert: Alert, account: AccountConfig) -> None:
        try:
            await self.ticker_cache.release_ticker(alert.ticker, account.account_id)
        except Exception as e:
            # A stale reservation only blocks this ticker until the day ends
            app_logger.log_error(f"Failed to release {alert.ticker} for account {account.client_id}: {e}")

    async def _place(self, alert: Alert, account: AccountConfig,
                     position: PositionCalculation) -> DispatchResult:
        price = 0.0
        if account.order_type == 'LIMIT':
            price = limit_order_price(alert.price, alert.signal, account.limit_buffer_percentage)

        order = await self.broker.place_order(
            account,
            alert.ticker,
            alert.signal,
            position.quantity,
            order_type=account.order_type,
            price=price,
            stop_loss_price=position.stop_loss_price,
            target_price=position.target_price,
        )

        if not order.success:
            app_logger.log_error(f"Order rejected for account {account.client_id}: {order.error}")
            return self._result(alert, account, placed=False, position=position, error=order.error)

        app_logger.log_info(
            f"Placed {alert.signal} {position.quantity} {alert.ticker} for account "
            f"{account.client_id}: order {order.order_id}"
        )

        # Accounts that refuse duplicates already hold a reservation for the ticker
        if account.allow_duplicate_tickers:
            try:
                await self.ticker_cache.record_ticker_order(alert.ticker, account.account_id)
            except Exception as e:
                # The order is live; report it as placed regardless
                app_logger.log_error(f"Failed to record {alert.ticker} for account {account.client_id}: {e}")

        rebase_enqueued = False
        if account.rebase_enabled:
            task = self.rebase_engine.enqueue(
                order.order_id, account, alert.price, account.client_id, account.account_id, alert.signal
            )
            rebase_enqueued = task is not None

        return self._result(alert, account, placed=True, position=position,
                            order_id=order.order_id, rebase_enqueued=rebase_enqueued)

    def _result(self, alert: Alert, account: AccountConfig, placed: bool,
                position: Optional[PositionCalculation] = None, **kwargs) -> DispatchResult:
        return DispatchResult(
            account_id=account.account_id,
            client_id=account.client_id,
            ticker=alert.ticker,
            signal=alert.signal,
            placed=placed,
            quantity=position.quantity if position is not None else 0,
            position=position,
            **kwargs
        )

    @staticmethod
    def summarize(alert: Alert, results: List[DispatchResult]) -> DispatchSummary:
        return DispatchSummary(
            ticker=alert.ticker,
            signal=alert.signal,
            accounts_considered=len(results),
            placed=sum(1 for r in results if r.placed),
            failed=sum(1 for r in results if not r.placed and r.error is not None),
            excluded=sum(1 for r in results if r.excluded_reason is not None),
            rebase_enqueued=sum(1 for r in results if r.rebase_enqueued),
            results=results,
        )
