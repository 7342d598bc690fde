"""Tests for the order dispatcher."""

import asyncio

import pytest

from alert_router.calculator import REASON_ABOVE_MAXIMUM
from alert_router.dispatcher import REASON_DUPLICATE_TICKER, REASON_INACTIVE, OrderDispatcher
from alert_router.exceptions import BrokerConnectionError
from alert_router.rebase_queue import RebaseQueueEngine
from alert_router.stores import InMemoryTickerCache

from conftest import FakeBroker


def build_dispatcher(broker, sleep, ticker_cache=None):
    engine = RebaseQueueEngine(broker, sleep=sleep)
    cache = ticker_cache or InMemoryTickerCache()
    return OrderDispatcher(broker, engine, cache), engine, cache


def three_accounts(make_account, **overrides):
    return [make_account(account_id=i, client_id=f"C{i}", **overrides) for i in (1, 2, 3)]


class TestDispatch:
    """Parallel placement with per-account isolation."""

    @pytest.mark.asyncio
    async def test_places_orders_for_all_accounts_concurrently(self, fake_sleep, make_account, make_alert):
        broker = FakeBroker(place_delay=0.01)
        dispatcher, engine, cache = build_dispatcher(broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), three_accounts(make_account))

        assert [r.client_id for r in results] == ["C1", "C2", "C3"]
        assert all(r.placed for r in results)
        assert [r.order_id for r in results] == ["ORD-C1", "ORD-C2", "ORD-C3"]
        assert all(r.quantity == 399 for r in results)
        assert broker.max_place_in_flight == 3
        assert all(r.rebase_enqueued for r in results)
        assert engine.queue_status().length == 3
        for account_id in (1, 2, 3):
            assert await cache.was_ticker_ordered_today("INFY", account_id)

    @pytest.mark.asyncio
    async def test_market_order_carries_risk_prices(self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)

        await dispatcher.dispatch(make_alert(), [make_account()])

        call = fake_broker.calls[0]
        assert call[:7] == ('place_order', "C1", "INFY", 'BUY', 399, 'MARKET', 0.0)
        assert call[7] == pytest.approx(248.62125)
        assert call[8] == pytest.approx(253.005)

    @pytest.mark.asyncio
    async def test_limit_order_uses_buffered_price(self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)
        account = make_account(order_type='LIMIT', limit_buffer_percentage=0.5)

        await dispatcher.dispatch(make_alert(), [account])

        call = fake_broker.calls[0]
        assert call[5] == 'LIMIT'
        assert call[6] == 251.75

    @pytest.mark.asyncio
    async def test_exception_on_one_account_does_not_affect_others(
            self, fake_broker, fake_sleep, make_account, make_alert):
        fake_broker.place_failures["C2"] = BrokerConnectionError("connection reset")
        dispatcher, engine, _ = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), three_accounts(make_account))

        assert [r.placed for r in results] == [True, False, True]
        assert results[1].error == "connection reset"
        assert results[1].rebase_enqueued is False
        assert engine.queue_status().length == 2

    @pytest.mark.asyncio
    async def test_broker_rejection_is_reported_per_account(
            self, fake_broker, fake_sleep, make_account, make_alert):
        fake_broker.place_failures["C1"] = "Insufficient margin"
        dispatcher, engine, cache = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account()])

        assert results[0].placed is False
        assert results[0].error == "Insufficient margin"
        assert results[0].excluded_reason is None
        assert engine.queue_status().length == 0
        assert not await cache.was_ticker_ordered_today("INFY", 1)

    @pytest.mark.asyncio
    async def test_inactive_account_is_excluded_with_reason(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account(is_active=False)])

        assert results[0].placed is False
        assert results[0].excluded_reason == REASON_INACTIVE
        assert fake_broker.calls == []

    @pytest.mark.asyncio
    async def test_sizing_rejection_is_excluded_with_reason(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account(max_order_value=40000.0)])

        assert results[0].placed is False
        assert results[0].excluded_reason == REASON_ABOVE_MAXIMUM
        assert results[0].position.can_place_order is False
        assert fake_broker.calls == []

    @pytest.mark.asyncio
    async def test_rebase_disabled_account_is_not_enqueued(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, engine, _ = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account(rebase_enabled=False)])

        assert results[0].placed is True
        assert results[0].rebase_enqueued is False
        assert engine.queue_status().length == 0

    @pytest.mark.asyncio
    async def test_enqueued_task_carries_alert_details(self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, engine, _ = build_dispatcher(fake_broker, fake_sleep)

        await dispatcher.dispatch(make_alert(signal='SELL', price=209.19), [make_account()])

        task = engine._queue.get_nowait()
        assert task.order_id == "ORD-C1"
        assert task.original_alert_price == 209.19
        assert task.signal == 'SELL'
        assert task.client_id == "C1"
        assert task.account_id == 1


class TestDuplicateTickerGuard:

    @pytest.mark.asyncio
    async def test_ticker_already_ordered_today_is_excluded(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, cache = build_dispatcher(fake_broker, fake_sleep)
        await cache.record_ticker_order("INFY", 1)

        results = await dispatcher.dispatch(make_alert(), three_accounts(make_account))

        assert results[0].placed is False
        assert results[0].excluded_reason == REASON_DUPLICATE_TICKER
        assert [r.placed for r in results[1:]] == [True, True]
        assert "C1" not in [c[1] for c in fake_broker.calls]

    @pytest.mark.asyncio
    async def test_second_alert_for_same_ticker_is_excluded(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)

        first = await dispatcher.dispatch(make_alert(), [make_account()])
        second = await dispatcher.dispatch(make_alert(), [make_account()])

        assert first[0].placed is True
        assert second[0].excluded_reason == REASON_DUPLICATE_TICKER

    @pytest.mark.asyncio
    async def test_duplicates_allowed_when_account_permits(
            self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, cache = build_dispatcher(fake_broker, fake_sleep)
        await cache.record_ticker_order("INFY", 1)

        results = await dispatcher.dispatch(make_alert(), [make_account(allow_duplicate_tickers=True)])

        assert results[0].placed is True

    @pytest.mark.asyncio
    async def test_cache_write_failure_keeps_order_placed(
            self, fake_broker, fake_sleep, make_account, make_alert):

        class BrokenCache(InMemoryTickerCache):
            async def record_ticker_order(self, ticker, account_id):
                raise ConnectionError("redis down")

        dispatcher, engine, _ = build_dispatcher(fake_broker, fake_sleep, ticker_cache=BrokenCache())

        results = await dispatcher.dispatch(make_alert(), [make_account(allow_duplicate_tickers=True)])

        assert results[0].placed is True
        assert results[0].rebase_enqueued is True


    @pytest.mark.asyncio
    async def test_concurrent_alerts_for_same_ticker_place_once(self, fake_sleep, make_account, make_alert):
        broker = FakeBroker(place_delay=0.01)
        dispatcher, _, _ = build_dispatcher(broker, fake_sleep)
        account = make_account()

        first, second = await asyncio.gather(
            dispatcher.dispatch(make_alert(source='TradingView'), [account]),
            dispatcher.dispatch(make_alert(source='ChartInk'), [account]),
        )

        outcomes = first + second
        assert sorted(r.placed for r in outcomes) == [False, True]
        assert [r.excluded_reason for r in outcomes if not r.placed] == [REASON_DUPLICATE_TICKER]
        assert [c[0] for c in broker.calls] == ['place_order']

    @pytest.mark.asyncio
    async def test_rejected_order_releases_ticker(self, fake_broker, fake_sleep, make_account, make_alert):
        fake_broker.place_failures["C1"] = "Insufficient margin"
        dispatcher, _, cache = build_dispatcher(fake_broker, fake_sleep)

        await dispatcher.dispatch(make_alert(), [make_account()])
        del fake_broker.place_failures["C1"]
        retry = await dispatcher.dispatch(make_alert(), [make_account()])

        assert retry[0].placed is True
        assert await cache.was_ticker_ordered_today("INFY", 1)

    @pytest.mark.asyncio
    async def test_placement_exception_releases_ticker(self, fake_broker, fake_sleep, make_account, make_alert):
        fake_broker.place_failures["C1"] = BrokerConnectionError("connection reset")
        dispatcher, _, cache = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account()])

        assert results[0].error == "connection reset"
        assert not await cache.was_ticker_ordered_today("INFY", 1)

    @pytest.mark.asyncio
    async def test_sizing_rejection_releases_ticker(self, fake_broker, fake_sleep, make_account, make_alert):
        dispatcher, _, cache = build_dispatcher(fake_broker, fake_sleep)

        results = await dispatcher.dispatch(make_alert(), [make_account(max_order_value=40000.0)])

        assert results[0].excluded_reason == REASON_ABOVE_MAXIMUM
        assert not await cache.was_ticker_ordered_today("INFY", 1)


class TestSummarize:

    @pytest.mark.asyncio
    async def test_counts_outcomes(self, fake_broker, fake_sleep, make_account, make_alert):
        fake_broker.place_failures["C2"] = "rejected"
        dispatcher, _, _ = build_dispatcher(fake_broker, fake_sleep)
        accounts = three_accounts(make_account) + [
            make_account(account_id=4, client_id="C4", is_active=False),
            make_account(account_id=5, client_id="C5", rebase_enabled=False),
        ]
        alert = make_alert()

        results = await dispatcher.dispatch(alert, accounts)
        summary = OrderDispatcher.summarize(alert, results)

        assert summary.ticker == "INFY"
        assert summary.accounts_considered == 5
        assert summary.placed == 3
        assert summary.failed == 1
        assert summary.excluded == 1
        assert summary.rebase_enqueued == 2
        assert summary.results == results
