"""Shared fixtures: a recording broker gateway, a fake sleep and account factories."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Union

import pytest

from alert_router.brokers import BrokerClient
from alert_router.models import AccountConfig, Alert, BrokerOrderStatus, OrderResult, UpdateResult

StatusStep = Union[BrokerOrderStatus, Exception]


class FakeBroker(BrokerClient):
    """In-process broker gateway that records every call in order.

    Order status is scripted per order id; once a script runs out its last
    step repeats. Orders without a script stay in transit forever.
    """

    def __init__(self, place_delay: float = 0.0):
        self.calls: List[tuple] = []
        self.status_scripts: Dict[str, List[StatusStep]] = {}
        self.place_failures: Dict[str, Union[str, Exception]] = {}
        self.target_result = UpdateResult(success=True)
        self.stop_loss_result = UpdateResult(success=True)
        self.place_delay = place_delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.place_in_flight = 0
        self.max_place_in_flight = 0

    def script(self, order_id: str, *steps: StatusStep) -> None:
        self.status_scripts[order_id] = list(steps)

    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ('update_target_price', 'update_stop_loss')]

    async def _enter(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)

    def _exit(self):
        self.in_flight -= 1

    async def place_order(self, account, ticker, signal, quantity, order_type='MARKET', price=0.0,
                          stop_loss_price=None, target_price=None) -> OrderResult:
        self.calls.append(('place_order', account.client_id, ticker, signal, quantity, order_type,
                           price, stop_loss_price, target_price))
        self.place_in_flight += 1
        self.max_place_in_flight = max(self.max_place_in_flight, self.place_in_flight)
        try:
            await asyncio.sleep(self.place_delay)
            failure = self.place_failures.get(account.client_id)
            if isinstance(failure, Exception):
                raise failure
            if failure is not None:
                return OrderResult(success=False, error=failure)
            return OrderResult(success=True, order_id=f"ORD-{account.client_id}")
        finally:
            self.place_in_flight -= 1

    async def get_order_status(self, account, order_id) -> BrokerOrderStatus:
        self.calls.append(('get_order_status', order_id))
        await self._enter()
        try:
            script = self.status_scripts.get(order_id)
            if not script:
                return in_transit(order_id)
            step = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(step, Exception):
                raise step
            return step
        finally:
            self._exit()

    async def update_target_price(self, account, order_id, new_price) -> UpdateResult:
        self.calls.append(('update_target_price', order_id, new_price))
        await self._enter()
        try:
            return self.target_result
        finally:
            self._exit()

    async def update_stop_loss(self, account, order_id, new_price, trailing_jump=None) -> UpdateResult:
        self.calls.append(('update_stop_loss', order_id, new_price, trailing_jump))
        await self._enter()
        try:
            return self.stop_loss_result
        finally:
            self._exit()


class FakeSleep:
    """Records requested delays and yields control without waiting"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.calls)


def in_transit(order_id: str) -> BrokerOrderStatus:
    return BrokerOrderStatus(order_id=order_id, status="TRANSIT", price=0.0, average_price=None)


def filled(order_id: str, average_price: float, status: str = "TRADED") -> BrokerOrderStatus:
    return BrokerOrderStatus(order_id=order_id, status=status, price=0.0, average_price=average_price)


def build_account(**overrides) -> AccountConfig:
    values = dict(
        account_id=1,
        client_id="C1",
        access_token="token-1",
        available_funds=100000.0,
        leverage=2.0,
        risk_on_capital=1.0,
        min_order_value=1000.0,
        max_order_value=100000.0,
        stop_loss_percentage=0.0075,
        target_price_percentage=0.01,
        rebase_enabled=True,
        rebase_threshold_percentage=0.5,
    )
    values.update(overrides)
    return AccountConfig(**values)


def build_alert(ticker: str = "INFY", signal: str = "BUY", price: float = 250.50, **overrides) -> Alert:
    return Alert(ticker=ticker, signal=signal, price=price, strategy=overrides.pop('strategy', 'breakout'),
                 **overrides)


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_account():
    return build_account


@pytest.fixture
def make_alert():
    return build_alert


@pytest.fixture
def status_helpers():
    class Helpers:
        transit = staticmethod(in_transit)
        fill = staticmethod(filled)
    return Helpers
