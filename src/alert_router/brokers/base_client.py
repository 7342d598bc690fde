from abc import ABC, abstractmethod
from typing import Optional
from ..models import AccountConfig, BrokerOrderStatus, OrderResult, Signal, UpdateResult

class BrokerClient(ABC):
    """Abstract base class for broker API clients.

    Every call takes the owning account so per-account credentials are used.
    """

    @abstractmethod
    async def place_order(
        self,
        account: AccountConfig,
        ticker: str,
        signal: Signal,
        quantity: int,
        order_type: str = 'MARKET',
        price: float = 0.0,
        stop_loss_price: Optional[float] = None,
        target_price: Optional[float] = None
    ) -> OrderResult:
        """Place an entry order with attached stop-loss and target legs"""
        pass

    @abstractmethod
    async def get_order_status(self, account: AccountConfig, order_id: str) -> BrokerOrderStatus:
        """Get status and fill price of an order"""
        pass

    @abstractmethod
    async def update_target_price(self, account: AccountConfig, order_id: str, new_price: float) -> UpdateResult:
        """Move the target leg of a live order"""
        pass

    @abstractmethod
    async def update_stop_loss(
        self,
        account: AccountConfig,
        order_id: str,
        new_price: float,
        trailing_jump: Optional[float] = None
    ) -> UpdateResult:
        """Move the stop-loss leg of a live order"""
        pass

    async def close(self):
        """Release any held connections"""
        pass
