"""
Duplicate-order cache: which tickers each account already ordered today
"""
import asyncio
import redis.asyncio as redis
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, Dict, Optional, Set, Tuple
from ..logger import AppLogger

app_logger = AppLogger(__name__)


class DuplicateOrderCache(ABC):
    """Per-account, per-day record of ordered tickers"""

    @abstractmethod
    async def was_ticker_ordered_today(self, ticker: str, account_id: int) -> bool:
        pass

    @abstractmethod
    async def record_ticker_order(self, ticker: str, account_id: int) -> None:
        pass

    @abstractmethod
    async def reserve_ticker(self, ticker: str, account_id: int) -> bool:
        """
        Atomically check and record a ticker for today.

        Returns:
            True if the ticker was newly reserved, False if it was already ordered
        """
        pass

    @abstractmethod
    async def release_ticker(self, ticker: str, account_id: int) -> None:
        """Drop a reservation whose order was never placed"""
        pass


class InMemoryTickerCache(DuplicateOrderCache):
    """Process-local cache; entries from earlier days are dropped on access"""

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today
        self._entries: Dict[Tuple[str, int], Set[str]] = {}
        self._lock = asyncio.Lock()

    def _prune(self, day: str) -> None:
        stale = [key for key in self._entries if key[0] != day]
        for key in stale:
            del self._entries[key]

    async def was_ticker_ordered_today(self, ticker: str, account_id: int) -> bool:
        day = self._today().isoformat()
        async with self._lock:
            self._prune(day)
            return ticker.upper() in self._entries.get((day, account_id), set())

    async def record_ticker_order(self, ticker: str, account_id: int) -> None:
        day = self._today().isoformat()
        async with self._lock:
            self._prune(day)
            self._entries.setdefault((day, account_id), set()).add(ticker.upper())

    async def reserve_ticker(self, ticker: str, account_id: int) -> bool:
        day = self._today().isoformat()
        async with self._lock:
            self._prune(day)
            tickers = self._entries.setdefault((day, account_id), set())
            if ticker.upper() in tickers:
                return False
            tickers.add(ticker.upper())
            return True

    async def release_ticker(self, ticker: str, account_id: int) -> None:
        day = self._today().isoformat()
        async with self._lock:
            self._prune(day)
            self._entries.get((day, account_id), set()).discard(ticker.upper())


class RedisTickerCache(DuplicateOrderCache):
    """Redis sets keyed by day and account, expiring after ttl_seconds"""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 2 * 24 * 60 * 60,
                 today: Optional[Callable[[], date]] = None):
        self.client = redis_client
        self.ttl_seconds = ttl_seconds
        self._today = today or date.today

    def _key(self, account_id: int) -> str:
        return f"ordered_tickers:{self._today().isoformat()}:{account_id}"

    async def _add(self, ticker: str, account_id: int) -> int:
        key = self._key(account_id)
        pipe = self.client.pipeline()
        pipe.sadd(key, ticker.upper())
        pipe.expire(key, self.ttl_seconds)
        added, _ = await pipe.execute()
        return added

    async def was_ticker_ordered_today(self, ticker: str, account_id: int) -> bool:
        result = await self.client.sismember(self._key(account_id), ticker.upper())
        return bool(result)

    async def record_ticker_order(self, ticker: str, account_id: int) -> None:
        await self._add(ticker, account_id)
        app_logger.log_debug(f"Recorded {ticker.upper()} as ordered today for account {account_id}")

    async def reserve_ticker(self, ticker: str, account_id: int) -> bool:
        # SADD returns 1 only for the caller that added the member
        reserved = await self._add(ticker, account_id) == 1
        if reserved:
            app_logger.log_debug(f"Reserved {ticker.upper()} for account {account_id}")
        return reserved

    async def release_ticker(self, ticker: str, account_id: int) -> None:
        await self.client.srem(self._key(account_id), ticker.upper())
        app_logger.log_debug(f"Released {ticker.upper()} for account {account_id}")

    async def close(self) -> None:
        await self.client.aclose()
