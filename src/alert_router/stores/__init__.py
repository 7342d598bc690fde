from .account_store import AccountConfigStore, StaticAccountConfigStore, YamlAccountConfigStore
from .ticker_cache import DuplicateOrderCache, InMemoryTickerCache, RedisTickerCache

__all__ = [
    "AccountConfigStore",
    "StaticAccountConfigStore",
    "YamlAccountConfigStore",
    "DuplicateOrderCache",
    "InMemoryTickerCache",
    "RedisTickerCache",
]
