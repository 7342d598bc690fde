"""
Service container using dependency-injector for the alert router
"""
import redis.asyncio as redis
from dependency_injector import containers, providers
from ..brokers import DhanClient
from ..calculator import PositionCalculator
from ..config import AppConfig, RateLimitConfig, RedisConfig
from ..dispatcher import OrderDispatcher
from ..rate_limiter import TokenBucket
from ..rebase_queue import RebaseQueueEngine
from ..stores import InMemoryTickerCache, RedisTickerCache, YamlAccountConfigStore


def _build_ticker_cache(redis_config: RedisConfig):
    if not redis_config.enabled:
        return InMemoryTickerCache()
    client = redis.from_url(redis_config.url, decode_responses=True)
    return RedisTickerCache(client, ttl_seconds=redis_config.ticker_ttl_seconds)


def _build_rate_limiter(rate_limit_config: RateLimitConfig):
    if not rate_limit_config.enabled:
        return None
    return TokenBucket(rate_limit_config.rate_per_second, burst=rate_limit_config.burst)


class ServiceContainer(containers.DeclarativeContainer):
    """DI Container for the alert router"""

    # Configuration, supplied by create_container()
    app_config = providers.Dependency(instance_of=AppConfig)

    # Stores (Singletons)
    account_store = providers.Singleton(
        YamlAccountConfigStore,
        accounts_path=app_config.provided.accounts_file
    )

    ticker_cache = providers.Singleton(
        _build_ticker_cache,
        redis_config=app_config.provided.redis
    )

    # Broker access
    rate_limiter = providers.Singleton(
        _build_rate_limiter,
        rate_limit_config=app_config.provided.rate_limit
    )

    broker_client = providers.Singleton(
        DhanClient,
        config=app_config.provided.broker
    )

    # Core engines
    position_calculator = providers.Singleton(
        PositionCalculator
    )

    rebase_engine = providers.Singleton(
        RebaseQueueEngine,
        broker=broker_client,
        config=app_config.provided.rebase,
        rate_limiter=rate_limiter
    )

    order_dispatcher = providers.Singleton(
        OrderDispatcher,
        broker=broker_client,
        rebase_engine=rebase_engine,
        ticker_cache=ticker_cache,
        calculator=position_calculator
    )


def create_container(config: AppConfig) -> ServiceContainer:
    container = ServiceContainer()
    container.app_config.override(providers.Object(config))
    return container
