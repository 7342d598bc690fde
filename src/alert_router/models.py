from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

Signal = Literal['BUY', 'SELL']

TRAIL_JUMP_STEP = 0.05


# Account and alert models
class AccountConfig(BaseModel):
    """Per-account trading parameters, read-only for the core"""
    model_config = ConfigDict(frozen=True)

    account_id: int
    client_id: str = Field(min_length=1)
    access_token: Optional[SecretStr] = None

    # Capital
    available_funds: float = Field(gt=0)
    leverage: float = Field(default=2.0, ge=1.0, le=10.0)
    risk_on_capital: float = Field(default=1.0, ge=0.0, le=5.0)

    # Bounds
    min_order_value: float = Field(default=1000.0, gt=0)
    max_order_value: float = Field(default=5000.0, gt=0)
    # Stored setting; sizing is bounded by the order values above
    max_position_size: float = Field(default=0.1, gt=0, le=1.0)

    # Risk prices, as fractions (0.01 = 1%)
    stop_loss_percentage: float = Field(default=0.01, gt=0, le=0.5)
    target_price_percentage: float = Field(default=0.015, gt=0, le=1.0)

    # Rebase policy, threshold in percent units (0.5 = 0.5%)
    rebase_enabled: bool = False
    rebase_threshold_percentage: float = Field(default=0.1, ge=0.0)

    allow_duplicate_tickers: bool = False
    order_type: Literal['MARKET', 'LIMIT'] = 'MARKET'
    limit_buffer_percentage: float = Field(default=0.0, ge=0.0, le=10.0)

    enable_trailing_stop_loss: bool = False
    min_trail_jump: float = Field(default=0.05, ge=0.05, le=10.0)

    is_active: bool = True

    @model_validator(mode='after')
    def check_consistency(self) -> 'AccountConfig':
        if self.max_order_value <= self.min_order_value:
            raise ValueError(
                f"Account {self.account_id}: max_order_value ({self.max_order_value}) must be "
                f"greater than min_order_value ({self.min_order_value})"
            )
        # A zero multiplier silently zeroes every order for the account
        if self.is_active and self.risk_on_capital <= 0:
            raise ValueError(
                f"Account {self.account_id}: risk_on_capital must be greater than 0 for active accounts"
            )
        if self.is_active and (self.access_token is None or not self.access_token.get_secret_value().strip()):
            raise ValueError(f"Account {self.account_id}: access_token is required for active accounts")
        # The broker only accepts trail jumps in 0.05 steps
        steps = round(self.min_trail_jump / TRAIL_JUMP_STEP)
        if abs(steps * TRAIL_JUMP_STEP - self.min_trail_jump) > 1e-9:
            raise ValueError(
                f"Account {self.account_id}: min_trail_jump ({self.min_trail_jump}) must be a "
                f"multiple of {TRAIL_JUMP_STEP}"
            )
        return self


class Alert(BaseModel):
    """Incoming trading signal from a webhook source"""
    model_config = ConfigDict(frozen=True)

    ticker: str
    signal: Signal
    price: float = Field(gt=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    strategy: str = Field(min_length=1)
    source: Literal['TradingView', 'ChartInk'] = 'TradingView'
    custom_note: Optional[str] = None

    @field_validator('ticker')
    @classmethod
    def normalize_ticker(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Ticker must be a non-empty string")
        return v

    @field_validator('strategy')
    @classmethod
    def strip_strategy(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Strategy must be a non-empty string")
        return v


# Position sizing
class PositionCalculation(BaseModel):
    """Sizing decision for one (alert, account) pair"""
    account_id: int
    client_id: str
    stock_price: float
    signal: Signal
    risk_adjusted_funds: float
    quantity: int = Field(ge=0)
    order_value: float
    leveraged_value: float
    position_size_percentage: float
    stop_loss_price: float
    target_price: float
    can_place_order: bool
    reason: Optional[str] = None

    @model_validator(mode='after')
    def reason_iff_rejected(self) -> 'PositionCalculation':
        if self.can_place_order and self.reason is not None:
            raise ValueError("reason must be empty when the order can be placed")
        if not self.can_place_order and not self.reason:
            raise ValueError("reason is required when the order cannot be placed")
        return self


# Broker gateway results
class OrderResult(BaseModel):
    """Outcome of a place-order call"""
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None


class BrokerOrderStatus(BaseModel):
    """Order details as reported by the broker"""
    order_id: str
    status: str
    price: float = 0.0
    average_price: Optional[float] = None
    target_price: Optional[float] = None
    stop_loss_price: Optional[float] = None

    @property
    def fill_price(self) -> Optional[float]:
        """averagePrice wins over price; a non-positive value means no fill yet"""
        if self.average_price is not None and self.average_price > 0:
            return self.average_price
        if self.price and self.price > 0:
            return self.price
        return None


class UpdateResult(BaseModel):
    """Outcome of a stop-loss / target modification"""
    success: bool
    error: Optional[str] = None


class OrderStatus:
    """Broker order statuses the core reasons about"""
    TRANSIT = "TRANSIT"
    PENDING = "PENDING"
    TRADED = "TRADED"
    COMPLETE = "COMPLETE"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    TERMINAL_FAILURES = frozenset({REJECTED, CANCELLED, EXPIRED})

    @classmethod
    def normalize(cls, status: Optional[str]) -> str:
        return (status or '').strip().upper().replace(' ', '_')

    @classmethod
    def is_terminal_failure(cls, status: Optional[str]) -> bool:
        return cls.normalize(status) in cls.TERMINAL_FAILURES


# Dispatch results
class DispatchResult(BaseModel):
    """Per-account outcome of dispatching one alert"""
    account_id: int
    client_id: str
    ticker: str
    signal: Signal
    placed: bool
    order_id: Optional[str] = None
    quantity: int = 0
    position: Optional[PositionCalculation] = None
    error: Optional[str] = None
    excluded_reason: Optional[str] = None
    rebase_enqueued: bool = False


class DispatchSummary(BaseModel):
    """Aggregate counts for one dispatched alert"""
    ticker: str
    signal: Signal
    accounts_considered: int
    placed: int
    failed: int
    excluded: int
    rebase_enqueued: int
    results: List[DispatchResult] = Field(default_factory=list)


# Rebase models
class RebaseState(str, Enum):
    QUEUED = "QUEUED"
    POLLING = "POLLING"
    SKIPPED = "SKIPPED"
    REBASING = "REBASING"
    REBASED = "REBASED"
    REBASE_FAILED = "REBASE_FAILED"
    ABANDONED = "ABANDONED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_REBASE_STATES


TERMINAL_REBASE_STATES = frozenset({
    RebaseState.SKIPPED,
    RebaseState.REBASED,
    RebaseState.REBASE_FAILED,
    RebaseState.ABANDONED,
})


class RebaseResult(BaseModel):
    """Terminal report for one rebase task"""
    order_id: str
    account_id: int
    client_id: str
    state: RebaseState
    success: bool
    attempts_made: int
    actual_entry_price: Optional[float] = None
    deviation_percentage: Optional[float] = None
    original_target: Optional[float] = None
    original_stop_loss: Optional[float] = None
    new_target: Optional[float] = None
    new_stop_loss: Optional[float] = None
    message: Optional[str] = None
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=datetime.now)


class QueueStatus(BaseModel):
    """Read-only view of the rebase queue"""
    length: int
    is_worker_busy: bool
    completed_count: int
