"""Position sizing: per-account quantity, committed capital and accept/reject decision"""

from typing import List, Optional, Tuple
import logging
import math
from .models import AccountConfig, Alert, PositionCalculation, Signal

REASON_PRICE_TOO_HIGH = "stock price too high for available funds"
REASON_BELOW_MINIMUM = "leveraged value below minimum"
REASON_ABOVE_MAXIMUM = "leveraged value above maximum"
REASON_EXCEEDS_CAPITAL = "position size exceeds available capital"


def validate_sizing_inputs(alert_price: float) -> None:
    if alert_price is None or math.isnan(alert_price) or math.isinf(alert_price) or alert_price <= 0:
        raise ValueError(f"Invalid alert price: {alert_price}. Price must be a positive number.")


def risk_prices(entry_price: float, signal: Signal, stop_loss_percentage: float,
                target_price_percentage: float) -> Tuple[float, float]:
    """
    Stop-loss and target for a position entered at entry_price.

    A SELL is a short, so its target sits below entry and its stop-loss above.

    Returns:
        (stop_loss_price, target_price)
    """
    if signal == 'BUY':
        return (entry_price * (1 - stop_loss_percentage),
                entry_price * (1 + target_price_percentage))
    return (entry_price * (1 + stop_loss_percentage),
            entry_price * (1 - target_price_percentage))


def limit_order_price(alert_price: float, signal: Signal, buffer_percentage: float) -> float:
    """LIMIT price with the account buffer: BUY pays up, SELL gives down"""
    buffer = buffer_percentage / 100.0
    if signal == 'BUY':
        return round(alert_price * (1 + buffer), 2)
    return round(alert_price * (1 - buffer), 2)


def compute_position(alert_price: float, signal: Signal, account: AccountConfig) -> PositionCalculation:
    """
    Size one order for one account. Pure and deterministic.

    quantity = floor(available_funds * risk_on_capital / alert_price). Rejections
    are reported through can_place_order/reason, never raised.
    """
    validate_sizing_inputs(alert_price)

    risk_adjusted_funds = account.available_funds * account.risk_on_capital
    shares = risk_adjusted_funds / alert_price
    if not math.isfinite(shares):
        raise ValueError(f"Invalid alert price: {alert_price}. Price is too small to size a position.")
    quantity = int(math.floor(shares))
    order_value = quantity * alert_price
    leveraged_value = order_value / account.leverage
    position_size_percentage = (leveraged_value / account.available_funds) * 100

    stop_loss_price, target_price = risk_prices(
        alert_price, signal, account.stop_loss_percentage, account.target_price_percentage
    )

    # First failing check wins
    reason = None
    if quantity <= 0:
        reason = REASON_PRICE_TOO_HIGH
    elif leveraged_value < account.min_order_value:
        reason = REASON_BELOW_MINIMUM
    elif leveraged_value > account.max_order_value:
        reason = REASON_ABOVE_MAXIMUM
    elif position_size_percentage > 100:
        reason = REASON_EXCEEDS_CAPITAL

    return PositionCalculation(
        account_id=account.account_id,
        client_id=account.client_id,
        stock_price=alert_price,
        signal=signal,
        risk_adjusted_funds=risk_adjusted_funds,
        quantity=quantity,
        order_value=order_value,
        leveraged_value=leveraged_value,
        position_size_percentage=position_size_percentage,
        stop_loss_price=stop_loss_price,
        target_price=target_price,
        can_place_order=reason is None,
        reason=reason,
    )


class PositionCalculator:
    """Size alerts across accounts and log the decisions"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def calculate(self, alert: Alert, account: AccountConfig) -> PositionCalculation:
        calculation = compute_position(alert.price, alert.signal, account)

        if calculation.can_place_order:
            self.logger.info(
                f"Sizing {alert.signal} {alert.ticker} for account {account.client_id}: "
                f"{calculation.quantity:,} @ {alert.price:.2f} = {calculation.order_value:,.2f} "
                f"(leveraged {calculation.leveraged_value:,.2f}, "
                f"{calculation.position_size_percentage:.2f}% of funds), "
                f"SL {calculation.stop_loss_price:.2f}, TP {calculation.target_price:.2f}"
            )
        else:
            self.logger.info(
                f"Rejected {alert.signal} {alert.ticker} for account {account.client_id}: "
                f"{calculation.reason} (quantity={calculation.quantity}, "
                f"leveraged={calculation.leveraged_value:,.2f}, "
                f"min={account.min_order_value:,.2f}, max={account.max_order_value:,.2f})"
            )
        return calculation

    def calculate_for_accounts(self, alert: Alert, accounts: List[AccountConfig]) -> List[PositionCalculation]:
        """One calculation per account, in input order"""
        return [self.calculate(alert, account) for account in accounts]
