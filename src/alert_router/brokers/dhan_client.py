"""Dhan v2 REST gateway for super orders (entry + target + stop-loss legs)"""

import asyncio
import uuid
import logging
import aiohttp
from typing import Any, Dict, Optional
from .base_client import BrokerClient
from ..config import BrokerConfig
from ..exceptions import BrokerAPIError, BrokerConnectionError
from ..models import AccountConfig, BrokerOrderStatus, OrderResult, Signal, UpdateResult

TARGET_LEG = "TARGET_LEG"
STOP_LOSS_LEG = "STOP_LOSS_LEG"


def generate_correlation_id() -> str:
    return f"ar-{uuid.uuid4().hex[:20]}"


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ('errorMessage', 'message', 'error', 'remarks'):
            if payload.get(key):
                return str(payload[key])
    return fallback


def parse_order_status(order_id: str, payload: Any) -> BrokerOrderStatus:
    """
    Normalize an order-details payload.

    The endpoint answers with either an object or a one-element list, and
    older responses use `status`/`averagePrice` instead of
    `orderStatus`/`averageTradedPrice`.
    """
    if isinstance(payload, list):
        if not payload:
            raise BrokerAPIError(f"Empty order details for order {order_id}")
        payload = payload[0]
    if not isinstance(payload, dict):
        raise BrokerAPIError(f"Unexpected order details payload for order {order_id}: {payload!r}")

    average_price = _to_float(payload.get('averageTradedPrice'))
    if average_price is None:
        average_price = _to_float(payload.get('averagePrice'))

    return BrokerOrderStatus(
        order_id=str(payload.get('orderId') or order_id),
        status=str(payload.get('orderStatus') or payload.get('status') or ''),
        price=_to_float(payload.get('price')) or 0.0,
        average_price=average_price,
        target_price=_to_float(payload.get('targetPrice')),
        stop_loss_price=_to_float(payload.get('stopLossPrice')),
    )


class DhanClient(BrokerClient):
    """aiohttp implementation of the broker gateway"""

    def __init__(self, config: Optional[BrokerConfig] = None,
                 security_ids: Optional[Dict[str, str]] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config or BrokerConfig()
        ids = security_ids if security_ids is not None else self.config.security_ids
        self.security_ids = {k.upper(): str(v) for k, v in ids.items()}
        self.logger = logger or logging.getLogger(__name__)

    def _headers(self, account: AccountConfig) -> Dict[str, str]:
        if account.access_token is None:
            raise BrokerConnectionError(f"No access token configured for account {account.client_id}")
        return {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'access-token': account.access_token.get_secret_value(),
        }

    async def _request(self, method: str, path: str, account: AccountConfig,
                       body: Optional[dict] = None) -> Any:
        url = f"{self.config.base_url}{path}"
        headers = self._headers(account)

        self.logger.debug(f"{method} {url}")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    json=body,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
                ) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = await response.text()

                    if response.status >= 400:
                        raise BrokerAPIError(
                            _error_message(data, f"API returned status {response.status}: {data}")
                        )
                    return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BrokerConnectionError(f"Broker request failed: {e}") from e

    def build_order_request(self, account: AccountConfig, security_id: str, signal: Signal,
                            quantity: int, order_type: str, price: float,
                            stop_loss_price: Optional[float], target_price: Optional[float],
                            correlation_id: str) -> dict:
        request = {
            'dhanClientId': account.client_id,
            'correlationId': correlation_id,
            'transactionType': signal,
            'exchangeSegment': self.config.exchange_segment,
            'productType': self.config.product_type,
            'orderType': order_type,
            'securityId': security_id,
            'quantity': quantity,
            'price': round(price, 2) if order_type == 'LIMIT' else 0,
        }
        if target_price is not None:
            request['targetPrice'] = round(target_price, 2)
        if stop_loss_price is not None:
            request['stopLossPrice'] = round(stop_loss_price, 2)
        if account.enable_trailing_stop_loss:
            request['trailingJump'] = account.min_trail_jump
        return request

    async def place_order(self, account: AccountConfig, ticker: str, signal: Signal, quantity: int,
                          order_type: str = 'MARKET', price: float = 0.0,
                          stop_loss_price: Optional[float] = None,
                          target_price: Optional[float] = None) -> OrderResult:
        correlation_id = generate_correlation_id()
        security_id = self.security_ids.get(ticker.upper())
        if security_id is None:
            return OrderResult(
                success=False,
                error=f"SecurityId mapping failed for ticker {ticker}",
                correlation_id=correlation_id
            )

        body = self.build_order_request(account, security_id, signal, quantity, order_type, price,
                                        stop_loss_price, target_price, correlation_id)
        self.logger.info(
            f"Placing {order_type} {signal} {quantity} {ticker} for account {account.client_id} "
            f"(correlation {correlation_id})"
        )

        try:
            data = await self._request('POST', '/super/orders', account, body)
        except (BrokerAPIError, BrokerConnectionError) as e:
            self.logger.error(f"Order failed for account {account.client_id}: {e}")
            return OrderResult(success=False, error=str(e), correlation_id=correlation_id)

        order_id = data.get('orderId') if isinstance(data, dict) else None
        if not order_id:
            return OrderResult(
                success=False,
                error=_error_message(data, "Broker response did not include an order id"),
                correlation_id=correlation_id
            )
        return OrderResult(success=True, order_id=str(order_id), correlation_id=correlation_id)

    async def get_order_status(self, account: AccountConfig, order_id: str) -> BrokerOrderStatus:
        data = await self._request('GET', f'/orders/{order_id}', account)
        return parse_order_status(order_id, data)

    async def _modify_leg(self, account: AccountConfig, order_id: str, body: dict) -> UpdateResult:
        try:
            await self._request('PUT', f'/super/orders/{order_id}', account, body)
        except (BrokerAPIError, BrokerConnectionError) as e:
            self.logger.error(f"Failed to modify {body['legName']} of order {order_id}: {e}")
            return UpdateResult(success=False, error=str(e))
        return UpdateResult(success=True)

    async def update_target_price(self, account: AccountConfig, order_id: str, new_price: float) -> UpdateResult:
        return await self._modify_leg(account, order_id, {
            'dhanClientId': account.client_id,
            'orderId': order_id,
            'legName': TARGET_LEG,
            'targetPrice': round(new_price, 2),
        })

    async def update_stop_loss(self, account: AccountConfig, order_id: str, new_price: float,
                               trailing_jump: Optional[float] = None) -> UpdateResult:
        body = {
            'dhanClientId': account.client_id,
            'orderId': order_id,
            'legName': STOP_LOSS_LEG,
            'stopLossPrice': round(new_price, 2),
        }
        if trailing_jump and trailing_jump > 0:
            body['trailingJump'] = trailing_jump
        return await self._modify_leg(account, order_id, body)
