from .base_client import BrokerClient
from .dhan_client import DhanClient, parse_order_status

__all__ = [
    "BrokerClient",
    "DhanClient",
    "parse_order_status",
]
