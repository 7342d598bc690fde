"""
Alert order router: sizes trading alerts per account, places orders in
parallel and rebases stop-loss/target onto confirmed fill prices.
"""

from .calculator import PositionCalculator, compute_position
from .dispatcher import OrderDispatcher
from .models import (
    AccountConfig,
    Alert,
    DispatchResult,
    PositionCalculation,
    RebaseResult,
    RebaseState,
)
from .rebase_queue import RebaseQueueEngine, RebaseTask

__version__ = "1.0.0"

__all__ = [
    "AccountConfig",
    "Alert",
    "DispatchResult",
    "OrderDispatcher",
    "PositionCalculation",
    "PositionCalculator",
    "RebaseQueueEngine",
    "RebaseResult",
    "RebaseState",
    "RebaseTask",
    "compute_position",
]
