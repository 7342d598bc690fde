"""
Work context management using ContextVar for async-safe context propagation.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WorkContext:
    """Identifies the unit of work a log line belongs to"""
    account_id: Optional[int] = None
    client_id: Optional[str] = None
    order_id: Optional[str] = None
    ticker: Optional[str] = None
    stage: Optional[str] = None


# Context variable to store the current unit of work across async boundaries
current_work: ContextVar[Optional[WorkContext]] = ContextVar('current_work', default=None)


def set_current_work(work: WorkContext) -> None:
    """Set the current work item in the context."""
    current_work.set(work)


def get_current_work() -> Optional[WorkContext]:
    """Get the current work item from the context."""
    return current_work.get()


def clear_current_work() -> None:
    """Clear the current work item from the context."""
    current_work.set(None)
