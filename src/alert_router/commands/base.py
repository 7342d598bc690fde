"""
Base classes for alert commands.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional
from enum import Enum
from ..models import Alert


class CommandStatus(Enum):
    """Status of command execution"""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class CommandResult:
    """Result of command execution"""
    status: CommandStatus
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class AlertCommand(ABC):
    """Abstract base class for all alert commands"""

    def __init__(self, alert: Alert):
        self.alert = alert
        self.command_type = self._get_command_type()

    @abstractmethod
    def _get_command_type(self) -> str:
        """Return the command type identifier"""
        pass

    @abstractmethod
    async def execute(self, services: Dict[str, Any]) -> CommandResult:
        """
        Execute the command with provided services

        Args:
            services: Dictionary of service instances (account_store, order_dispatcher, etc.)

        Returns:
            CommandResult: The result of command execution
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(ticker={self.alert.ticker}, signal={self.alert.signal})"
