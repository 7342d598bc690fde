class BrokerConnectionError(Exception):
    """Raised when the broker cannot be reached"""
    pass

class BrokerAPIError(Exception):
    """Raised when broker API returns an error"""
    pass

class ConfigurationError(Exception):
    """Raised when account or application configuration is invalid"""
    pass

class InvalidStateTransition(Exception):
    """Raised when a rebase task is moved along an edge its lifecycle does not allow"""

    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Rebase task {order_id}: illegal transition {current} -> {target}")
