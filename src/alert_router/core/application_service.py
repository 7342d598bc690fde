"""
Application service for managing application lifecycle.
"""

from typing import Any, Dict, List, Optional
from .service_container import ServiceContainer, create_container
from ..commands import CommandResult, create_command
from ..config import AppConfig
from ..logger import AppLogger
from ..models import Alert, DispatchResult, RebaseResult

app_logger = AppLogger(__name__)


class ApplicationService:
    """Service for managing application lifecycle and orchestration"""

    def __init__(self, config: AppConfig, service_container: Optional[ServiceContainer] = None):
        self.config = config
        self.service_container = service_container or create_container(config)
        self.rebase_engine = None
        self.running = False

    async def start(self):
        """Start the application services"""
        app_logger.log_info("Starting application services...")

        try:
            self.rebase_engine = self.service_container.rebase_engine()
            self.rebase_engine.start()

            self.running = True
            app_logger.log_info("Application services started successfully")

        except Exception as e:
            app_logger.log_error(f"Failed to start application services: {e}")
            raise

    async def stop(self):
        """Stop the application services"""
        if not self.running:
            return

        self.running = False

        if self.rebase_engine:
            await self.rebase_engine.stop()

        await self.service_container.broker_client().close()

        ticker_cache = self.service_container.ticker_cache()
        if hasattr(ticker_cache, 'close'):
            await ticker_cache.close()

        app_logger.log_info("Application services stopped successfully")

    def get_services(self) -> Dict[str, Any]:
        """Services handed to commands"""
        return {
            'account_store': self.service_container.account_store(),
            'position_calculator': self.service_container.position_calculator(),
            'order_dispatcher': self.service_container.order_dispatcher(),
            'rebase_engine': self.service_container.rebase_engine(),
        }

    async def handle_alert(self, alert: Alert) -> List[DispatchResult]:
        """Dispatch an alert to every active account"""
        accounts = self.service_container.account_store().list_active_accounts()
        dispatcher = self.service_container.order_dispatcher()
        results = await dispatcher.dispatch(alert, accounts)
        summary = dispatcher.summarize(alert, results)
        app_logger.log_info(
            f"Alert {alert.signal} {alert.ticker}: {summary.placed} placed, "
            f"{summary.failed} failed, {summary.excluded} excluded"
        )
        return results

    async def run_command(self, command_type: str, alert: Alert) -> CommandResult:
        command = create_command(command_type, alert)
        app_logger.log_info(f"Running {command!r}")
        return await command.execute(self.get_services())

    async def wait_for_rebases(self, timeout: Optional[float] = None) -> List[RebaseResult]:
        if self.rebase_engine is None:
            return []
        return await self.rebase_engine.wait_until_idle(timeout)

    def get_service_container(self) -> ServiceContainer:
        """Get the service container"""
        return self.service_container

    def is_running(self) -> bool:
        """Check if application is running"""
        return self.running
