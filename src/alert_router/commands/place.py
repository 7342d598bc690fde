"""
Place command: dispatch an alert to every active account.
"""

from typing import Dict, Any
from .base import AlertCommand, CommandResult, CommandStatus
from ..context import WorkContext, set_current_work, clear_current_work
from ..logger import AppLogger

app_logger = AppLogger(__name__)


class PlaceOrdersCommand(AlertCommand):
    """Live order placement for one alert"""

    def _get_command_type(self) -> str:
        return "place"

    async def execute(self, services: Dict[str, Any]) -> CommandResult:
        set_current_work(WorkContext(ticker=self.alert.ticker, stage='place'))
        app_logger.log_info(f"Executing LIVE dispatch of {self.alert.signal} {self.alert.ticker}")

        try:
            account_store = services.get('account_store')
            dispatcher = services.get('order_dispatcher')
            if not account_store or not dispatcher:
                return CommandResult(
                    status=CommandStatus.FAILED,
                    error="Account store or order dispatcher not available"
                )

            accounts = account_store.list_active_accounts()
            if not accounts:
                return CommandResult(
                    status=CommandStatus.FAILED,
                    error="No active accounts configured"
                )

            results = await dispatcher.dispatch(self.alert, accounts)
            summary = dispatcher.summarize(self.alert, results)

            message = (
                f"Placed {summary.placed}/{summary.accounts_considered} orders for {summary.ticker} "
                f"({summary.failed} failed, {summary.excluded} excluded, "
                f"{summary.rebase_enqueued} queued for rebase)"
            )
            app_logger.log_info(message)

            if summary.failed == 0:
                status = CommandStatus.SUCCESS
            elif summary.placed > 0:
                status = CommandStatus.PARTIAL
            else:
                status = CommandStatus.FAILED

            return CommandResult(
                status=status,
                message=message,
                data={"action": "place", "summary": summary},
                error=None if status == CommandStatus.SUCCESS else f"{summary.failed} account(s) failed"
            )

        except Exception as e:
            app_logger.log_error(f"Dispatch failed for {self.alert.ticker}: {e}")
            return CommandResult(
                status=CommandStatus.FAILED,
                error=str(e)
            )
        finally:
            clear_current_work()
