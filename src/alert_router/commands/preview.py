"""
Preview command: size an alert for every active account without placing orders.
"""

from typing import Dict, Any
from .base import AlertCommand, CommandResult, CommandStatus
from ..context import WorkContext, set_current_work, clear_current_work
from ..logger import AppLogger

app_logger = AppLogger(__name__)


class PreviewCommand(AlertCommand):
    """Dry run of the position sizing for one alert"""

    def _get_command_type(self) -> str:
        return "preview"

    async def execute(self, services: Dict[str, Any]) -> CommandResult:
        set_current_work(WorkContext(ticker=self.alert.ticker, stage='preview'))
        app_logger.log_info(f"Previewing {self.alert.signal} {self.alert.ticker} @ {self.alert.price:.2f} (dry run)")

        try:
            account_store = services.get('account_store')
            calculator = services.get('position_calculator')
            if not account_store or not calculator:
                return CommandResult(
                    status=CommandStatus.FAILED,
                    error="Account store or position calculator not available"
                )

            accounts = account_store.list_active_accounts()
            if not accounts:
                return CommandResult(
                    status=CommandStatus.FAILED,
                    error="No active accounts configured"
                )

            positions = calculator.calculate_for_accounts(self.alert, accounts)
            accepted = [p for p in positions if p.can_place_order]

            for position in positions:
                if position.can_place_order:
                    app_logger.log_info(
                        f"  Would {self.alert.signal} {position.quantity} {self.alert.ticker} for "
                        f"{position.client_id} ({position.order_value:,.2f}, "
                        f"SL {position.stop_loss_price:.2f}, TP {position.target_price:.2f})"
                    )
                else:
                    app_logger.log_info(f"  Would skip {position.client_id}: {position.reason}")

            return CommandResult(
                status=CommandStatus.SUCCESS,
                message=f"{len(accepted)} of {len(positions)} accounts would place an order",
                data={"action": "preview", "positions": positions}
            )

        except Exception as e:
            app_logger.log_error(f"Preview failed for {self.alert.ticker}: {e}")
            return CommandResult(
                status=CommandStatus.FAILED,
                error=str(e)
            )
        finally:
            clear_current_work()
