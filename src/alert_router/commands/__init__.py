from .base import AlertCommand, CommandResult, CommandStatus
from .place import PlaceOrdersCommand
from .preview import PreviewCommand

COMMANDS = {
    "preview": PreviewCommand,
    "place": PlaceOrdersCommand,
}


def create_command(command_type: str, alert) -> AlertCommand:
    command_class = COMMANDS.get(command_type)
    if command_class is None:
        raise ValueError(f"Unknown command: {command_type}")
    return command_class(alert)


__all__ = [
    "AlertCommand",
    "CommandResult",
    "CommandStatus",
    "PlaceOrdersCommand",
    "PreviewCommand",
    "COMMANDS",
    "create_command",
]
