import logging
import sys
import json
import os
import gzip
import shutil
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from typing import Optional
from .config import LoggingConfig
from .context import get_current_work

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'message',
])

class CompressingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """TimedRotatingFileHandler that compresses rotated files"""

    def doRollover(self):
        super().doRollover()

        dir_name, base_name = os.path.split(self.baseFilename)

        try:
            for file_name in os.listdir(dir_name):
                if file_name.startswith(base_name) and not file_name.endswith('.gz') and file_name != base_name:
                    full_path = os.path.join(dir_name, file_name)
                    with open(full_path, 'rb') as f_in:
                        with gzip.open(f'{full_path}.gz', 'wb') as f_out:
                            shutil.copyfileobj(f_in, f_out)
                    os.remove(full_path)
        except OSError as e:
            # Compression failure must not break the rollover itself
            print(f"Error during log compression: {e}", file=sys.stderr)

class StructuredFormatter(logging.Formatter):
    """Formatter for text or JSON lines carrying account/order context"""

    def __init__(self, output_format: str = 'text'):
        super().__init__()
        self.output_format = output_format

    def format(self, record):
        log_data = {
            'timestamp': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or value is None:
                continue
            if isinstance(value, datetime):
                log_data[key] = value.strftime('%Y-%m-%d %H:%M:%S')
            else:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.output_format == 'json':
            return json.dumps(log_data, default=str)

        base_msg = f"{log_data['timestamp']} - {log_data['logger']} - {log_data['level']} - {log_data['message']}"
        for key in ('account_id', 'order_id', 'ticker', 'stage'):
            if key in log_data:
                base_msg += f" [{key}={log_data[key]}]"
        if 'exception' in log_data:
            base_msg += f"\n{log_data['exception']}"
        return base_msg

def setup_logger(name: str) -> logging.Logger:
    # No handlers here; records propagate to the root logger
    return logging.getLogger(name)

def configure_root_logger(config: Optional[LoggingConfig] = None, log_file_name: str = 'alert-router.log'):
    """Configure the root logger to use structured formatting for all logs"""
    config = config or LoggingConfig()
    root_logger = logging.getLogger()

    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level.upper()))

    formatter = StructuredFormatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.log_dir:
        os.makedirs(config.log_dir, exist_ok=True)
        file_handler = CompressingTimedRotatingFileHandler(
            filename=os.path.join(config.log_dir, log_file_name),
            when='midnight',
            interval=1,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configure_third_party_loggers()

def _configure_third_party_loggers():
    """Configure specific third-party library loggers with appropriate levels"""
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    logging.getLogger('redis').setLevel(logging.INFO)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

def _extract_work_properties():
    """Extract context properties of the current unit of work for logging"""
    work = get_current_work()
    if work is None:
        return {}

    return {
        'account_id': work.account_id,
        'client_id': work.client_id,
        'order_id': work.order_id,
        'ticker': work.ticker,
        'stage': work.stage,
    }

class AppLogger:
    """Logger that attaches the current work context from the ContextVar"""

    def __init__(self, name: str):
        self.logger = setup_logger(name)

    def log_debug(self, message: str):
        self.logger.debug(message, extra=_extract_work_properties())

    def log_info(self, message: str):
        self.logger.info(message, extra=_extract_work_properties())

    def log_warning(self, message: str):
        self.logger.warning(message, extra=_extract_work_properties())

    def log_error(self, message: str, exc_info: bool = False):
        self.logger.error(message, extra=_extract_work_properties(), exc_info=exc_info)
