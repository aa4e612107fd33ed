"""
Centralized logging configuration for Inventory Ledger.

This module provides the logging setup shared by every module:
- Structured JSON logging to file for easy parsing and analysis
- Automatic file rotation (prevents log files from growing indefinitely)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Automatic cleanup of old logs (retention policy)
- Both file and console output
- Context-aware logging (order_id, mode)

Log file location: [Logging] LogDirectory from config.ini,
falling back to ~/.inventory_ledger/logs
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-10-19T14:30:45.123", "level": "INFO", "tool": "inventory_ledger",
     "order_id": "500", "mode": "received", "module": "reconciler",
     "function": "update", "line": 120, "message": "Imported 12 order lines"}
"""

import logging
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
import configparser
from contextvars import ContextVar


# Context variables for structured logging
_order_id: ContextVar[Optional[str]] = ContextVar('order_id', default=None)
_mode: ContextVar[Optional[str]] = ContextVar('mode', default=None)

CONFIG_FILE_NAME = 'config.ini'


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format with milliseconds
    - level: Log level name
    - tool: Always "inventory_ledger"
    - order_id: Order currently being reconciled (if set)
    - mode: Bucket scans are currently classified into (if set)
    - module, function, line: Origin of the record
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'inventory_ledger',
            'order_id': _order_id.get(),
            'mode': _mode.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    Centralized application logger with file rotation and cleanup.

    Logging is configured once, on the first call to get_logger(), no matter
    how many modules import it. Settings are read from config.ini:
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - MaxLogSizeMB: Maximum size per log file before rotation
    - LogRetentionDays: How many days of logs to keep
    - LogDirectory: Where daily log files are written

    Attributes:
        _initialized: Whether logging has been configured (class-level)
    """

    _initialized: bool = False

    @classmethod
    def get_logger(cls, name: str = 'InventoryLedger') -> logging.Logger:
        """
        Get or create a logger, configuring the logging system on first use.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Logger instance sharing the root handlers
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Configure the root logger from config.ini.

        When a file exceeds MaxLogSizeMB it is rotated:
            2026-10-19.log       (current)
            2026-10-19.log.1     (previous, rotated)
            ... up to backupCount=30 files
        """
        config = cls._load_config()

        default_dir = Path(os.path.expanduser("~")) / ".inventory_ledger" / "logs"
        log_dir = Path(config.get('Logging', 'LogDirectory', fallback=str(default_dir)))

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_dir = default_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not create configured log directory. Using: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        json_formatter = StructuredJSONFormatter()

        # Format: timestamp | module | level | function:line | message
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('InventoryLedger')
        logger.info("=" * 80)
        logger.info("Inventory Ledger Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @staticmethod
    def _load_config() -> configparser.ConfigParser:
        """
        Load logging configuration from config.ini in the working directory.

        Configuration options:
            [Logging]
            LogLevel = INFO
            MaxLogSizeMB = 10
            LogRetentionDays = 30
            LogDirectory = /var/log/inventory_ledger

        Returns:
            ConfigParser, empty if config.ini does not exist (defaults apply)
        """
        config = configparser.ConfigParser()
        config_path = Path(os.environ.get('INVENTORY_LEDGER_CONFIG', CONFIG_FILE_NAME))

        if config_path.exists():
            config.read(config_path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Days to keep logs; 0 or negative keeps everything
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('InventoryLedger').debug(f"Deleted old log: {log_file.name}")

        except OSError as e:
            # Non-fatal: a file in use or a permission problem must not stop startup
            logging.getLogger('InventoryLedger').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'InventoryLedger') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting import")
    """
    return AppLogger.get_logger(name)


def set_order_context(order_id: Optional[Any]) -> None:
    """
    Set the order being reconciled for structured logging context.

    Args:
        order_id: Order identifier or None to clear
    """
    _order_id.set(None if order_id is None else str(order_id))


def set_mode_context(mode: Optional[str]) -> None:
    """Set the active scan bucket for structured logging context."""
    _mode.set(mode)


def clear_logging_context() -> None:
    """Clear all logging context (order_id, mode)."""
    _order_id.set(None)
    _mode.set(None)
