"""
Centralized logging configuration for the scriptforge compiler.

Features:
- Colored logging with different colors for different log levels
- Structured formatting with timestamps and context
- Compile run dividers for better readability
- Configurable log levels and output formats
"""

import logging
import re
import sys
from datetime import datetime
from typing import Optional, Union
from pathlib import Path

# Color codes for terminal output
class Colors:
    """ANSI color codes for terminal output"""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"

class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log messages"""

    COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    TIMESTAMP_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?:\.\d{2,3})?)')

    def format(self, record):
        formatted = super().format(record)

        level_color = self.COLORS.get(record.levelno, Colors.WHITE)
        formatted = formatted.replace(
            record.levelname,
            f"{level_color}{record.levelname}{Colors.RESET}",
            1
        )

        formatted = self.TIMESTAMP_PATTERN.sub(f"{Colors.CYAN}\\1{Colors.RESET}", formatted, count=1)

        if record.name:
            formatted = formatted.replace(
                f"{record.name} - ",
                f"{Colors.BLUE}{record.name}{Colors.RESET} - ",
                1
            )

        return formatted

class CompileLogger:
    """Logs the start and end of a compile run with clear dividers"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.divider_length = 80

    def log_compile_start(self, workflow_id: str, nodes: int, edges: int):
        """Log the start of a compile run"""
        divider = "=" * self.divider_length
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        self.logger.info(f"{Colors.MAGENTA}{divider}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}🔧 COMPILE START - {workflow_id}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}📊 Nodes: {nodes}, Edges: {edges}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}⏰ Timestamp: {timestamp}{Colors.RESET}")

    def log_compile_end(self, workflow_id: str, duration_ms: Optional[float] = None,
                        status: str = "completed"):
        """Log the end of a compile run"""
        divider = "=" * self.divider_length

        self.logger.info(f"{Colors.MAGENTA}✅ COMPILE END - {workflow_id}{Colors.RESET}")
        if duration_ms is not None:
            self.logger.info(f"{Colors.MAGENTA}⏱️  Duration: {duration_ms:.2f}ms{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}📊 Status: {status}{Colors.RESET}")
        self.logger.info(f"{Colors.MAGENTA}{divider}{Colors.RESET}")

    def log_compile_error(self, workflow_id: str, code: str, message: str, node_id: Optional[str] = None):
        """Log a fatal compile error"""
        divider = "-" * 60
        self.logger.error(f"{Colors.RED}{divider}{Colors.RESET}")
        self.logger.error(f"{Colors.RED}❌ COMPILE ERROR - {workflow_id}: {code}{Colors.RESET}")
        if node_id:
            self.logger.error(f"{Colors.RED}📋 Node: {node_id}{Colors.RESET}")
        self.logger.error(f"{Colors.RED}💥 Error: {message}{Colors.RESET}")
        self.logger.error(f"{Colors.RED}{divider}{Colors.RESET}")

def setup_logging(
    log_level: str = "INFO",
    log_format: str = "detailed",
    log_file: Optional[Union[str, Path]] = None,
    enable_colors: bool = True
) -> logging.Logger:
    """
    Set up centralized logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format style ('simple', 'detailed', 'json')
        log_file: Optional file path for logging
        enable_colors: Whether to enable colored output (terminal only)

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    use_colors = enable_colors and sys.stdout.isatty()
    if log_format == "simple":
        fmt = "%(levelname)s - %(message)s"
        formatter = ColoredFormatter(fmt) if use_colors else logging.Formatter(fmt)
    elif log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
        )
    else:  # detailed (default)
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        if use_colors:
            formatter = ColoredFormatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        # File handler always uses non-colored format
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        root_logger.addHandler(file_handler)

    return root_logger

def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name"""
    return logging.getLogger(name)

def get_compile_logger(name: str) -> CompileLogger:
    """Get a compile run logger for the specified logger name"""
    return CompileLogger(logging.getLogger(name))

def configure_logging_from_settings():
    """Configure logging based on application settings"""
    from core.config import settings

    log_level = settings.log_level
    if settings.debug:
        log_level = 'DEBUG'

    setup_logging(
        log_level=log_level,
        log_format='detailed',
        enable_colors=True
    )

    logger = get_logger(__name__)
    logger.info(f"🎨 Logging configured with level: {log_level}")
