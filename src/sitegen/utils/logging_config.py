"""
Centralized Logging Configuration
=================================

Provides a unified logging setup for the service with colored console
output, optional file rotation, and filters that keep high-frequency
request noise (health checks, streaming polls) out of the console.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler

from colorama import init, Fore, Style

init(autoreset=True)


def _safe_get_message(record: logging.LogRecord) -> str:
    """Safely retrieve a log record's message without raising formatting errors.

    Normalizes the record in-place if a formatting TypeError occurs so that
    downstream filters/formatters do not repeatedly trigger the same error.
    """
    try:
        return record.getMessage()
    except TypeError:
        record.msg = str(record.msg)
        record.args = ()
        setattr(record, "_malformed_format", True)
        return record.msg


class MalformedFormatSanitizerFilter(logging.Filter):
    """Normalize printf-style records whose args do not match the template."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args and not getattr(record, "_malformed_format", False):
            _safe_get_message(record)
        return True


class WerkzeugEndpointFilter(logging.Filter):
    """Filter to suppress high-frequency werkzeug request logs.

    Suppresses logging for:
    - Health check endpoint (/api/health)
    - Credit balance polling (/api/credits/<user>)
    - Static files and favicon requests
    """

    # Endpoints to suppress (substring matches)
    _suppressed_endpoints = (
        'GET /api/health ',
        'GET /api/credits/',
        'GET /static/',
        'GET /favicon',
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = _safe_get_message(record)
        for endpoint in self._suppressed_endpoints:
            if endpoint in message:
                return False
        return True


class ColoredSmartFormatter(logging.Formatter):
    """Formatter with color coding per level and per service."""

    def __init__(self, include_function: bool = False, use_colors: bool = True):
        self.include_function = include_function
        self.use_colors = use_colors
        super().__init__()

        self.level_colors = {
            logging.DEBUG: Fore.CYAN,
            logging.INFO: Fore.GREEN,
            logging.WARNING: Fore.YELLOW,
            logging.ERROR: Fore.RED,
            logging.CRITICAL: Fore.RED + Style.BRIGHT
        }

        self.service_colors = {
            'factory': Fore.BLUE,
            'router': Fore.MAGENTA,
            'provider': Fore.CYAN,
            'credits': Fore.YELLOW,
            'rate_limiter': Fore.YELLOW,
            'redis': Fore.RED,
            'safety': Fore.MAGENTA,
            'stream': Fore.GREEN,
        }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, '%H:%M:%S')
        level = record.levelname
        name = self._clean_logger_name(record.name)
        message = _safe_get_message(record)
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if self.use_colors:
            level_color = self.level_colors.get(record.levelno, "")
            service_color = self._get_service_color(name)
            colored_level = f"{level_color}{level:8}{Style.RESET_ALL}"
            colored_name = f"{service_color}{name:20}{Style.RESET_ALL}"
        else:
            colored_level = f"{level:8}"
            colored_name = f"{name:20}"

        # Add function info for errors and warnings in development
        if self.include_function and record.levelno >= logging.WARNING:
            location = f"{record.funcName}:{record.lineno}"
            if self.use_colors:
                location = f"{Fore.WHITE}{Style.DIM}[{location}]{Style.RESET_ALL}"
            else:
                location = f"[{location}]"
            return f"[{timestamp}] {colored_level} {colored_name} {location} {message}"
        return f"[{timestamp}] {colored_level} {colored_name} {message}"

    def _clean_logger_name(self, name: str) -> str:
        """Clean and shorten logger names for readability."""
        replacements = {
            'SiteGen.': '',
            'sitegen.services.providers.': 'provider.',
            'sitegen.services.': 'svc.',
            'sitegen.routes.': 'route.',
            'sitegen.utils.': 'util.',
            'sitegen.realtime.': 'rt.',
        }
        for old, new in replacements.items():
            if name.startswith(old):
                name = new + name[len(old):]
                break

        if len(name) > 20:
            name = name[:17] + "..."
        return name

    def _get_service_color(self, service_name: str) -> str:
        name_lower = service_name.lower()
        for service, color in self.service_colors.items():
            if service in name_lower:
                return color
        return Fore.WHITE


class LoggingConfig:
    """Centralized logging configuration for the application."""

    def __init__(self, app_name: str = "SiteGen", log_dir: Optional[str] = None,
                 log_to_file: bool = True, level: Optional[str] = None):
        self.app_name = app_name
        self.log_dir = Path(log_dir) if log_dir else Path(__file__).parent.parent.parent.parent / "logs"
        self.log_to_file = log_to_file
        self.log_level = self._get_log_level(level)
        self.is_development = os.environ.get('FLASK_ENV', 'development') == 'development'

    def setup_logging(self) -> logging.Logger:
        """Setup centralized logging configuration.

        Only handlers previously attached by this class are replaced so that
        repeated setup (and pytest's caplog handler) keep working.
        """
        root_logger = logging.getLogger()
        for h in list(root_logger.handlers):
            if getattr(h, "_sitegen", False):
                root_logger.removeHandler(h)
        root_logger.setLevel(self.log_level)
        if not any(isinstance(f, MalformedFormatSanitizerFilter) for f in root_logger.filters):
            root_logger.addFilter(MalformedFormatSanitizerFilter())

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(ColoredSmartFormatter(
            include_function=self.is_development,
            use_colors=True
        ))
        console_handler._sitegen = True  # type: ignore[attr-defined]
        root_logger.addHandler(console_handler)

        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                self.log_dir / "app.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_handler.setFormatter(ColoredSmartFormatter(include_function=True, use_colors=False))
            file_handler._sitegen = True  # type: ignore[attr-defined]
            root_logger.addHandler(file_handler)

        self._configure_specific_loggers()

        app_logger = logging.getLogger(self.app_name)
        app_logger.info(f"Logging configured - Level: {logging.getLevelName(self.log_level)}")
        return app_logger

    def _get_log_level(self, level: Optional[str]) -> int:
        level_str = (level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
        return getattr(logging, level_str, logging.INFO)

    def _configure_specific_loggers(self):
        """Configure third-party loggers to reduce spam."""
        if not self.is_development:
            logging.getLogger('werkzeug').setLevel(logging.WARNING)
        for name in ('httpx', 'httpcore', 'openai', 'google_genai', 'urllib3'):
            logging.getLogger(name).setLevel(logging.WARNING)

        werkzeug_logger = logging.getLogger('werkzeug')
        if not any(isinstance(f, WerkzeugEndpointFilter) for f in werkzeug_logger.filters):
            werkzeug_logger.addFilter(WerkzeugEndpointFilter())


def setup_application_logging(log_dir: Optional[str] = None, log_to_file: bool = True,
                              level: Optional[str] = None) -> logging.Logger:
    """Setup application logging - call this once at startup."""
    return LoggingConfig(log_dir=log_dir, log_to_file=log_to_file, level=level).setup_logging()


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(f"SiteGen.{name}")
