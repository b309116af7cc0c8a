"""
Component Logger Framework

Provides colored logging for chaingen components with:
- Unified API for all components (resolver, discovery, generator, tools)
- Rich terminal output with component-specific colors
- Graceful fallbacks when configuration is unavailable

Usage:
    logger = get_logger("generator")
    logger.key_info("Generating Go code")
    logger.info("Discovered 4 packages")
    logger.debug("protoc -I ... --gocosmos_out=...")
    logger.success("Generation completed")
    logger.warning("No packages found")
    logger.error("protoc exited with status 1")
    logger.timing("Generation took 2.5 seconds")

    # Custom loggers with explicit parameters
    logger = get_logger(name="custom_component", color="blue")
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

from chaingen.utils.config import get_config_value

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class ComponentLogger:
    """
    Rich-formatted logger for chaingen components with color coding and message hierarchy.

    Message Types:
    - key_info: Important operational information
    - info: Normal operational messages
    - debug: Detailed tracing information (tool command lines)
    - warning: Warning messages
    - error: Error messages
    - success: Success messages
    - timing: Timing information
    """

    def __init__(self, base_logger: logging.Logger, component_name: str, color: str = "white"):
        """
        Initialize component logger.

        Args:
            base_logger: Underlying Python logger
            component_name: Name of the component (e.g., 'generator', 'gomodule')
            color: Rich color name for this component
        """
        self.base_logger = base_logger
        self.component_name = component_name
        self.color = color

    def _format_message(self, message: str, style: str, emoji: str = "") -> str:
        """Format message with Rich markup and emoji prefix."""
        prefix = f"{emoji}{self.component_name.title()}: "
        if style:
            return f"[{style}]{prefix}{message}[/{style}]"
        return f"{prefix}{message}"

    def key_info(self, message: str) -> None:
        style = f"bold {self.color}" if self.color != "white" else "bold white"
        self.base_logger.info(self._format_message(message, style))

    def info(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, self.color))

    def debug(self, message: str) -> None:
        style = f"dim {self.color}" if self.color != "white" else "dim white"
        self.base_logger.debug(self._format_message(message, style, "🔍 "))

    def warning(self, message: str) -> None:
        self.base_logger.warning(self._format_message(message, "bold yellow", "⚠️  "))

    def error(self, message: str, exc_info: bool = False) -> None:
        self.base_logger.error(self._format_message(message, "bold red", "❌ "), exc_info=exc_info)

    def success(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, "bold green", "✅ "))

    def timing(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, "bold white", "🕒 "))

    # Compatibility methods - delegate to base logger
    @property
    def name(self) -> str:
        return self.base_logger.name

    def setLevel(self, level: int) -> None:
        self.base_logger.setLevel(level)

    def isEnabledFor(self, level: int) -> bool:
        return self.base_logger.isEnabledFor(level)


def _setup_rich_logging(level: int | None = None) -> None:
    """Configure Rich logging for the root logger (called once)."""
    root_logger = logging.getLogger()

    # Prevent duplicate handler registration
    for handler in root_logger.handlers:
        if isinstance(handler, RichHandler):
            return

    try:
        if level is None:
            level = _LEVELS.get(str(get_config_value("logging.level", "INFO")).upper(), logging.INFO)
        rich_tracebacks = get_config_value("logging.rich_tracebacks", True)
        show_full_paths = get_config_value("logging.show_full_paths", False)
    except Exception:
        # Secure defaults when configuration system is unavailable
        level = level or logging.INFO
        rich_tracebacks = True
        show_full_paths = False

    root_logger.setLevel(level)

    console = Console(stderr=True, width=120)
    handler = RichHandler(
        console=console,
        rich_tracebacks=rich_tracebacks,
        markup=True,  # Enable [bold], [green], etc. in log messages
        show_path=show_full_paths,
        show_time=True,
        show_level=True,
        tracebacks_show_locals=False,
    )
    root_logger.addHandler(handler)

    # asyncio reports subprocess transport noise at debug level
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(
    component_name: str | None = None,
    level: int | None = None,
    *,
    name: str | None = None,
    color: str | None = None,
) -> ComponentLogger:
    """
    Get a component logger.

    Args:
        component_name: Component name (e.g., 'generator', 'discovery'); the
            color comes from logging.logging_colors.<component_name>
        level: Logging level for the root logger, defaults to logging.level
        name: Direct logger name (keyword-only), bypasses color lookup
        color: Direct color specification (keyword-only)

    Returns:
        ComponentLogger instance

    Examples:
        logger = get_logger("generator")
        logger = get_logger(name="test_logger", color="blue")
    """
    _setup_rich_logging(level)

    if name is not None:
        return ComponentLogger(logging.getLogger(name), name, color or "white")

    if component_name is None:
        raise ValueError(
            "Component name is required. Usage: get_logger('component_name') or "
            "get_logger(name='custom_name', color='blue')"
        )

    base_logger = logging.getLogger(f"chaingen.{component_name}")

    try:
        color = get_config_value(f"logging.logging_colors.{component_name}") or "white"
    except Exception as e:
        # Logging continues even with config issues
        color = "white"
        if os.getenv("DEBUG_LOGGING"):
            print(f"⚠️  WARNING: Failed to load color config for {component_name}: {e}. Using white as fallback.")

    return ComponentLogger(base_logger, component_name, color)
