"""
Logging for kindle.

Example:
    from kindle.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Waiting for mariadb:3306")
    logger.warning("Certificate already exists, skipping")
    logger.error("Bootstrap failed", exc_info=True)

Secret values must never be passed to a logger. Log the secret's name or
path instead; kindle.secrets.Secret masks itself if one slips through.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

KINDLE_THEME = Theme({
    "log.time": "dim cyan",
    "log.level.debug": "dim blue",
    "log.level.info": "green",
    "log.level.warning": "yellow",
    "log.level.error": "bold red",
    "log.level.critical": "bold white on red",
    "kindle.success": "bold green",
    "kindle.skip": "dim",
    "kindle.state": "cyan",
    "kindle.step": "yellow",
})

# Bootstrap output goes to stderr so the daemon owns stdout after hand-off
console = Console(theme=KINDLE_THEME, stderr=True)

_initialized = False


def setup_logging(
    level: str = "INFO",
    show_time: bool = True,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> None:
    """
    Initialize kindle's logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        show_time: Show timestamps in log output
        show_path: Show file path in log output
        rich_tracebacks: Use rich formatting for tracebacks

    Note:
        Subsequent calls are ignored to prevent duplicate handlers.
    """
    global _initialized

    if _initialized:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        markup=False,
        # Locals may hold secret values
        tracebacks_show_locals=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logging.basicConfig(
        level=numeric_level,
        handlers=[handler],
        force=True,
    )

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a given module.

    Args:
        name: Logger name (typically __name__)
    """
    if not _initialized:
        setup_logging()

    return logging.getLogger(name)


class KindleLogger:
    """
    kindle-specific logger.

    Wraps the standard logger with helpers for bootstrap progress lines.
    """

    def __init__(self, name: str):
        self.logger = get_logger(name)
        self.console = console

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self.logger.error(message, *args, **kwargs)

    def success(self, message: str) -> None:
        """Print a success line."""
        self.console.print(f"[kindle.success]✓[/kindle.success] {escape(message)}")

    def transition(self, service: str, state: str) -> None:
        """Print a sequencer state transition."""
        self.logger.debug("%s -> %s", service, state)
        self.console.print(
            f"[kindle.state]»[/kindle.state] {escape(service)}: {escape(state)}"
        )

    def step(self, step_id: str, status: str, duration: Optional[float] = None) -> None:
        """
        Print a step status line.

        Args:
            step_id: Step identifier
            status: Short status word ("running", "done", ...)
            duration: Optional duration in seconds
        """
        msg = f"  [kindle.step]{escape(step_id)}[/kindle.step] ... {escape(status)}"
        if duration:
            msg += f" [dim]({duration:.2f}s)[/dim]"
        self.console.print(msg)

    def skip(self, step_id: str, reason: str) -> None:
        """Print a skipped step line."""
        self.console.print(
            f"  [kindle.skip]{escape(step_id)} ... skipped ({escape(reason)})[/kindle.skip]"
        )


def get_kindle_logger(name: str) -> KindleLogger:
    """
    Get a KindleLogger instance for the given module.

    Example:
        logger = get_kindle_logger(__name__)
        logger.success("mariadb initialized")
    """
    return KindleLogger(name)
