"""Utility functions for logging, timing, tokens, and formatting."""

import logging
import secrets
import time


class Timer:
    """Simple context manager for timing operations."""

    def __init__(self, label: str = "Operation"):
        """Initialize timer with a label.

        Args:
            label: Description of what is being timed.
        """
        self.label = label
        self.start_time: float | None = None
        self.elapsed: float | None = None

    def __enter__(self):
        """Start timing."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop timing and log elapsed time."""
        if self.start_time is not None:
            self.elapsed = time.perf_counter() - self.start_time
            logging.debug(f"{self.label} took {self.elapsed:.3f}s")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    matplotlib_level = logging.INFO if verbose else logging.WARNING
    logging.getLogger("matplotlib").setLevel(matplotlib_level)
    logging.getLogger("matplotlib.font_manager").setLevel(matplotlib_level)


def generate_token(nbytes: int = 16) -> str:
    """Return a fresh opaque identifier used to tag analysis generations."""
    return secrets.token_hex(nbytes)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def format_duration(seconds: float, precision: int = 1) -> str:
    """Format a duration in seconds to a human-readable string.

    Args:
        seconds: Duration in seconds.
        precision: Decimal places for seconds.

    Returns:
        Formatted string like "1h 23m 45.6s" or "45.6s".
    """
    if seconds < 60:
        return f"{seconds:.{precision}f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes < 60:
        return f"{minutes}m {secs:.{precision}f}s"
    hours = int(minutes // 60)
    mins = minutes % 60
    return f"{hours}h {mins}m {secs:.{precision}f}s"
