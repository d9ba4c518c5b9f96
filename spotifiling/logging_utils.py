"""
Console logging utilities for spotifiling.

Provides a SyncLogger class for user-facing CLI output with colored
terminal lines, plus canned error messages with guidance.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional


class LogLevel(Enum):
    """Log levels with their display properties."""

    DEBUG = ("DEBUG", "🔍", "\033[90m")  # Gray
    INFO = ("INFO", "ℹ️", "\033[94m")  # Blue
    SUCCESS = ("SUCCESS", "✓", "\033[92m")  # Green
    WARNING = ("WARNING", "⚠️", "\033[93m")  # Yellow
    ERROR = ("ERROR", "❌", "\033[91m")  # Red
    PROGRESS = ("PROGRESS", "→", "\033[96m")  # Cyan

    @property
    def name_str(self) -> str:
        return self.value[0]

    @property
    def icon(self) -> str:
        return self.value[1]

    @property
    def color(self) -> str:
        return self.value[2]


RESET = "\033[0m"


@dataclass
class LogEntry:
    """A single log entry with metadata."""

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format_for_terminal(self, use_color: bool = True) -> str:
        """Format for CLI terminal output."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        prefix = f"[{time_str}]"

        if use_color:
            return f"{self.level.color}{prefix} {self.level.icon} {self.message}{RESET}"
        return f"{prefix} [{self.level.name_str}] {self.message}"


class SyncLogger:
    """
    User-facing logger for the CLI.

    Usage:
        logger = SyncLogger()
        logger.progress("Loading playlists...")
        logger.success("Filed 3 tracks")

    Progress lines repeat quickly during a load, so they are only printed
    in verbose mode; they are still recorded and passed to ``on_log``.
    """

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        use_color: bool = True,
        on_log: Optional[Callable[[LogEntry], None]] = None,
        stream=None,
    ):
        """
        Initialize the logger.

        Args:
            verbose: If True, show DEBUG and every PROGRESS message
            quiet: If True, only show ERROR messages
            use_color: If True, use ANSI colors (only when writing to a TTY)
            on_log: Optional callback called for each log entry
            stream: Output stream (default: sys.stdout)
        """
        self.verbose = verbose
        self.quiet = quiet
        self.stream = stream or sys.stdout
        self.use_color = use_color and self.stream.isatty()
        self.on_log = on_log
        self._entries: list[LogEntry] = []

    def _log(self, level: LogLevel, message: str):
        """Internal logging method."""
        # Filter based on quiet/verbose settings
        if self.quiet and level not in (LogLevel.ERROR,):
            return
        if level == LogLevel.DEBUG and not self.verbose:
            return

        entry = LogEntry(level=level, message=message)
        self._entries.append(entry)

        if level != LogLevel.PROGRESS or self.verbose:
            print(entry.format_for_terminal(self.use_color), file=self.stream)

        if self.on_log:
            self.on_log(entry)

    # Public logging methods
    def debug(self, message: str):
        """Log a debug message (only shown in verbose mode)."""
        self._log(LogLevel.DEBUG, message)

    def info(self, message: str):
        """Log an informational message."""
        self._log(LogLevel.INFO, message)

    def success(self, message: str):
        """Log a success message."""
        self._log(LogLevel.SUCCESS, message)

    def warning(self, message: str):
        """Log a warning message."""
        self._log(LogLevel.WARNING, message)

    def error(self, message: str):
        """Log an error message."""
        self._log(LogLevel.ERROR, message)

    def progress(self, message: str):
        """Log a progress update."""
        self._log(LogLevel.PROGRESS, message)

    def get_entries(self) -> list[LogEntry]:
        """Get all log entries."""
        return self._entries.copy()

    def format_summary(self) -> str:
        """Generate a summary of logged events for display."""
        errors = sum(1 for e in self._entries if e.level == LogLevel.ERROR)
        warnings = sum(1 for e in self._entries if e.level == LogLevel.WARNING)
        successes = sum(1 for e in self._entries if e.level == LogLevel.SUCCESS)

        parts = []
        if successes:
            parts.append(f"✓ {successes} completed")
        if warnings:
            parts.append(f"⚠️ {warnings} warnings")
        if errors:
            parts.append(f"❌ {errors} errors")

        return " | ".join(parts) if parts else "No activity"


# Error message helpers for user-friendly output
class UserErrors:
    """Pre-defined user-friendly error messages with guidance."""

    @staticmethod
    def spotify_auth_failed(original_error: str) -> str:
        return (
            f"❌ Spotify authentication failed: {original_error}\n\n"
            "💡 Try these steps:\n"
            "   1. Check SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET\n"
            "   2. Verify redirect URI matches your Spotify app settings\n"
            "   3. Delete the .spotify_cache file in your data dir to force re-auth"
        )

    @staticmethod
    def config_not_found(path: str) -> str:
        return (
            f"❌ Configuration file not found: {path}\n\n"
            "💡 Create a config.yml file with your Spotify credentials.\n"
            "   See the README for the required format."
        )

    @staticmethod
    def load_failed(original_error: str) -> str:
        return (
            f"❌ Could not load your library: {original_error}\n\n"
            "💡 Run the command again to retry.\n"
            "   Anything already cached is reused, so a retry is cheap."
        )

    @staticmethod
    def network_error(original_error: str) -> str:
        return (
            f"❌ Network error: {original_error}\n\n"
            "💡 Check your internet connection and try again.\n"
            "   If the problem persists, the Spotify API may be temporarily down."
        )

    @staticmethod
    def rate_limited(retry_after: Optional[float] = None) -> str:
        wait = f" for {retry_after:g}s" if retry_after else " a few minutes"
        return (
            "⚠️ Rate limited by the Spotify API.\n\n"
            "💡 Try these options:\n"
            f"   1. Wait{wait} and try again\n"
            "   2. Reduce the catalog.rate_limit setting in config.yml"
        )

    @staticmethod
    def writes_pending(count: int, last_error: Optional[str] = None) -> str:
        message = (
            f"⚠️ {count} change{'s' if count != 1 else ''} not yet saved to Spotify.\n"
            "💡 They are kept locally and will be sent on the next run."
        )
        if last_error:
            message += f"\n   Last error: {last_error}"
        return message
