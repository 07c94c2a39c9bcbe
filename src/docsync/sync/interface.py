"""Human-facing side of the sync engine.

The engine never talks to a terminal or a window directly. It asks a
``SyncInterface`` to choose a conflict resolution, to confirm destructive
operations, and to show notices. ``Notifier`` filters notices by the
configured verbosity; ``ConsoleInterface`` is the CLI implementation.
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO

from .merger import generate_diff
from .models import Resolution, Verbosity

logger = logging.getLogger(__name__)

# Notice levels, most to least important
ERROR = "error"
WARNING = "warning"
SUCCESS = "success"
INFO = "info"
PROGRESS = "progress"

_SHOWN_AT: dict[Verbosity, frozenset[str]] = {
    Verbosity.QUIET: frozenset({ERROR, WARNING}),
    Verbosity.STANDARD: frozenset({ERROR, WARNING, SUCCESS, INFO}),
    Verbosity.VERBOSE: frozenset({ERROR, WARNING, SUCCESS, INFO, PROGRESS}),
}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class SyncInterface(Protocol):
    """What the engine needs from whoever is in front of it."""

    def choose_resolution(
        self, path: str, local_content: str, remote_content: str
    ) -> Resolution:
        """Present both versions and return the chosen resolution."""
        ...  # pragma: no cover

    def confirm(self, title: str, message: str) -> bool:
        """Ask for confirmation of a destructive operation."""
        ...  # pragma: no cover

    def notify(self, message: str, level: str = INFO) -> None:
        """Show a transient notice."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Verbosity filter
# ---------------------------------------------------------------------------


class Notifier:
    """Send notices to a ``SyncInterface``, filtered by verbosity.

    Every notice is also logged, so suppressed ones are still diagnosable.
    """

    def __init__(
        self, interface: SyncInterface, verbosity: Verbosity | str
    ) -> None:
        self.interface = interface
        self.verbosity = Verbosity(verbosity)

    def _emit(self, level: str, message: str) -> None:
        log_level = {
            ERROR: logging.ERROR,
            WARNING: logging.WARNING,
            PROGRESS: logging.DEBUG,
        }.get(level, logging.INFO)
        logger.log(log_level, message)
        if level in _SHOWN_AT[self.verbosity]:
            self.interface.notify(message, level)

    def error(self, message: str) -> None:
        self._emit(ERROR, message)

    def warning(self, message: str) -> None:
        self._emit(WARNING, message)

    def success(self, message: str) -> None:
        self._emit(SUCCESS, message)

    def info(self, message: str) -> None:
        self._emit(INFO, message)

    def progress(self, message: str) -> None:
        self._emit(PROGRESS, message)


# ---------------------------------------------------------------------------
# Console implementation
# ---------------------------------------------------------------------------


class ConsoleInterface:
    """Prompt on stdin, write notices and diffs to stderr.

    When stdin is closed (cron, pipes) prompts fall back to the safe
    answer: keep local for conflicts, "no" for confirmations.
    """

    _CHOICES = {
        "l": Resolution.LOCAL,
        "local": Resolution.LOCAL,
        "r": Resolution.REMOTE,
        "remote": Resolution.REMOTE,
        "m": Resolution.MERGE,
        "merge": Resolution.MERGE,
    }

    def __init__(
        self,
        stream: TextIO | None = None,
        assume_yes: bool = False,
    ) -> None:
        self.stream = stream or sys.stderr
        self.assume_yes = assume_yes

    def _ask(self, prompt: str) -> str | None:
        self.stream.write(prompt)
        self.stream.flush()
        try:
            return input().strip().lower()
        except EOFError:
            return None

    def choose_resolution(
        self, path: str, local_content: str, remote_content: str
    ) -> Resolution:
        diff = generate_diff(
            local_content,
            remote_content,
            label_old=f"local/{path}",
            label_new=f"remote/{path}",
        )
        self.stream.write(f"\nConflict: {path}\n")
        self.stream.write(diff if diff else "(no textual differences)\n")
        while True:
            answer = self._ask("Keep [l]ocal, [r]emote, or [m]erge? ")
            if answer is None:
                logger.warning("No input for %s; keeping local version", path)
                return Resolution.LOCAL
            if answer in self._CHOICES:
                return self._CHOICES[answer]

    def confirm(self, title: str, message: str) -> bool:
        if self.assume_yes:
            return True
        self.stream.write(f"{title}\n{message}\n")
        answer = self._ask("Continue? [y/N] ")
        return answer in ("y", "yes")

    def notify(self, message: str, level: str = INFO) -> None:
        prefix = "" if level in (INFO, SUCCESS, PROGRESS) else f"{level.upper()}: "
        self.stream.write(f"{prefix}{message}\n")
        self.stream.flush()
