"""Runtime settings and logging setup for Chess Arena.

Settings are read from environment variables so the CLIs, the tool
server and the tests can point the progress store at different data
directories without code changes.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"
DEFAULT_PUZZLES_PATH = _PACKAGE_DIR / "data" / "puzzles.json"
STATE_FILENAME = "progress.json"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Paths and timing knobs shared by the game sessions."""

    data_dir: Path = DEFAULT_DATA_DIR
    puzzles_path: Path = DEFAULT_PUZZLES_PATH
    log_level: str = "WARNING"
    delay_scale: float = 1.0

    # Deferred engine replies, in seconds
    live_reply_delay: float = 0.65
    live_opening_delay: float = 0.6
    daily_reply_delay: float = 0.6
    daily_opening_delay: float = 0.4
    clock_interval: float = 1.0

    @property
    def state_path(self) -> Path:
        return self.data_dir / STATE_FILENAME

    def delay(self, seconds: float) -> float:
        """Scale a nominal delay by ``delay_scale`` (never negative)."""
        return max(0.0, seconds * self.delay_scale)

    def with_data_dir(self, data_dir: str | Path) -> Settings:
        return replace(self, data_dir=Path(data_dir))

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``CHESS_ARENA_*`` environment variables.

        Raises:
            ValueError: If ``CHESS_ARENA_DELAY_SCALE`` is not a number.
        """
        data_dir = os.environ.get("CHESS_ARENA_DATA_DIR")
        puzzles = os.environ.get("CHESS_ARENA_PUZZLES")
        scale = os.environ.get("CHESS_ARENA_DELAY_SCALE", "1")
        try:
            delay_scale = float(scale)
        except ValueError:
            raise ValueError(
                f"CHESS_ARENA_DELAY_SCALE must be a number, got {scale!r}"
            ) from None
        return cls(
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
            puzzles_path=Path(puzzles) if puzzles else DEFAULT_PUZZLES_PATH,
            log_level=os.environ.get("CHESS_ARENA_LOG_LEVEL", "WARNING").upper(),
            delay_scale=delay_scale,
        )


def configure_logging(level: str | int = "WARNING") -> None:
    """Send package logs to stderr.

    stdout is reserved for JSON output of the CLIs and for the MCP stdio
    transport, so the handler is always bound to stderr.
    """
    root = logging.getLogger("arena")
    if not any(getattr(h, "_arena_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._arena_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)
