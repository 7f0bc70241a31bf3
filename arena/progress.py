"""Progress store for Chess Arena.

Holds per-mode ratings and streaks, the finished-game history, the
active daily games and the puzzle attempt history. Every mutation is
applied under one lock and written to a single versioned JSON file.

CLI interface outputs JSON to stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import shutil
import sys
import threading
from pathlib import Path

from arena.config import Settings, configure_logging
from arena.models import (
    ACCURACY_HISTORY_LIMIT,
    HISTORY_LIMIT,
    RATING_FLOOR,
    DailyGame,
    GameRecord,
    PuzzleHistory,
    RatingState,
    clamp,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

STATE_NAME = "chess-arena-state"
STATE_VERSION = 1


def apply_result(current: int, score: float) -> int:
    """Elo-style rating update for one game.

    Args:
        current: Rating before the game.
        score: 1 for a win, 0.5 for a draw, 0 for a loss.

    Returns:
        The new rating, never below the floor of 100.
    """
    k = 32 if current < 2000 else 16
    delta = round(k * (score - 0.5))
    return max(RATING_FLOOR, current + delta)


def score_for(result: str, player_color: str) -> float:
    """Score of a game result from the player's point of view."""
    if result == "draw":
        return 0.5
    return 1.0 if result == player_color else 0.0


class ProgressStore:
    """Ratings, streaks and histories with atomic JSON persistence."""

    def __init__(self, state_path: str | Path | None = None) -> None:
        """Load state from JSON.

        If the file is corrupted or carries an unknown version, backs it up
        as .bak and starts from seed values.

        Args:
            state_path: Path to the JSON state file. Defaults to the data
                directory from the environment settings.
        """
        self._state_path = Path(state_path) if state_path else Settings.from_env().state_path
        self._lock = threading.RLock()
        self._ratings = RatingState()
        self._games: list[GameRecord] = []
        self._daily_games: list[DailyGame] = []
        self._puzzle_history: list[PuzzleHistory] = []
        self._load()

    @property
    def state_path(self) -> Path:
        return self._state_path

    # -- persistence ---------------------------------------------------------

    def _load(self) -> None:
        """Restore state from disk, falling back to seeds on any problem."""
        if not self._state_path.exists():
            return

        try:
            data = json.loads(self._state_path.read_text(encoding="utf-8"))
            state = self._migrate(data)
            ratings = RatingState.from_dict(state)
            games = [GameRecord.from_dict(g) for g in state.get("games", [])]
            daily = [DailyGame.from_dict(g) for g in state.get("daily_games", [])]
            puzzles = [PuzzleHistory.from_dict(p) for p in state.get("puzzle_history", [])]
        except (json.JSONDecodeError, ValueError, KeyError, TypeError) as exc:
            backup_path = self._state_path.with_suffix(".bak")
            shutil.copy2(self._state_path, backup_path)
            logger.warning(
                "Progress file %s unreadable (%s); backed up to %s and reset to seeds",
                self._state_path, exc, backup_path,
            )
            return

        self._ratings = ratings
        self._games = games[:HISTORY_LIMIT]
        self._daily_games = _dedupe_daily(daily)
        self._puzzle_history = _dedupe_puzzles(puzzles)

    @staticmethod
    def _migrate(data: object) -> dict:
        """Return the inner state dict, upgrading older layouts.

        Version 0 is a bare state dict without the name/version envelope.

        Raises:
            ValueError: If the layout or version is not recognised.
        """
        if not isinstance(data, dict):
            raise ValueError("Progress file must contain a JSON object")
        if "version" not in data and "state" not in data:
            return data
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported progress version: {version!r}")
        state = data.get("state")
        if not isinstance(state, dict):
            raise ValueError("Progress state must be a JSON object")
        return state

    def _save(self) -> None:
        """Save state to JSON file with atomic write."""
        self._state_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._state_path.with_suffix(".tmp")
        tmp_path.write_text(
            json.dumps(
                {"name": STATE_NAME, "version": STATE_VERSION, "state": self._state_dict()},
                indent=2,
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._state_path)

    def _state_dict(self) -> dict:
        return {
            **self._ratings.to_dict(),
            "games": [g.to_dict() for g in self._games],
            "daily_games": [g.to_dict() for g in self._daily_games],
            "puzzle_history": [p.to_dict() for p in self._puzzle_history],
        }

    # -- read accessors ------------------------------------------------------

    @property
    def ratings(self) -> RatingState:
        with self._lock:
            return RatingState(**self._ratings.to_dict())

    @property
    def games(self) -> list[GameRecord]:
        with self._lock:
            return list(self._games)

    @property
    def daily_games(self) -> list[DailyGame]:
        with self._lock:
            return list(self._daily_games)

    @property
    def puzzle_history(self) -> list[PuzzleHistory]:
        with self._lock:
            return [PuzzleHistory.from_dict(p.to_dict()) for p in self._puzzle_history]

    def get_daily_game(self, game_id: str) -> DailyGame | None:
        with self._lock:
            for game in self._daily_games:
                if game.id == game_id:
                    return game
            return None

    def get_puzzle_history(self, puzzle_id: str) -> PuzzleHistory | None:
        with self._lock:
            for entry in self._puzzle_history:
                if entry.id == puzzle_id:
                    return PuzzleHistory.from_dict(entry.to_dict())
            return None

    def snapshot(self) -> dict:
        """Full state as plain JSON-ready data."""
        with self._lock:
            return self._state_dict()

    # -- mutations -----------------------------------------------------------

    def record_game(self, game: GameRecord) -> GameRecord:
        """Archive a finished game and update that mode's rating and streak.

        Returns:
            The recorded GameRecord.
        """
        with self._lock:
            self._record_game_locked(game)
            self._save()
        return game

    def _record_game_locked(self, game: GameRecord) -> None:
        score = score_for(game.result, game.player_color)
        mode = game.mode
        before = self._ratings.rating(mode)
        after = apply_result(before, score)
        streak = self._ratings.streak(mode) + 1 if score == 1 else 0

        setattr(self._ratings, f"{mode}_rating", after)
        setattr(self._ratings, f"{mode}_streak", streak)
        self._games = [game, *self._games][:HISTORY_LIMIT]
        logger.info(
            "Recorded %s game %s (%s): rating %d -> %d, streak %d",
            mode, game.id, game.result, before, after, streak,
        )

    def upsert_daily_game(self, game: DailyGame) -> DailyGame:
        """Insert a daily game (newest first) or replace the one with its id."""
        with self._lock:
            for index, existing in enumerate(self._daily_games):
                if existing.id == game.id:
                    self._daily_games[index] = game
                    break
            else:
                self._daily_games.insert(0, game)
            self._save()
        return game

    def update_daily_game(self, game_id: str, patch: dict) -> DailyGame | None:
        """Merge ``patch`` into a daily game.

        Returns:
            The updated game, or None if no game has that id.

        Raises:
            KeyError: If the patch names unknown fields.
        """
        with self._lock:
            for index, existing in enumerate(self._daily_games):
                if existing.id == game_id:
                    updated = existing.merge_patch(patch)
                    self._daily_games[index] = updated
                    self._save()
                    return updated
            return None

    def complete_daily_game(
        self,
        game_id: str,
        result: str,
        accuracy: float,
        duration_seconds: int,
        moves: list[str] | None = None,
    ) -> GameRecord | None:
        """Remove a daily game and archive it as a GameRecord.

        Removal, archiving and the rating update happen as one unit.

        Args:
            game_id: Id of the active daily game.
            result: ``white``, ``black`` or ``draw``.
            accuracy: Accuracy estimate for the player.
            duration_seconds: Estimated game duration.
            moves: Final move list; defaults to the stored one.

        Returns:
            The new GameRecord, or None if the game is not active.
        """
        with self._lock:
            target = self.get_daily_game(game_id)
            if target is None:
                return None
            finished_at = utc_now_iso()
            record = GameRecord(
                id=f"{game_id}-completed-{finished_at}",
                mode="daily",
                opponent=target.opponent,
                moves=tuple(moves if moves is not None else target.moves),
                started_at=target.last_updated,
                finished_at=finished_at,
                result=result,
                player_color=target.player_color,
                accuracy=accuracy,
                duration_seconds=duration_seconds,
                tags=("daily",),
            )
            self._daily_games = [g for g in self._daily_games if g.id != game_id]
            self._record_game_locked(record)
            self._save()
        return record

    def record_puzzle_attempt(
        self,
        puzzle_id: str,
        solved: bool,
        time_taken: int,
        accuracy: float,
    ) -> PuzzleHistory:
        """Record one finished puzzle attempt and update the puzzle rating.

        Returns:
            The updated history entry for the puzzle.
        """
        accuracy = clamp(accuracy, 0, 100)
        now = utc_now_iso()
        with self._lock:
            entry = None
            for existing in self._puzzle_history:
                if existing.id == puzzle_id:
                    entry = existing
                    break

            if entry is None:
                entry = PuzzleHistory(
                    id=puzzle_id,
                    attempts=1,
                    solved=solved,
                    best_time=time_taken if solved else None,
                    last_attempt_at=now,
                    accuracy_history=[accuracy],
                )
                self._puzzle_history.insert(0, entry)
            else:
                entry.attempts += 1
                entry.solved = solved
                if solved:
                    entry.best_time = (
                        time_taken if entry.best_time is None
                        else min(entry.best_time, time_taken)
                    )
                entry.last_attempt_at = now
                entry.accuracy_history = [*entry.accuracy_history, accuracy][-ACCURACY_HISTORY_LIMIT:]

            before = self._ratings.puzzle_rating
            self._ratings.puzzle_rating = apply_result(before, 1 if solved else 0)
            self._ratings.puzzle_streak = self._ratings.puzzle_streak + 1 if solved else 0
            logger.info(
                "Puzzle %s %s: rating %d -> %d",
                puzzle_id, "solved" if solved else "missed", before, self._ratings.puzzle_rating,
            )
            self._save()
            return PuzzleHistory.from_dict(entry.to_dict())

    def reset(self) -> None:
        """Restore seed ratings and clear every collection."""
        with self._lock:
            self._ratings = RatingState()
            self._games = []
            self._daily_games = []
            self._puzzle_history = []
            self._save()
        logger.info("Progress reset to seed values")


def _dedupe_daily(games: list[DailyGame]) -> list[DailyGame]:
    seen: set[str] = set()
    unique = []
    for game in games:
        if game.id not in seen:
            seen.add(game.id)
            unique.append(game)
    return unique


def _dedupe_puzzles(entries: list[PuzzleHistory]) -> list[PuzzleHistory]:
    seen: set[str] = set()
    unique = []
    for entry in entries:
        if entry.id not in seen:
            seen.add(entry.id)
            unique.append(entry)
    return unique


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _cli_stats(store: ProgressStore) -> None:
    """Print ratings, streaks and collection sizes as JSON."""
    ratings = store.ratings
    payload = {
        **ratings.to_dict(),
        "games": len(store.games),
        "daily_games": len(store.daily_games),
        "puzzles_attempted": len(store.puzzle_history),
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _cli_history(store: ProgressStore, limit: int) -> None:
    games = [g.to_dict() for g in store.games[:limit]]
    print(json.dumps(games, indent=2, ensure_ascii=False))


def _cli_reset(store: ProgressStore) -> None:
    store.reset()
    print(json.dumps(store.ratings.to_dict(), indent=2, ensure_ascii=False))


def main() -> None:
    """CLI entry point for progress.py."""
    parser = argparse.ArgumentParser(
        description="Progress store - ratings, streaks and game history"
    )
    parser.add_argument("--state", type=str, default=None, help="Path to progress JSON")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("stats", help="Show ratings and streaks")

    history_parser = subparsers.add_parser("history", help="List recent games")
    history_parser.add_argument("--limit", type=int, default=10, help="Games to show")

    subparsers.add_parser("reset", help="Restore seed ratings and clear history")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    configure_logging(Settings.from_env().log_level)
    store = ProgressStore(args.state)

    if args.command == "stats":
        _cli_stats(store)
    elif args.command == "history":
        _cli_history(store, args.limit)
    elif args.command == "reset":
        _cli_reset(store)


if __name__ == "__main__":
    main()
