"""Puzzle catalogue and solution validator for Chess Arena.

A PuzzleSession walks the player through one puzzle's forced line:
correct moves advance the solution pointer (and auto-play the
opponent's forced reply), wrong moves are taken back and counted.
Finishing or giving up records exactly one attempt in the progress
store.
"""

from __future__ import annotations

import enum
import json
import logging
import random
import re
import time
from collections.abc import Callable
from pathlib import Path

import chess

from arena.config import DEFAULT_PUZZLES_PATH
from arena.models import DIFFICULTIES, Puzzle, clamp, parse_move
from arena.progress import ProgressStore

logger = logging.getLogger(__name__)

_ANNOTATION_RE = re.compile(r"[+#?!]")


def sanitize(san: str) -> str:
    """Strip check, mate and annotation glyphs from a SAN move."""
    return _ANNOTATION_RE.sub("", san)


def puzzle_accuracy(solved: bool, attempts: int) -> int:
    """Accuracy estimate for a finished puzzle attempt."""
    seed = 95 - attempts * 10 if solved else max(40, 65 - attempts * 8)
    return int(clamp(seed, 35, 99))


def _check_difficulty(difficulty: str) -> None:
    if difficulty not in DIFFICULTIES:
        raise ValueError(f"difficulty must be one of {DIFFICULTIES}, got {difficulty!r}")


class PuzzleCatalogue:
    """Ordered, read-only list of puzzles loaded from JSON."""

    def __init__(self, puzzles: list[Puzzle]) -> None:
        self._puzzles = list(puzzles)
        self._by_id = {p.id: p for p in self._puzzles}

    @classmethod
    def load(cls, path: str | Path | None = None) -> PuzzleCatalogue:
        """Load puzzles from a JSON array file.

        Raises:
            ValueError: If the file is not a JSON array of puzzles.
        """
        puzzles_path = Path(path) if path else DEFAULT_PUZZLES_PATH
        data = json.loads(puzzles_path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError("Puzzle file must contain a JSON array")
        try:
            return cls([Puzzle.from_dict(item) for item in data])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed puzzle entry in {puzzles_path}: {exc}") from exc

    def __len__(self) -> int:
        return len(self._puzzles)

    def __iter__(self):
        return iter(self._puzzles)

    def get(self, puzzle_id: str) -> Puzzle | None:
        return self._by_id.get(puzzle_id)

    def pool(self, difficulty: str) -> list[Puzzle]:
        _check_difficulty(difficulty)
        return [p for p in self._puzzles if p.difficulty == difficulty]

    def pick_random(self, difficulty: str, rng: random.Random | None = None) -> Puzzle:
        """Uniformly pick a puzzle of the given difficulty.

        Raises:
            ValueError: If the difficulty is unknown or has no puzzles.
        """
        pool = self.pool(difficulty)
        if not pool:
            raise ValueError(f"No puzzles with difficulty {difficulty!r}")
        return (rng or random).choice(pool)

    def validate(self) -> tuple[list[str], list[str]]:
        """Replay every solution line.

        Returns:
            (errors, warnings). Errors are duplicate ids, bad FENs,
            illegal moves or replies; warnings are lines that do not end
            the game.
        """
        errors: list[str] = []
        warnings: list[str] = []
        seen: set[str] = set()
        for puzzle in self._puzzles:
            if puzzle.id in seen:
                errors.append(f"{puzzle.id}: duplicate puzzle id")
            seen.add(puzzle.id)
            errors.extend(_validate_puzzle(puzzle, warnings))
        return errors, warnings


def _validate_puzzle(puzzle: Puzzle, warnings: list[str]) -> list[str]:
    errors: list[str] = []
    prefix = puzzle.id

    if puzzle.difficulty not in DIFFICULTIES:
        errors.append(f"{prefix}: unknown difficulty '{puzzle.difficulty}'")
    if not puzzle.solution:
        errors.append(f"{prefix}: empty solution")
        return errors

    try:
        board = chess.Board(puzzle.fen)
    except ValueError as exc:
        errors.append(f"{prefix}: invalid FEN '{puzzle.fen}': {exc}")
        return errors

    if ("w" if board.turn == chess.WHITE else "b") != puzzle.side_to_move:
        errors.append(f"{prefix}: side_to_move '{puzzle.side_to_move}' disagrees with FEN")

    for i, step in enumerate(puzzle.solution, 1):
        try:
            board.push_san(step.move)
        except ValueError:
            errors.append(f"{prefix}: invalid move '{step.move}' at step {i}")
            return errors
        if step.reply:
            try:
                board.push_san(step.reply)
            except ValueError:
                errors.append(f"{prefix}: invalid reply '{step.reply}' at step {i}")
                return errors

    if not board.is_game_over():
        warnings.append(f"{prefix}: solution does not end the game")
    return errors


class PuzzleState(enum.Enum):
    AWAITING_MOVE = "awaiting_move"
    SOLVED = "solved"
    FAILED = "failed"


class PuzzleSession:
    """Validates a player's moves against one puzzle at a time."""

    def __init__(
        self,
        catalogue: PuzzleCatalogue,
        store: ProgressStore,
        difficulty: str = "intermediate",
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        puzzle: Puzzle | None = None,
    ) -> None:
        """Create a session and load a first puzzle.

        Args:
            catalogue: Puzzle source.
            store: Where finished attempts are recorded.
            difficulty: Starting difficulty pool.
            rng: Random source for puzzle picks.
            clock: Seconds counter used to time attempts.
            puzzle: Explicit first puzzle instead of a random pick.

        Raises:
            ValueError: If the difficulty is unknown.
        """
        _check_difficulty(difficulty)
        self._catalogue = catalogue
        self._store = store
        self._difficulty = difficulty
        self._rng = rng or random.Random()
        self._clock = clock
        self._load(puzzle or catalogue.pick_random(difficulty, self._rng))

    def _load(self, puzzle: Puzzle) -> None:
        self._puzzle = puzzle
        self._restart()

    def _restart(self) -> None:
        self._board = chess.Board(self._puzzle.fen)
        self._index = 0
        self._attempts = 0
        self._trail: list[str] = []
        self._state = PuzzleState.AWAITING_MOVE
        self._started = self._clock()

    # -- read accessors ------------------------------------------------------

    @property
    def puzzle(self) -> Puzzle:
        return self._puzzle

    @property
    def difficulty(self) -> str:
        return self._difficulty

    @property
    def state(self) -> PuzzleState:
        return self._state

    @property
    def solution_index(self) -> int:
        return self._index

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def trail(self) -> list[str]:
        return list(self._trail)

    @property
    def fen(self) -> str:
        return self._board.fen()

    def to_dict(self) -> dict:
        return {
            "puzzle_id": self._puzzle.id,
            "difficulty": self._difficulty,
            "themes": list(self._puzzle.themes),
            "side_to_move": self._puzzle.side_to_move,
            "fen": self.fen,
            "state": self._state.value,
            "solution_index": self._index,
            "solution_length": len(self._puzzle.solution),
            "attempts": self._attempts,
            "trail": self.trail,
        }

    # -- transitions ---------------------------------------------------------

    def submit_move(self, move: str) -> bool:
        """Check ``move`` (SAN or UCI) against the expected solution step.

        Returns:
            True if the move matched and was kept, False otherwise. A
            legal but wrong move is taken back and counted as an attempt;
            illegal input changes nothing.
        """
        if self._state is not PuzzleState.AWAITING_MOVE:
            return False
        step = self._puzzle.solution[self._index]

        chess_move = parse_move(self._board, move)
        if chess_move is None:
            return False

        san = self._board.san(chess_move)
        self._board.push(chess_move)
        if sanitize(san) != sanitize(step.move):
            self._board.pop()
            self._attempts += 1
            return False

        self._trail.append(san)
        if step.reply:
            reply = self._board.parse_san(step.reply)
            self._trail.append(self._board.san(reply))
            self._board.push(reply)

        self._index += 1
        if self._index >= len(self._puzzle.solution):
            self._finish(True)
        return True

    def skip(self) -> None:
        """Give up: record a missed attempt unless solved, then load a new puzzle."""
        if self._state is PuzzleState.AWAITING_MOVE:
            self._finish(False)
        self._load(self._catalogue.pick_random(self._difficulty, self._rng))

    def replay(self) -> None:
        """Start the current puzzle over without recording anything."""
        self._restart()

    def next_puzzle(self) -> Puzzle:
        """Load a random puzzle at the current difficulty without recording."""
        self._load(self._catalogue.pick_random(self._difficulty, self._rng))
        return self._puzzle

    def change_difficulty(self, difficulty: str) -> Puzzle:
        """Switch pools and load a random puzzle from the new one.

        Raises:
            ValueError: If the difficulty is unknown.
        """
        _check_difficulty(difficulty)
        self._difficulty = difficulty
        return self.next_puzzle()

    def _finish(self, solved: bool) -> None:
        time_taken = round(self._clock() - self._started)
        self._state = PuzzleState.SOLVED if solved else PuzzleState.FAILED
        self._store.record_puzzle_attempt(
            puzzle_id=self._puzzle.id,
            solved=solved,
            time_taken=time_taken,
            accuracy=puzzle_accuracy(solved, self._attempts),
        )
        logger.info(
            "Puzzle %s %s after %d wrong attempts in %ds",
            self._puzzle.id, self._state.value, self._attempts, time_taken,
        )
