"""Shared data models for Chess Arena.

GameRecord, DailyGame, PuzzleHistory and RatingState are the persisted
contract between the game sessions and the progress store. Personas,
time controls and puzzles are configuration loaded once and never
mutated.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone

import chess

PERSONA_IDS = ("casual", "balanced", "tactical")
GAME_MODES = ("live", "daily")
RESULTS = ("white", "black", "draw")
COLORS = ("white", "black")
DIFFICULTIES = ("beginner", "intermediate", "advanced")

HISTORY_LIMIT = 100
ACCURACY_HISTORY_LIMIT = 20
RATING_FLOOR = 100
SEED_RATINGS = {"live": 1280, "daily": 1325, "puzzle": 1240}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


def color_code(color: chess.Color) -> str:
    return "w" if color == chess.WHITE else "b"


def parse_color(player_color: str) -> chess.Color:
    """Map ``"white"``/``"black"`` to a python-chess color.

    Raises:
        ValueError: For any other value.
    """
    if player_color not in COLORS:
        raise ValueError(f"player_color must be 'white' or 'black', got {player_color!r}")
    return chess.WHITE if player_color == "white" else chess.BLACK


def parse_move(board: chess.Board, move: str) -> chess.Move | None:
    """Parse SAN or UCI into a legal move for ``board``, or None.

    A UCI pawn move onto the last rank without a promotion piece
    promotes to a queen.
    """
    text = move.strip()
    try:
        return board.parse_san(text)
    except ValueError:
        pass
    try:
        candidate = chess.Move.from_uci(text)
    except ValueError:
        return None
    if candidate in board.legal_moves:
        return candidate
    if candidate.promotion is None:
        queened = chess.Move(candidate.from_square, candidate.to_square, promotion=chess.QUEEN)
        if queened in board.legal_moves:
            return queened
    return None


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Persona:
    """A named opponent profile. Only ``id`` affects move selection."""

    id: str
    label: str
    cadence: str = ""
    style: str = ""


LIVE_OPPONENTS: tuple[Persona, ...] = (
    Persona("casual", "Casual Bot",
            style="Plays quick, human-like moves with plenty of surprises."),
    Persona("balanced", "Balanced Engine",
            style="Prioritises solid development and trades."),
    Persona("tactical", "Tactical Nemesis",
            style="Seeks forcing tactics and open lines relentlessly."),
)

DAILY_OPPONENTS: tuple[Persona, ...] = (
    Persona("balanced", "Strategist", "Replies within 12 hours",
            "Solid positional responses with occasional tactical ideas."),
    Persona("tactical", "Tactician", "Replies in short bursts",
            "Looks for forcing continuations and sacrifices when available."),
    Persona("casual", "Relaxed Gambiteer", "Replies daily",
            "Prefers practical moves and gambits to keep the game lively."),
)


def find_persona(persona_id: str, catalogue: tuple[Persona, ...] = LIVE_OPPONENTS) -> Persona:
    """Look up a persona by id in a catalogue.

    Raises:
        ValueError: If the id is not one of the configured personas.
    """
    for persona in catalogue:
        if persona.id == persona_id:
            return persona
    raise ValueError(f"Unknown persona {persona_id!r}; expected one of {PERSONA_IDS}")


@dataclass(frozen=True)
class TimeControl:
    id: str
    label: str
    base_seconds: int
    increment: int = 0


TIME_PRESETS: tuple[TimeControl, ...] = (
    TimeControl("5+0", "5 + 0 Blitz", 300),
    TimeControl("10+0", "10 + 0 Rapid", 600),
    TimeControl("15+10", "15 + 10 Classical", 900, 10),
)


def find_time_control(control_id: str) -> TimeControl:
    for preset in TIME_PRESETS:
        if preset.id == control_id:
            return preset
    known = ", ".join(p.id for p in TIME_PRESETS)
    raise ValueError(f"Unknown time control {control_id!r}; expected one of {known}")


@dataclass(frozen=True)
class SolutionStep:
    move: str
    reply: str | None = None


@dataclass(frozen=True)
class Puzzle:
    """A tactical puzzle: start position plus the forced solution line."""

    id: str
    fen: str
    difficulty: str
    solution: tuple[SolutionStep, ...]
    themes: tuple[str, ...] = ()
    side_to_move: str = "w"

    @classmethod
    def from_dict(cls, data: dict) -> Puzzle:
        return cls(
            id=data["id"],
            fen=data["fen"],
            difficulty=data["difficulty"],
            solution=tuple(
                SolutionStep(step["move"], step.get("reply")) for step in data["solution"]
            ),
            themes=tuple(data.get("themes", ())),
            side_to_move=data.get("side_to_move", data["fen"].split()[1]),
        )


# ---------------------------------------------------------------------------
# Engine models
# ---------------------------------------------------------------------------


@dataclass
class CandidateMove:
    """A legal move plus the features the engine scores it by."""

    move: chess.Move
    san: str
    captured_value: int = 0
    gives_check: bool = False
    is_mate: bool = False
    material_delta: int = 0
    hanging_loss: int = 0
    is_forcing: bool = False
    development: float = 0.0
    king_safety: float = 0.0
    score: float = 0.0

    @property
    def is_capture(self) -> bool:
        return self.captured_value > 0

    @property
    def leaves_piece_hanging(self) -> bool:
        return self.hanging_loss > 0


# ---------------------------------------------------------------------------
# Persisted models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GameRecord:
    """Summary of a finished game. Never modified after it is recorded."""

    id: str
    mode: str
    opponent: str
    moves: tuple[str, ...]
    started_at: str
    finished_at: str
    result: str
    player_color: str
    accuracy: float
    duration_seconds: int
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.mode not in GAME_MODES:
            raise ValueError(f"mode must be one of {GAME_MODES}, got {self.mode!r}")
        if self.result not in RESULTS:
            raise ValueError(f"result must be one of {RESULTS}, got {self.result!r}")
        parse_color(self.player_color)
        object.__setattr__(self, "moves", tuple(self.moves))
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "accuracy", clamp(self.accuracy, 0, 100))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["moves"] = list(self.moves)
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> GameRecord:
        return cls(
            id=data["id"],
            mode=data["mode"],
            opponent=data["opponent"],
            moves=tuple(data.get("moves", ())),
            started_at=data["started_at"],
            finished_at=data["finished_at"],
            result=data["result"],
            player_color=data["player_color"],
            accuracy=data["accuracy"],
            duration_seconds=int(data["duration_seconds"]),
            tags=tuple(data.get("tags", ())),
        )


@dataclass
class DailyGame:
    """A correspondence game in progress."""

    id: str
    title: str
    opponent: str
    persona: str
    fen: str = chess.STARTING_FEN
    moves: list[str] = field(default_factory=list)
    last_updated: str = field(default_factory=utc_now_iso)
    color_to_move: str = "w"
    player_color: str = "white"
    reminders_enabled: bool = True

    @property
    def player_code(self) -> str:
        return "w" if self.player_color == "white" else "b"

    @property
    def is_player_turn(self) -> bool:
        return self.color_to_move == self.player_code

    def merge_patch(self, patch: dict) -> DailyGame:
        """Return a copy with ``patch`` applied; patch values always win.

        Raises:
            KeyError: If the patch names an unknown field or tries to
                change ``id``.
        """
        known = {f.name for f in fields(self)}
        unknown = set(patch) - known
        if unknown:
            raise KeyError(f"Unknown DailyGame fields: {sorted(unknown)}")
        if "id" in patch and patch["id"] != self.id:
            raise KeyError("DailyGame id cannot be patched")
        changes = dict(patch)
        if "moves" in changes:
            changes["moves"] = list(changes["moves"])
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DailyGame:
        return cls(
            id=data["id"],
            title=data.get("title", "Daily Clash"),
            opponent=data["opponent"],
            persona=data.get("persona", "balanced"),
            fen=data.get("fen", chess.STARTING_FEN),
            moves=list(data.get("moves", [])),
            last_updated=data.get("last_updated") or utc_now_iso(),
            color_to_move=data.get("color_to_move", "w"),
            player_color=data.get("player_color", "white"),
            reminders_enabled=bool(data.get("reminders_enabled", True)),
        )


@dataclass
class PuzzleHistory:
    id: str
    attempts: int = 0
    solved: bool = False
    best_time: int | None = None
    last_attempt_at: str | None = None
    accuracy_history: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> PuzzleHistory:
        return cls(
            id=data["id"],
            attempts=int(data.get("attempts", 0)),
            solved=bool(data.get("solved", False)),
            best_time=data.get("best_time"),
            last_attempt_at=data.get("last_attempt_at"),
            accuracy_history=list(data.get("accuracy_history", []))[-ACCURACY_HISTORY_LIMIT:],
        )


@dataclass
class RatingState:
    live_rating: int = SEED_RATINGS["live"]
    daily_rating: int = SEED_RATINGS["daily"]
    puzzle_rating: int = SEED_RATINGS["puzzle"]
    live_streak: int = 0
    daily_streak: int = 0
    puzzle_streak: int = 0

    def rating(self, mode: str) -> int:
        return getattr(self, f"{mode}_rating")

    def streak(self, mode: str) -> int:
        return getattr(self, f"{mode}_streak")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> RatingState:
        seeds = cls()
        return cls(**{
            f.name: max(RATING_FLOOR, int(data[f.name])) if f.name.endswith("_rating")
            else max(0, int(data[f.name]))
            for f in fields(seeds)
            if f.name in data
        })
